"""
Knowledge-index access behind independent read and write circuit breakers.

A write outage (ingestion) must never block reads (answering), so the two
paths use separate breakers with their own thresholds.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Sequence, Tuple, TypeVar

import structlog
from langchain_core.documents import Document
from langchain_core.embeddings import Embeddings
from langchain_core.vectorstores import InMemoryVectorStore

from api.schemas.agent_state import DocumentMetadata, RetrievedDocument
from api.services.embeddings_service import ProtectedEmbeddings
from api.services.llm_service import with_single_retry
from libs.resilience.circuit_breaker import (
    CircuitBreakerConfig,
    get_circuit_breaker,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")

VECTOR_READ_CIRCUIT_CONFIG = CircuitBreakerConfig(
    name="vector-store-read",
    failure_threshold=5,
    reset_timeout=15.0,
    request_timeout=10.0,
    success_threshold=2,
)

VECTOR_WRITE_CIRCUIT_CONFIG = CircuitBreakerConfig(
    name="vector-store-write",
    failure_threshold=3,
    reset_timeout=30.0,
    request_timeout=30.0,
    success_threshold=2,
)

vector_read_breaker = get_circuit_breaker(VECTOR_READ_CIRCUIT_CONFIG)
vector_write_breaker = get_circuit_breaker(VECTOR_WRITE_CIRCUIT_CONFIG)


class VectorStoreLike(Protocol):
    """The slice of the LangChain ``VectorStore`` API the agent relies on."""

    async def asimilarity_search_with_score(
        self, query: str, k: int = 4, **kwargs: Any
    ) -> List[Tuple[Document, float]]: ...

    async def aadd_documents(self, documents: List[Document], **kwargs: Any) -> List[str]: ...


FilterAdapter = Callable[[Dict[str, Any]], Any]


class KnowledgeIndex:
    """Protected search and write access to the governance knowledge base.

    Args:
        store: any LangChain vector store
        filter_adapter: converts the agent's Mongo-style metadata filter
            (``{"ngb_id": {"$in": [...]}, "topic_domain": "..."}``) into the
            store's native filter form; identity when omitted
        scores_are_similarity: set when the store returns similarity (higher
            is better); scores are converted to distances (lower is better)
    """

    def __init__(
        self,
        store: VectorStoreLike,
        filter_adapter: Optional[FilterAdapter] = None,
        scores_are_similarity: bool = False,
    ):
        self.store = store
        self.filter_adapter = filter_adapter
        self.scores_are_similarity = scores_are_similarity

    async def read(self, operation: Callable[[], Awaitable[T]], operation_name: str = "vector_store.read") -> T:
        return await vector_read_breaker.execute(lambda: with_single_retry(operation, operation_name))

    async def search(
        self,
        query: str,
        k: int = 10,
        filter: Optional[Dict[str, Any]] = None,
    ) -> List[RetrievedDocument]:
        """Ranked documents for ``query``, best (lowest distance) first."""
        kwargs: Dict[str, Any] = {}
        if filter:
            kwargs["filter"] = self.filter_adapter(filter) if self.filter_adapter else filter

        raw = await self.read(
            lambda: self.store.asimilarity_search_with_score(query, k=k, **kwargs),
            "vector_store.search",
        )

        documents = [self._to_retrieved(doc, score) for doc, score in raw]
        documents.sort(key=lambda d: d.score)
        return documents

    async def write(self, records: Sequence[Document]) -> List[str]:
        """Add ``records`` to the index; returns the store's ids as the ack."""
        if not records:
            return []
        ids = await vector_write_breaker.execute(
            lambda: with_single_retry(lambda: self.store.aadd_documents(list(records)), "vector_store.write")
        )
        logger.info("Knowledge index write completed", records=len(records))
        return ids

    def _to_retrieved(self, doc: Document, score: float) -> RetrievedDocument:
        distance = 1.0 - score if self.scores_are_similarity else score
        meta = doc.metadata or {}
        return RetrievedDocument(
            content=doc.page_content,
            metadata=DocumentMetadata(
                ngb_id=meta.get("ngb_id"),
                topic_domain=meta.get("topic_domain"),
                document_type=meta.get("document_type"),
                source_url=meta.get("source_url"),
                document_title=meta.get("document_title"),
                section_title=meta.get("section_title"),
                effective_date=meta.get("effective_date"),
                authority_level=meta.get("authority_level"),
            ),
            score=distance,
        )


def _matches(meta: Dict[str, Any], filter: Dict[str, Any]) -> bool:
    for field, expected in filter.items():
        if field == "$or":
            if not any(_matches(meta, option) for option in expected):
                return False
            continue
        actual = meta.get(field)
        if isinstance(expected, dict) and "$in" in expected:
            if actual not in expected["$in"]:
                return False
        elif actual != expected:
            return False
    return True


def metadata_filter_predicate(filter: Dict[str, Any]) -> Callable[[Document], bool]:
    """Mongo-style filter as a Document predicate.

    Supports ``{field: value}``, ``{field: {"$in": [...]}}`` and a top-level
    ``{"$or": [filter, ...]}``. A ``None`` value also matches a missing field.
    """

    def predicate(doc: Document) -> bool:
        return _matches(doc.metadata or {}, filter)

    return predicate


def build_in_memory_index(
    path: Optional[str] = None,
    embedding: Optional[Embeddings] = None,
) -> KnowledgeIndex:
    """Knowledge index on LangChain's in-memory store, embedding through the breaker.

    With ``path`` the store is loaded from a file written by
    ``InMemoryVectorStore.dump``; otherwise it starts empty.
    """
    embedding = embedding or ProtectedEmbeddings()
    if path:
        store = InMemoryVectorStore.load(path, embedding=embedding)
        logger.info("Knowledge index loaded", path=path, documents=len(store.store))
    else:
        store = InMemoryVectorStore(embedding=embedding)
        logger.warning("Knowledge index starts empty; set knowledge_index_path to load one")
    return KnowledgeIndex(store, filter_adapter=metadata_filter_predicate, scores_are_similarity=True)
