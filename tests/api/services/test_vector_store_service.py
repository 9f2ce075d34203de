"""Tests for the protected knowledge index."""

from typing import Any, List, Tuple

import pytest
from langchain_core.documents import Document
from langchain_core.embeddings import DeterministicFakeEmbedding

from api.services.vector_store_service import (
    KnowledgeIndex,
    build_in_memory_index,
    metadata_filter_predicate,
    vector_read_breaker,
    vector_write_breaker,
)
from libs.common.errors import CircuitBreakerError
from libs.resilience.circuit_breaker import CircuitState


class FailingStore:
    def __init__(self):
        self.search_calls = 0

    async def asimilarity_search_with_score(self, query: str, k: int = 4, **kwargs: Any) -> List[Tuple[Document, float]]:
        self.search_calls += 1
        raise ValueError("index unavailable")

    async def aadd_documents(self, documents: List[Document], **kwargs: Any) -> List[str]:
        raise ValueError("index read-only")


class DistanceStore:
    """Store returning fixed (document, distance) pairs in arbitrary order."""

    def __init__(self, pairs):
        self.pairs = pairs
        self.kwargs = None

    async def asimilarity_search_with_score(self, query: str, k: int = 4, **kwargs: Any):
        self.kwargs = kwargs
        return self.pairs[:k]

    async def aadd_documents(self, documents: List[Document], **kwargs: Any) -> List[str]:
        return [str(i) for i, _ in enumerate(documents)]


class TestSearch:
    @pytest.mark.asyncio
    async def test_results_sorted_best_first(self):
        store = DistanceStore(
            [
                (Document(page_content="far", metadata={"document_title": "Far"}), 0.9),
                (Document(page_content="near", metadata={"document_title": "Near"}), 0.1),
            ]
        )
        documents = await KnowledgeIndex(store).search("appeal", k=5)

        assert [d.content for d in documents] == ["near", "far"]
        assert documents[0].metadata.document_title == "Near"

    @pytest.mark.asyncio
    async def test_similarity_scores_become_distances(self, knowledge_index):
        documents = await knowledge_index.search("team selection grievance", k=2)

        assert len(documents) == 2
        assert all(-1.0 <= d.score <= 2.0 for d in documents)
        assert documents[0].score <= documents[1].score

    @pytest.mark.asyncio
    async def test_filter_restricts_results(self, knowledge_index):
        documents = await knowledge_index.search("appeal", k=5, filter={"ngb_id": {"$in": ["usa_swimming"]}})

        assert [d.metadata.ngb_id for d in documents] == ["usa_swimming"]

    @pytest.mark.asyncio
    async def test_filter_passed_to_store_without_adapter(self):
        store = DistanceStore([])
        await KnowledgeIndex(store).search("q", filter={"topic_domain": "safesport"})
        assert store.kwargs == {"filter": {"topic_domain": "safesport"}}


class TestBreakers:
    @pytest.mark.asyncio
    async def test_read_failures_open_read_breaker_only(self):
        index = KnowledgeIndex(FailingStore())
        for _ in range(5):
            with pytest.raises(ValueError):
                await index.search("q")

        assert vector_read_breaker.state == CircuitState.OPEN
        assert vector_write_breaker.state == CircuitState.CLOSED

        with pytest.raises(CircuitBreakerError):
            await index.search("q")

    @pytest.mark.asyncio
    async def test_write_returns_ids(self):
        ids = await KnowledgeIndex(DistanceStore([])).write([Document(page_content="a"), Document(page_content="b")])
        assert ids == ["0", "1"]

    @pytest.mark.asyncio
    async def test_empty_write_is_noop(self):
        assert await KnowledgeIndex(FailingStore()).write([]) == []


class TestMetadataFilterPredicate:
    def test_in_and_equality(self):
        predicate = metadata_filter_predicate({"ngb_id": {"$in": ["a", "b"]}, "topic_domain": "eligibility"})

        assert predicate(Document(page_content="", metadata={"ngb_id": "a", "topic_domain": "eligibility"}))
        assert not predicate(Document(page_content="", metadata={"ngb_id": "c", "topic_domain": "eligibility"}))
        assert not predicate(Document(page_content="", metadata={"ngb_id": "a", "topic_domain": "safesport"}))

    def test_or_matches_org_or_universal_documents(self):
        predicate = metadata_filter_predicate({"$or": [{"ngb_id": "usa_swimming"}, {"ngb_id": None}]})

        assert predicate(Document(page_content="", metadata={"ngb_id": "usa_swimming"}))
        assert predicate(Document(page_content="", metadata={"topic_domain": "dispute_resolution"}))
        assert not predicate(Document(page_content="", metadata={"ngb_id": "usa_diving"}))


class TestBuildInMemoryIndex:
    @pytest.mark.asyncio
    async def test_loads_persisted_store(self, knowledge_index, tmp_path):
        path = str(tmp_path / "knowledge.json")
        knowledge_index.store.dump(path)

        index = build_in_memory_index(path, embedding=DeterministicFakeEmbedding(size=32))
        documents = await index.search("appeal", k=5, filter={"ngb_id": "usa_swimming"})

        assert [doc.metadata.document_title for doc in documents] == ["USA Swimming Selection Procedures"]

    def test_without_path_starts_empty(self):
        index = build_in_memory_index(embedding=DeterministicFakeEmbedding(size=32))
        assert index.store.store == {}
