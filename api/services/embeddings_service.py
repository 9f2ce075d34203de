"""
Embedding generation behind the ``openai-embeddings`` circuit breaker.

Quota exhaustion is excluded from breaker accounting: it is an account-level
condition that retrying or opening the circuit does not fix.
"""

from __future__ import annotations

from functools import lru_cache
from typing import List, Optional

import structlog
from langchain_core.embeddings import Embeddings
from langchain_openai import OpenAIEmbeddings

from libs.common.settings import get_settings
from libs.resilience.circuit_breaker import (
    CircuitBreakerConfig,
    get_circuit_breaker,
)
from api.services.llm_service import with_single_retry

logger = structlog.get_logger(__name__)


def _is_countable_embedding_failure(error: BaseException) -> bool:
    return "insufficient_quota" not in str(error)


EMBEDDINGS_CIRCUIT_CONFIG = CircuitBreakerConfig(
    name="openai-embeddings",
    failure_threshold=3,
    reset_timeout=60.0,
    request_timeout=30.0,
    success_threshold=2,
    should_record_failure=_is_countable_embedding_failure,
)

embeddings_breaker = get_circuit_breaker(EMBEDDINGS_CIRCUIT_CONFIG)


@lru_cache(maxsize=1)
def get_embeddings_client() -> OpenAIEmbeddings:
    settings = get_settings()
    return OpenAIEmbeddings(model=settings.embedding_model, max_retries=0, api_key=settings.openai_api_key)


async def embed_query(text: str, client: Optional[Embeddings] = None) -> List[float]:
    embedder = client or get_embeddings_client()
    return await embeddings_breaker.execute(
        lambda: with_single_retry(lambda: embedder.aembed_query(text), "embeddings.embed_query")
    )


async def embed_documents(texts: List[str], client: Optional[Embeddings] = None) -> List[List[float]]:
    if not texts:
        return []
    embedder = client or get_embeddings_client()
    logger.debug("Embedding documents", count=len(texts))
    return await embeddings_breaker.execute(
        lambda: with_single_retry(lambda: embedder.aembed_documents(texts), "embeddings.embed_documents")
    )


class ProtectedEmbeddings(Embeddings):
    """LangChain ``Embeddings`` adapter that routes through the breaker.

    Lets any LangChain vector store embed through the protected path. Only
    the async interface is supported; the pipeline never embeds synchronously.
    """

    def __init__(self, client: Optional[Embeddings] = None):
        self._client = client

    def embed_documents(self, texts: List[str]) -> List[List[float]]:
        raise NotImplementedError("ProtectedEmbeddings is async-only; use aembed_documents")

    def embed_query(self, text: str) -> List[float]:
        raise NotImplementedError("ProtectedEmbeddings is async-only; use aembed_query")

    async def aembed_documents(self, texts: List[str]) -> List[List[float]]:
        return await embed_documents(texts, client=self._client)

    async def aembed_query(self, text: str) -> List[float]:
        return await embed_query(text, client=self._client)
