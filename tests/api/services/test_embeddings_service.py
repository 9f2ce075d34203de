"""
Tests for the embeddings wrapper.

Tests verify:
- Protected embedding calls return the client's vectors
- Quota exhaustion never opens the breaker
- Other failures open it after the threshold
- ProtectedEmbeddings works inside a LangChain vector store
"""

from typing import List

import pytest
from langchain_core.documents import Document
from langchain_core.embeddings import DeterministicFakeEmbedding, Embeddings
from langchain_core.vectorstores import InMemoryVectorStore

from api.services.embeddings_service import ProtectedEmbeddings, embed_documents, embed_query, embeddings_breaker
from libs.common.errors import CircuitBreakerError
from libs.resilience.circuit_breaker import CircuitState


class RaisingEmbeddings(Embeddings):
    def __init__(self, message: str):
        self.message = message
        self.calls = 0

    def embed_documents(self, texts: List[str]) -> List[List[float]]:
        raise NotImplementedError

    def embed_query(self, text: str) -> List[float]:
        raise NotImplementedError

    async def aembed_query(self, text: str) -> List[float]:
        self.calls += 1
        raise RuntimeError(self.message)


@pytest.mark.asyncio
async def test_embed_query_returns_vector():
    vector = await embed_query("appeal deadline", client=DeterministicFakeEmbedding(size=8))
    assert len(vector) == 8


@pytest.mark.asyncio
async def test_embed_documents_empty_skips_client():
    assert await embed_documents([], client=RaisingEmbeddings("unused")) == []


@pytest.mark.asyncio
async def test_quota_errors_do_not_open_breaker():
    client = RaisingEmbeddings("Error code: 429 - insufficient_quota")

    for _ in range(5):
        with pytest.raises(RuntimeError):
            await embed_query("text", client=client)

    assert embeddings_breaker.state == CircuitState.CLOSED


@pytest.mark.asyncio
async def test_other_errors_open_breaker():
    client = RaisingEmbeddings("invalid model")

    for _ in range(3):
        with pytest.raises(RuntimeError):
            await embed_query("text", client=client)

    assert embeddings_breaker.state == CircuitState.OPEN
    with pytest.raises(CircuitBreakerError):
        await embed_query("text", client=client)
    assert client.calls == 3


@pytest.mark.asyncio
async def test_protected_embeddings_in_vector_store():
    store = InMemoryVectorStore(embedding=ProtectedEmbeddings(DeterministicFakeEmbedding(size=16)))
    await store.aadd_documents([Document(page_content="Whereabouts failures count toward a violation.")])

    results = await store.asimilarity_search_with_score("Whereabouts failures count toward a violation.", k=1)

    assert results[0][0].page_content.startswith("Whereabouts")


def test_sync_interface_unsupported():
    with pytest.raises(NotImplementedError):
        ProtectedEmbeddings().embed_query("text")
