"""
Pytest configuration and fixtures for the athlete support agent tests.

Provides shared fixtures for:
- Test environment settings (no retry delay, fakeredis)
- Circuit breaker isolation between tests
- Fake chat models and an in-memory knowledge index
- Common conversation states
"""

from typing import Any, List

import pytest
from langchain_core.documents import Document
from langchain_core.embeddings import DeterministicFakeEmbedding
from langchain_core.language_models import BaseChatModel
from langchain_core.language_models.fake_chat_models import FakeListChatModel
from langchain_core.messages import AIMessage, AIMessageChunk, HumanMessage
from langchain_core.outputs import ChatGenerationChunk, ChatResult
from langchain_core.vectorstores import InMemoryVectorStore

from api.schemas.agent_state import AgentState, WebSearchResult
from api.services.vector_store_service import KnowledgeIndex, metadata_filter_predicate
from libs.common.settings import get_settings
from libs.resilience.circuit_breaker import reset_all_breakers


@pytest.fixture(autouse=True)
def setup_test_env(monkeypatch):
    """Test settings: fakeredis, no retry delay, fresh breakers."""
    monkeypatch.setenv("ATHLETE_AGENT_APP_ENV", "test")
    monkeypatch.setenv("ATHLETE_AGENT_TRANSIENT_RETRY_DELAY_SECONDS", "0")
    monkeypatch.delenv("REDIS_URL", raising=False)
    get_settings.cache_clear()
    reset_all_breakers()
    yield
    get_settings.cache_clear()
    reset_all_breakers()


@pytest.fixture
async def redis_client():
    """Provide a fakeredis client; flushed after the test."""
    from fakeredis import aioredis as fakeredis

    client = fakeredis.FakeRedis(decode_responses=True)
    yield client
    await client.flushdb()
    await client.aclose()


class FailingChatModel(BaseChatModel):
    """Chat model whose every call raises ``error``."""

    error: Any = None
    calls: int = 0

    @property
    def _llm_type(self) -> str:
        return "failing-fake"

    def _generate(self, messages, stop=None, run_manager=None, **kwargs) -> ChatResult:
        self.calls += 1
        raise self.error or RuntimeError("model unavailable")


class InterruptedStreamModel(BaseChatModel):
    """Streams ``first_tokens`` then raises ``error``; later calls stream ``recovered``."""

    first_tokens: List[str] = []
    recovered: str = "Final answer."
    error: Any = None
    calls: int = 0

    @property
    def _llm_type(self) -> str:
        return "interrupted-fake"

    def _generate(self, messages, stop=None, run_manager=None, **kwargs) -> ChatResult:
        raise NotImplementedError

    async def _astream(self, messages, stop=None, run_manager=None, **kwargs):
        self.calls += 1
        if self.calls > 1:
            yield ChatGenerationChunk(message=AIMessageChunk(content=self.recovered))
            return
        for token in self.first_tokens:
            yield ChatGenerationChunk(message=AIMessageChunk(content=token))
        raise self.error or ConnectionError("connection reset by peer")


def fake_model(*responses: str) -> FakeListChatModel:
    """Chat model returning ``responses`` in order (cycling)."""
    return FakeListChatModel(responses=list(responses))


@pytest.fixture
def failing_model():
    return FailingChatModel()


class StubWebSearch:
    """Web search collaborator returning canned results per query."""

    def __init__(self, results: List[WebSearchResult] = None, fail: bool = False):
        self.results = results or []
        self.fail = fail
        self.queries: List[str] = []

    async def search(self, query: str) -> List[WebSearchResult]:
        self.queries.append(query)
        if self.fail:
            raise RuntimeError("search unavailable")
        return list(self.results)


GOVERNANCE_DOCUMENTS = [
    Document(
        page_content=(
            "Athletes may appeal a team selection decision by filing a grievance with the NGB "
            "within 10 days of the published selection."
        ),
        metadata={
            "ngb_id": "usa_swimming",
            "topic_domain": "team_selection",
            "document_type": "selection_procedures",
            "source_url": "https://example.org/swimming/selection.pdf",
            "document_title": "USA Swimming Selection Procedures",
            "section_title": "Grievances",
            "effective_date": "2024-01-01",
            "authority_level": "ngb_policy",
        },
    ),
    Document(
        page_content="Section 9 of the Ted Stevens Act lets athletes challenge denied opportunities to compete.",
        metadata={
            "topic_domain": "dispute_resolution",
            "document_type": "federal_law",
            "source_url": "https://example.org/ted-stevens-act",
            "document_title": "Ted Stevens Olympic and Amateur Sports Act",
            "section_title": "Section 9",
            "authority_level": "law",
        },
    ),
]


@pytest.fixture
async def knowledge_index():
    """In-memory knowledge index with deterministic embeddings."""
    store = InMemoryVectorStore(embedding=DeterministicFakeEmbedding(size=32))
    index = KnowledgeIndex(store, filter_adapter=metadata_filter_predicate, scores_are_similarity=True)
    await index.write(GOVERNANCE_DOCUMENTS)
    return index


@pytest.fixture
def conversation_state():
    """State for a single-question conversation."""
    return AgentState(
        conversation_id="conv_test",
        messages=[HumanMessage(content="How do I appeal my team selection?")],
        user_sport="swimming",
    )


@pytest.fixture
def multi_turn_state():
    return AgentState(
        conversation_id="conv_multi",
        messages=[
            HumanMessage(content="I was left off the national team roster."),
            AIMessage(content="I'm sorry to hear that. Which sport and NGB?"),
            HumanMessage(content="Swimming. Can I appeal it?"),
        ],
        user_sport="swimming",
        topic_domain="team_selection",
    )
