"""
Conversation memory: rolling summaries keyed by conversation id.

Provides:
- ``SummaryCache``: bounded, recency-ordered in-process store with a TTL
- ``RedisSummaryStore``: the same contract backed by Redis key expiry
- ``ConversationMemory``: loads, saves and regenerates summaries

Summary generation never raises; a failed model call keeps the existing
summary.
"""

import time
from collections import OrderedDict
from typing import Callable, Optional, Protocol, Sequence, Tuple

import structlog
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import BaseMessage

from api.composer.prompts import SUMMARY_TEMPLATE, format_conversation_context
from api.services.llm_service import extract_text_from_response, get_chat_model, invoke_llm_with_fallback
from libs.common.settings import get_settings

logger = structlog.get_logger(__name__)

NO_SUMMARY = "(none)"


class SummaryStore(Protocol):
    async def get(self, conversation_id: str) -> Optional[str]: ...

    async def set(self, conversation_id: str, summary: str) -> None: ...


class SummaryCache:
    """
    LRU map with per-entry expiry.

    ``get`` refreshes recency and evicts an entry found expired. ``set``
    marks the key most recently used and evicts the least recently used key
    when capacity is exceeded. Concurrent writes to one key are last-write-wins.
    """

    def __init__(
        self,
        capacity: int = 1000,
        ttl_seconds: float = 3600.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[str, float]]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, conversation_id: str) -> bool:
        return conversation_id in self._entries

    def get_sync(self, conversation_id: str) -> Optional[str]:
        entry = self._entries.get(conversation_id)
        if entry is None:
            return None
        summary, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[conversation_id]
            return None
        self._entries.move_to_end(conversation_id)
        return summary

    def set_sync(self, conversation_id: str, summary: str) -> None:
        self._entries[conversation_id] = (summary, self._clock() + self.ttl_seconds)
        self._entries.move_to_end(conversation_id)
        while len(self._entries) > self.capacity:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("Summary evicted", conversation_id=evicted)

    async def get(self, conversation_id: str) -> Optional[str]:
        return self.get_sync(conversation_id)

    async def set(self, conversation_id: str, summary: str) -> None:
        self.set_sync(conversation_id, summary)

    def clear(self) -> None:
        self._entries.clear()


class RedisSummaryStore:
    """Summaries in Redis, expiring with the key TTL."""

    def __init__(self, redis_client, ttl_seconds: int = 3600, key_prefix: str = "summary"):
        self.redis = redis_client
        self.ttl_seconds = ttl_seconds
        self.key_prefix = key_prefix

    def _key(self, conversation_id: str) -> str:
        return f"{self.key_prefix}:{conversation_id}"

    async def get(self, conversation_id: str) -> Optional[str]:
        value = await self.redis.get(self._key(conversation_id))
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        return value

    async def set(self, conversation_id: str, summary: str) -> None:
        await self.redis.setex(self._key(conversation_id), self.ttl_seconds, summary)


class ConversationMemory:
    """
    Conversation summaries for follow-up turns.

    Usage:
        memory = ConversationMemory(SummaryCache(), model)
        summary = await memory.load_summary(conversation_id)
        summary = await memory.generate_summary(messages, summary)
        await memory.save_summary(conversation_id, summary)
    """

    def __init__(self, store: SummaryStore, model: Optional[BaseChatModel] = None):
        self.store = store
        self.model = model

    async def load_summary(self, conversation_id: Optional[str]) -> Optional[str]:
        if not conversation_id:
            return None
        try:
            return await self.store.get(conversation_id)
        except Exception as e:
            logger.warning("Summary load failed", error=str(e), conversation_id=conversation_id)
            return None

    async def save_summary(self, conversation_id: Optional[str], summary: str) -> None:
        if not conversation_id or not summary:
            return
        try:
            await self.store.set(conversation_id, summary)
        except Exception as e:
            logger.warning("Summary save failed", error=str(e), conversation_id=conversation_id)

    async def generate_summary(
        self,
        messages: Sequence[BaseMessage],
        existing_summary: Optional[str] = None,
    ) -> str:
        """Merge ``existing_summary`` with ``messages`` into a new summary.

        Returns the existing summary (or "") when the model call fails.
        """
        unchanged = existing_summary or ""
        conversation = format_conversation_context(messages, exclude_latest=False)
        if not conversation:
            return unchanged

        start_time = time.time()
        try:
            model = self.model if self.model is not None else get_chat_model("classifier")
            prompt = SUMMARY_TEMPLATE.format_messages(
                existing_summary=existing_summary or NO_SUMMARY,
                conversation=conversation,
            )
            response = await invoke_llm_with_fallback(model, prompt, None)
            summary = extract_text_from_response(response).strip() if response is not None else ""
        except Exception as e:
            logger.warning("Summary generation failed", error=str(e), error_type=type(e).__name__)
            return unchanged

        if not summary:
            return unchanged

        logger.info(
            "Summary generated",
            summary_length=len(summary),
            duration_ms=round((time.time() - start_time) * 1000, 2),
        )
        return summary


# Global memory instance
_memory: Optional[ConversationMemory] = None


async def get_conversation_memory() -> ConversationMemory:
    """Get or create the global conversation memory."""
    global _memory
    if _memory is None:
        settings = get_settings()
        store: SummaryStore = SummaryCache(settings.summary_cache_capacity, settings.summary_ttl_seconds)
        if settings.summary_store == "redis":
            from libs.caching.redis_client import get_redis_client

            redis_client = await get_redis_client()
            if redis_client is not None:
                store = RedisSummaryStore(redis_client, ttl_seconds=settings.summary_ttl_seconds)
            else:
                logger.warning("Redis unavailable, using in-process summary cache")
        _memory = ConversationMemory(store)
    return _memory


def reset_conversation_memory() -> None:
    global _memory
    _memory = None
