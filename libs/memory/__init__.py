"""
Conversation memory.

Rolling per-conversation summaries held in a bounded LRU+TTL cache or Redis.
"""

from libs.memory.conversation_memory import (
    ConversationMemory,
    RedisSummaryStore,
    SummaryCache,
    SummaryStore,
    get_conversation_memory,
    reset_conversation_memory,
)

__all__ = [
    "ConversationMemory",
    "RedisSummaryStore",
    "SummaryCache",
    "SummaryStore",
    "get_conversation_memory",
    "reset_conversation_memory",
]
