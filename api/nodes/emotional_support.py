"""Emotional support step: a direct, calming response for acute distress."""

from typing import Any, Dict

import structlog

from api.composer.empathy import build_support_message
from api.schemas.agent_state import AgentState

logger = structlog.get_logger(__name__)


async def emotional_support_node(state: AgentState) -> Dict[str, Any]:
    logger.info(
        "emotional_support completed",
        emotional_state=state.emotional_state,
        topic_domain=state.topic_domain,
        conversation_id=state.conversation_id,
    )
    return {"answer": build_support_message(state.emotional_state, state.topic_domain)}
