"""Clarify step: ask the athlete for the detail needed to answer."""

from typing import Any, Dict

import structlog

from api.composer.empathy import with_empathy
from api.schemas.agent_state import AgentState

logger = structlog.get_logger(__name__)

DEFAULT_CLARIFICATION = (
    "I'd like to help you, but I need a bit more information. Could you please specify "
    "which sport or organization your question relates to?"
)


async def clarify_node(state: AgentState) -> Dict[str, Any]:
    question = (state.clarification_question or "").strip() or DEFAULT_CLARIFICATION
    logger.info("clarify completed", topic_domain=state.topic_domain, conversation_id=state.conversation_id)
    # A question back to the athlete carries no disclaimer
    return {
        "answer": with_empathy(question, state.emotional_state),
        "disclaimer_required": False,
    }
