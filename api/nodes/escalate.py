"""Escalate step: refer the athlete to the authority that can act."""

from typing import Any, Dict

import structlog

from api.composer.escalation import build_escalation, build_referral_message
from api.composer.empathy import with_empathy
from api.schemas.agent_state import AgentState

logger = structlog.get_logger(__name__)

DEFAULT_ESCALATION_REASON = "Your situation needs direct support from the right authority."


async def escalate_node(state: AgentState) -> Dict[str, Any]:
    reason = state.escalation_reason or DEFAULT_ESCALATION_REASON
    escalation = build_escalation(state.topic_domain, reason, state.has_time_constraint)
    message = build_referral_message(state.topic_domain, reason, escalation.urgency)

    logger.info(
        "escalate completed",
        target=escalation.target,
        urgency=escalation.urgency,
        topic_domain=state.topic_domain,
        conversation_id=state.conversation_id,
    )
    return {
        "answer": with_empathy(message, state.emotional_state),
        "escalation": escalation,
    }
