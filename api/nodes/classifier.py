"""Classifier step: topic domain, intent, escalation and emotional state."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import structlog
from langchain_core.language_models import BaseChatModel
from langchain_core.runnables import RunnableConfig

from api.composer.prompts import CLASSIFIER_TEMPLATE, format_conversation_context
from api.nodes.json_output import parse_model_json
from api.schemas.agent_state import (
    EMOTIONAL_STATES,
    QUERY_INTENTS,
    TOPIC_DOMAINS,
    AgentState,
    last_user_message,
)
from api.services.llm_service import extract_text_from_response, invoke_llm

logger = structlog.get_logger(__name__)

DEFAULT_TOPIC_DOMAIN = "team_selection"
DEFAULT_QUERY_INTENT = "general"
DEFAULT_EMOTIONAL_STATE = "neutral"


@dataclass
class ClassificationResult:
    topic_domain: str = DEFAULT_TOPIC_DOMAIN
    detected_org_ids: List[str] = field(default_factory=list)
    query_intent: str = DEFAULT_QUERY_INTENT
    has_time_constraint: bool = False
    should_escalate: bool = False
    escalation_reason: Optional[str] = None
    needs_clarification: bool = False
    clarification_question: Optional[str] = None
    emotional_state: str = DEFAULT_EMOTIONAL_STATE
    diagnostics: List[str] = field(default_factory=list)

    def to_update(self) -> Dict[str, Any]:
        return {
            "topic_domain": self.topic_domain,
            "detected_org_ids": self.detected_org_ids,
            "query_intent": self.query_intent,
            "has_time_constraint": self.has_time_constraint,
            "escalation_reason": self.escalation_reason,
            "needs_clarification": self.needs_clarification,
            "clarification_question": self.clarification_question,
            "emotional_state": self.emotional_state,
        }


def _optional_text(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def parse_classifier_response(raw_text: str) -> ClassificationResult:
    """Validate raw classifier output, coercing invalid fields to defaults.

    Every coerced field adds one entry to ``diagnostics`` and one warning log.

    Raises:
        ValueError: output is not a JSON object
    """
    data = parse_model_json(raw_text)
    if not isinstance(data, dict):
        raise ValueError("Classifier output is not a JSON object")

    result = ClassificationResult()

    def coerce(key: str, allowed: tuple, default: str, required: bool = True) -> str:
        value = data.get(key)
        if value in allowed:
            return value
        if value is None and not required:
            return default
        diagnostic = f"Invalid {key} {value!r}; falling back to {default!r}"
        result.diagnostics.append(diagnostic)
        logger.warning("Classifier output corrected", field=key, value=repr(value), fallback=default)
        return default

    result.topic_domain = coerce("topicDomain", TOPIC_DOMAINS, DEFAULT_TOPIC_DOMAIN)
    result.query_intent = coerce("queryIntent", QUERY_INTENTS, DEFAULT_QUERY_INTENT)
    result.emotional_state = coerce("emotionalState", EMOTIONAL_STATES, DEFAULT_EMOTIONAL_STATE, required=False)

    org_ids = data.get("detectedOrgIds")
    if isinstance(org_ids, list):
        result.detected_org_ids = [org for org in org_ids if isinstance(org, str) and org]

    result.has_time_constraint = data.get("hasTimeConstraint") is True
    result.should_escalate = data.get("shouldEscalate") is True
    result.escalation_reason = _optional_text(data.get("escalationReason"))
    result.needs_clarification = data.get("needsClarification") is True
    result.clarification_question = _optional_text(data.get("clarificationQuestion"))

    if result.should_escalate:
        result.query_intent = "escalation"
        if result.escalation_reason is None:
            result.escalation_reason = "Your situation needs direct support from the right authority."

    return result


def create_classifier_node(model: BaseChatModel) -> Callable[..., Any]:
    """Build the classifier step bound to ``model``."""

    async def classifier_node(state: AgentState, config: Optional[RunnableConfig] = None) -> Dict[str, Any]:
        start_time = time.time()
        user_message = last_user_message(state)

        if not user_message.strip():
            logger.info("classifier skipped, empty conversation", conversation_id=state.conversation_id)
            return ClassificationResult().to_update()

        logger.info("classifier start", conversation_id=state.conversation_id)
        try:
            prompt = CLASSIFIER_TEMPLATE.format_messages(
                conversation_context=format_conversation_context(state.messages) or "(none)",
                user_message=user_message,
            )
            response = await invoke_llm(model, prompt, config=config)
            result = parse_classifier_response(extract_text_from_response(response))
        except Exception as e:
            logger.warning(
                "classifier failed, using defaults",
                error=str(e),
                error_type=type(e).__name__,
                conversation_id=state.conversation_id,
            )
            return ClassificationResult().to_update()

        logger.info(
            "classifier completed",
            topic_domain=result.topic_domain,
            query_intent=result.query_intent,
            emotional_state=result.emotional_state,
            needs_clarification=result.needs_clarification,
            diagnostics=len(result.diagnostics),
            duration_ms=round((time.time() - start_time) * 1000, 2),
            conversation_id=state.conversation_id,
        )
        return result.to_update()

    return classifier_node
