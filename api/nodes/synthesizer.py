"""Synthesizer step: write the answer from retrieved and researched context."""

from __future__ import annotations

import time
from typing import Any, Callable, Dict, List, Optional

import structlog
from langchain_core.language_models import BaseChatModel
from langchain_core.runnables import RunnableConfig

from api.composer.empathy import get_tone_guidance
from api.composer.escalation import ATHLETE_OMBUDS
from api.composer.prompts import REVISION_GUIDANCE, SYNTHESIS_TEMPLATE, format_conversation_context
from api.schemas.agent_state import AgentState, RetrievedDocument, StreamError, last_user_message
from api.services.llm_service import stream_llm
from libs.common.errors import error_to_code, error_to_message
from libs.common.settings import get_settings

logger = structlog.get_logger(__name__)

NO_DOCUMENTS_CONTEXT = "(No governance documents matched this question.)"
NO_WEB_CONTEXT = "(No web sources.)"

SYNTHESIS_FAILURE_ANSWER = (
    "I ran into a problem while writing your answer. Please try again, or contact the "
    f"{ATHLETE_OMBUDS.organization} at {ATHLETE_OMBUDS.contact_email} or {ATHLETE_OMBUDS.contact_phone} "
    "for direct help."
)


def format_document(doc: RetrievedDocument, position: int) -> str:
    meta = doc.metadata
    heading = meta.document_title or "Untitled document"
    if meta.section_title:
        heading = f"{heading} - {meta.section_title}"
    details = [value for value in (meta.ngb_id, meta.effective_date, meta.source_url) if value]
    suffix = f" ({', '.join(details)})" if details else ""
    return f"[{position}] {heading}{suffix}\n{doc.content}"


def build_context(state: AgentState) -> str:
    if not state.retrieved_documents:
        return NO_DOCUMENTS_CONTEXT
    return "\n\n".join(format_document(doc, i) for i, doc in enumerate(state.retrieved_documents, start=1))


def is_retry(state: AgentState) -> bool:
    """A synthesis pass is a retry when the state already holds a failed check."""
    result = state.quality_check_result
    return result is not None and not result.passed


def create_synthesizer_node(model: BaseChatModel) -> Callable[..., Any]:
    """Build the synthesizer step bound to ``model``.

    Model failures are recorded in ``synthesis_error`` with whatever partial
    answer was streamed; the orchestrator finalizes and then raises them.
    """

    async def synthesizer_node(state: AgentState, config: Optional[RunnableConfig] = None) -> Dict[str, Any]:
        start_time = time.time()
        settings = get_settings()
        retrying = is_retry(state)
        retry_count = state.quality_retry_count + 1 if retrying else state.quality_retry_count

        logger.info(
            "synthesizer start",
            documents=len(state.retrieved_documents),
            web_results=len(state.web_search_results),
            retry_count=retry_count,
            conversation_id=state.conversation_id,
        )

        revision_guidance = ""
        if retrying and state.quality_check_result.critique:
            revision_guidance = REVISION_GUIDANCE.format(critique=state.quality_check_result.critique)

        tone_guidance = get_tone_guidance(state.emotional_state) if settings.feature_emotional_support else ""
        summary = f"Summary of earlier conversation: {state.conversation_summary}\n\n" if state.conversation_summary else ""

        prompt = SYNTHESIS_TEMPLATE.format_messages(
            tone_guidance=tone_guidance,
            context=build_context(state),
            web_context="\n\n".join(state.web_search_results) or NO_WEB_CONTEXT,
            summary=summary,
            conversation_context=format_conversation_context(state.messages) or "(first message)",
            sport=state.user_sport or "not specified",
            question=last_user_message(state),
            revision_guidance=revision_guidance,
        )

        streamed: List[str] = []
        try:
            answer = (await stream_llm(model, prompt, streamed, config=config)).strip()
        except Exception as e:
            partial = "".join(streamed)
            logger.error(
                "synthesizer failed",
                error=str(e),
                error_type=type(e).__name__,
                partial_length=len(partial),
                conversation_id=state.conversation_id,
            )
            # Tokens already streamed stay the answer; the orchestrator reports the error after finalizing
            return {
                "answer": partial or SYNTHESIS_FAILURE_ANSWER,
                "quality_retry_count": retry_count,
                "synthesis_error": StreamError(message=error_to_message(e), code=error_to_code(e)),
            }

        logger.info(
            "synthesizer completed",
            answer_length=len(answer),
            duration_ms=round((time.time() - start_time) * 1000, 2),
            conversation_id=state.conversation_id,
        )
        return {"answer": answer, "quality_retry_count": retry_count}

    return synthesizer_node
