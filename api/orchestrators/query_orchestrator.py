"""Query orchestrator for the athlete support pipeline.

This module wires the processing steps into a LangGraph state machine:

    classifier -> clarify | escalate | emotional_support | retriever
    retriever -> researcher (low confidence) | synthesizer
    researcher -> synthesizer
    synthesizer -> quality_checker | citation_builder (synthesis failed)
    quality_checker -> synthesizer (failed, retries remain) | citation_builder
    clarify | escalate | emotional_support -> citation_builder
    citation_builder -> disclaimer_guard -> END

The quality loop is bounded by ``quality_retry_count`` in state; the cap is
enforced here in the routing, never by the steps. A failed synthesis still
finalizes (citations, disclaimer) and the recorded error is raised once the
final snapshot has been yielded.
"""

from __future__ import annotations

from typing import Any, AsyncIterator, Dict, Optional, Tuple

import structlog
from langchain_core.runnables import RunnableConfig
from langgraph.graph import END, StateGraph

from api.nodes import (
    CITATION_BUILDER,
    CLARIFY,
    CLASSIFIER,
    DISCLAIMER_GUARD,
    EMOTIONAL_SUPPORT,
    ESCALATE,
    QUALITY_CHECKER,
    RESEARCHER,
    RETRIEVER,
    SYNTHESIZER,
    StepDependencies,
    build_step_table,
)
from api.schemas.agent_state import AgentState, StateIncrement, StreamError, state_fields
from api.services.llm_service import extract_text_from_response, get_chat_model
from api.services.vector_store_service import build_in_memory_index
from api.services.web_search_service import WebSearchClient
from libs.common.errors import AppError
from libs.common.settings import Settings, get_settings

logger = structlog.get_logger(__name__)

FeedRecord = Tuple[str, Any]

SNAPSHOT = "snapshot"
INCREMENT = "increment"


def route_after_classify(state: AgentState, emotional_support_enabled: bool = True) -> str:
    if state.needs_clarification:
        return CLARIFY
    if state.query_intent == "escalation":
        return ESCALATE
    if emotional_support_enabled and state.emotional_state == "panicked":
        return EMOTIONAL_SUPPORT
    return RETRIEVER


def route_after_retrieve(state: AgentState, confidence_threshold: float) -> str:
    if state.retrieval_confidence < confidence_threshold:
        return RESEARCHER
    return SYNTHESIZER


def route_after_synthesize(state: AgentState, quality_check_enabled: bool) -> str:
    if state.synthesis_error is not None or not quality_check_enabled:
        return CITATION_BUILDER
    return QUALITY_CHECKER


def retries_remain(retry_count: int, max_retries: int) -> bool:
    return retry_count < max_retries


def route_after_quality_check(state: AgentState, max_retries: int) -> str:
    result = state.quality_check_result
    if result is None or result.passed:
        return CITATION_BUILDER
    if retries_remain(state.quality_retry_count, max_retries):
        return SYNTHESIZER
    logger.warning(
        "Quality retries exhausted, finalizing best-effort answer",
        retry_count=state.quality_retry_count,
        score=result.score,
        conversation_id=state.conversation_id,
    )
    return CITATION_BUILDER


def raise_synthesis_error(fields: Dict[str, Any], conversation_id: Optional[str] = None) -> None:
    """Raise the synthesis failure recorded in a final snapshot, if any."""
    if fields.get("synthesis_error") is None:
        return
    error = StreamError.model_validate(fields["synthesis_error"])
    logger.error("Pipeline finalized after synthesis failure", error_code=error.code, conversation_id=conversation_id)
    raise AppError(error.message, code=error.code)


class QueryOrchestrator:
    """Runs one conversation turn through the processing steps."""

    def __init__(self, deps: StepDependencies, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.steps = build_step_table(deps)
        self.graph = self._build_graph()

    def _build_graph(self):
        """Build the LangGraph state machine from the step dispatch table."""
        settings = self.settings
        graph = StateGraph(AgentState)

        for name, step in self.steps.items():
            if name == QUALITY_CHECKER and not settings.feature_quality_checker:
                continue
            graph.add_node(name, step)

        graph.set_entry_point(CLASSIFIER)

        graph.add_conditional_edges(
            CLASSIFIER,
            lambda state: route_after_classify(state, settings.feature_emotional_support),
            {
                CLARIFY: CLARIFY,
                ESCALATE: ESCALATE,
                EMOTIONAL_SUPPORT: EMOTIONAL_SUPPORT,
                RETRIEVER: RETRIEVER,
            },
        )
        graph.add_conditional_edges(
            RETRIEVER,
            lambda state: route_after_retrieve(state, settings.retrieval_confidence_threshold),
            {RESEARCHER: RESEARCHER, SYNTHESIZER: SYNTHESIZER},
        )
        graph.add_edge(RESEARCHER, SYNTHESIZER)

        synthesize_targets = {CITATION_BUILDER: CITATION_BUILDER}
        if settings.feature_quality_checker:
            synthesize_targets[QUALITY_CHECKER] = QUALITY_CHECKER
        graph.add_conditional_edges(
            SYNTHESIZER,
            lambda state: route_after_synthesize(state, settings.feature_quality_checker),
            synthesize_targets,
        )

        if settings.feature_quality_checker:
            graph.add_conditional_edges(
                QUALITY_CHECKER,
                lambda state: route_after_quality_check(state, settings.max_quality_retries),
                {SYNTHESIZER: SYNTHESIZER, CITATION_BUILDER: CITATION_BUILDER},
            )

        for direct_answer_step in (CLARIFY, ESCALATE, EMOTIONAL_SUPPORT):
            graph.add_edge(direct_answer_step, CITATION_BUILDER)

        graph.add_edge(CITATION_BUILDER, DISCLAIMER_GUARD)
        graph.add_edge(DISCLAIMER_GUARD, END)

        return graph.compile()

    def _run_config(self, state: AgentState) -> RunnableConfig:
        return RunnableConfig(
            run_name="athlete_support_agent",
            recursion_limit=25,
            metadata={"conversation_id": state.conversation_id},
        )

    async def stream(self, state: AgentState) -> AsyncIterator[FeedRecord]:
        """Raw event feed: ``("snapshot", fields)`` and ``("increment", StateIncrement)``.

        Snapshots are cumulative. Increments carry model tokens tagged with the
        step that produced them. Step failures that are not absorbed propagate
        to the consumer; a recorded synthesis failure is raised after the final
        snapshot.
        """
        logger.info("Pipeline started", conversation_id=state.conversation_id, turns=len(state.messages))
        final: Dict[str, Any] = {}
        try:
            async for mode, data in self.graph.astream(
                state,
                config=self._run_config(state),
                stream_mode=["values", "messages"],
            ):
                if mode == "values":
                    final = state_fields(data)
                    yield SNAPSHOT, final
                elif mode == "messages":
                    chunk, metadata = data
                    text = extract_text_from_response(chunk)
                    if text:
                        step_name = (metadata or {}).get("langgraph_node", "")
                        yield INCREMENT, StateIncrement(text=text, step_name=step_name)
        except Exception as e:
            logger.error(
                "Pipeline failed",
                error=str(e),
                error_type=type(e).__name__,
                conversation_id=state.conversation_id,
            )
            raise
        raise_synthesis_error(final, state.conversation_id)
        logger.info("Pipeline completed", conversation_id=state.conversation_id)

    async def invoke(self, state: AgentState) -> Dict[str, Any]:
        """Run to completion and return the final state fields."""
        result = state_fields(await self.graph.ainvoke(state, config=self._run_config(state)))
        raise_synthesis_error(result, state.conversation_id)
        return result


def build_default_dependencies() -> StepDependencies:
    return StepDependencies(
        classifier_model=get_chat_model("classifier"),
        synthesis_model=get_chat_model("synthesis"),
        knowledge_index=build_in_memory_index(get_settings().knowledge_index_path),
        web_search=WebSearchClient(),
    )


# Global orchestrator instance
_orchestrator: Optional[QueryOrchestrator] = None


def get_orchestrator() -> QueryOrchestrator:
    """Get or create the global orchestrator instance."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = QueryOrchestrator(build_default_dependencies())
    return _orchestrator
