"""Request runner: one conversation turn from input to client events."""

from __future__ import annotations

import time
from typing import AsyncIterator, List, Optional

import structlog
from langchain_core.messages import AIMessage

from api.orchestrators.query_orchestrator import QueryOrchestrator, get_orchestrator
from api.orchestrators.stream_adapter import adapt_stream
from api.schemas.agent_state import AgentInput, AgentOutput, Citation, EscalationInfo, StreamEvent, WebSearchResult, create_initial_state
from libs.common.settings import Settings, get_settings
from libs.memory.conversation_memory import ConversationMemory, get_conversation_memory

logger = structlog.get_logger(__name__)


class AgentRunner:
    """Runs the orchestrator for one request and maintains the conversation summary."""

    def __init__(
        self,
        orchestrator: QueryOrchestrator,
        memory: Optional[ConversationMemory] = None,
        settings: Optional[Settings] = None,
    ):
        self.orchestrator = orchestrator
        self.memory = memory
        self.settings = settings or get_settings()

    @property
    def memory_enabled(self) -> bool:
        return self.memory is not None and self.settings.feature_conversation_memory

    async def stream(self, agent_input: AgentInput) -> AsyncIterator[StreamEvent]:
        """Client events for one request, ending with ``done``."""
        start_time = time.time()
        conversation_id = agent_input.conversation_id

        if agent_input.prior_summary is None and self.memory_enabled:
            prior_summary = await self.memory.load_summary(conversation_id)
            if prior_summary:
                agent_input = agent_input.model_copy(update={"prior_summary": prior_summary})

        state = create_initial_state(agent_input)
        answer_parts: List[str] = []
        failed = False

        async for event in adapt_stream(
            self.orchestrator.stream(state),
            max_quality_retries=self.settings.max_quality_retries,
            quality_check_enabled=self.settings.feature_quality_checker,
        ):
            if event.type == "text-delta" and event.text:
                answer_parts.append(event.text)
            elif event.type == "error":
                failed = True
            yield event

        # Runs after ``done`` has been delivered
        if not failed and self.memory_enabled and conversation_id:
            await self._update_summary(state.messages, "".join(answer_parts), agent_input)

        logger.info(
            "Request completed",
            conversation_id=conversation_id,
            failed=failed,
            answer_length=sum(len(part) for part in answer_parts),
            duration_ms=round((time.time() - start_time) * 1000, 2),
        )

    async def _update_summary(self, messages, answer: str, agent_input: AgentInput) -> None:
        turn = list(messages)
        if answer:
            turn.append(AIMessage(content=answer))
        summary = await self.memory.generate_summary(turn, agent_input.prior_summary)
        await self.memory.save_summary(agent_input.conversation_id, summary)

    async def invoke(self, agent_input: AgentInput) -> AgentOutput:
        """Run to completion. Synthesis failures yield the partial answer and an error code."""
        answer_parts: List[str] = []
        citations: List[Citation] = []
        escalation: Optional[EscalationInfo] = None
        disclaimer: Optional[str] = None
        discovered_urls: List[WebSearchResult] = []
        error_code: Optional[str] = None

        async for event in self.stream(agent_input):
            if event.type == "text-delta" and event.text:
                answer_parts.append(event.text)
            elif event.type == "citations":
                citations = event.citations or []
            elif event.type == "escalation":
                escalation = event.escalation
            elif event.type == "disclaimer":
                disclaimer = event.disclaimer
            elif event.type == "discovered-urls":
                discovered_urls = event.urls or []
            elif event.type == "error" and event.error is not None:
                error_code = event.error.code

        return AgentOutput(
            answer="".join(answer_parts),
            citations=citations,
            escalation=escalation,
            disclaimer=disclaimer,
            discovered_urls=discovered_urls,
            error_code=error_code,
        )


# Global runner instance
_runner: Optional[AgentRunner] = None


async def get_runner() -> AgentRunner:
    """Get or create the global runner."""
    global _runner
    if _runner is None:
        _runner = AgentRunner(get_orchestrator(), await get_conversation_memory())
    return _runner
