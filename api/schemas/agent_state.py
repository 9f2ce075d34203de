"""Agent state schema for the athlete support pipeline.

This module defines the conversation state that flows through the LangGraph
orchestrator, the value types steps produce, and the client-facing stream
event. Topic domain, query intent and emotional state are closed sets; the
state model rejects anything else.
"""

from __future__ import annotations

import json
import uuid
from typing import Any, Dict, List, Literal, Optional, get_args

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage
from pydantic import BaseModel, ConfigDict, Field

TopicDomain = Literal[
    "team_selection",
    "dispute_resolution",
    "safesport",
    "anti_doping",
    "eligibility",
    "governance",
    "athlete_rights",
    "athlete_safety",
    "financial_assistance",
]
QueryIntent = Literal["factual", "procedural", "deadline", "escalation", "general"]
EmotionalState = Literal["neutral", "distressed", "panicked", "fearful"]
RetrievalStatus = Literal["success", "error"]
Urgency = Literal["immediate", "standard"]

TOPIC_DOMAINS: tuple[str, ...] = get_args(TopicDomain)
QUERY_INTENTS: tuple[str, ...] = get_args(QueryIntent)
EMOTIONAL_STATES: tuple[str, ...] = get_args(EmotionalState)


class DocumentMetadata(BaseModel):
    """Provenance attached to every indexed chunk."""

    ngb_id: Optional[str] = Field(default=None, description="National governing body identifier")
    topic_domain: Optional[str] = None
    document_type: Optional[str] = None
    source_url: Optional[str] = None
    document_title: Optional[str] = None
    section_title: Optional[str] = None
    effective_date: Optional[str] = None
    authority_level: Optional[str] = None


class RetrievedDocument(BaseModel):
    content: str
    metadata: DocumentMetadata = Field(default_factory=DocumentMetadata)
    score: float = Field(description="Vector distance; lower is more relevant")


class WebSearchResult(BaseModel):
    url: str
    title: str
    content: str
    score: float = 0.0


class Citation(BaseModel):
    """Citation information for a source used in the answer."""

    title: str
    url: Optional[str] = None
    document_type: str = Field(default="document", description="Source kind; 'web' for search results")
    section: Optional[str] = None
    effective_date: Optional[str] = None
    snippet: Optional[str] = None
    authority_level: Optional[str] = None


class EscalationInfo(BaseModel):
    target: str = Field(description="Escalation target identifier, e.g. 'athlete_ombuds'")
    organization: str
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    contact_url: Optional[str] = None
    reason: str
    urgency: Urgency = "standard"


class QualityIssue(BaseModel):
    type: str
    description: str
    severity: Literal["critical", "major", "minor"] = "minor"


class QualityCheckResult(BaseModel):
    """Outcome of one quality check.

    ``check_id`` is unique per produced result. Snapshots redeliver the whole
    state, so consumers compare ``check_id`` rather than values to detect a
    new outcome.
    """

    passed: bool
    score: float = Field(ge=0.0, le=1.0)
    issues: List[QualityIssue] = Field(default_factory=list)
    critique: str = ""
    check_id: str = Field(default_factory=lambda: uuid.uuid4().hex)


class StreamError(BaseModel):
    message: str
    code: str


class AgentState(BaseModel):
    """Conversation state flowing through every pipeline step."""

    model_config = ConfigDict(validate_assignment=True, extra="forbid")

    # Conversation
    conversation_id: Optional[str] = Field(default=None, description="Conversation identifier")
    messages: List[BaseMessage] = Field(default_factory=list, description="Role-tagged turns, oldest first")
    user_sport: Optional[str] = Field(default=None, description="User's sport context")
    conversation_summary: Optional[str] = Field(default=None, description="Rolling summary of earlier turns")

    # Classification
    topic_domain: Optional[TopicDomain] = None
    detected_org_ids: List[str] = Field(default_factory=list)
    query_intent: Optional[QueryIntent] = None
    has_time_constraint: bool = False
    needs_clarification: bool = False
    clarification_question: Optional[str] = None
    escalation_reason: Optional[str] = None
    emotional_state: EmotionalState = "neutral"

    # Retrieval and research
    retrieved_documents: List[RetrievedDocument] = Field(default_factory=list)
    retrieval_confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    retrieval_status: RetrievalStatus = "success"
    web_search_results: List[str] = Field(default_factory=list, description="Formatted web context for synthesis")
    web_search_result_urls: List[WebSearchResult] = Field(default_factory=list, description="Structured web results")

    # Answer
    answer: Optional[str] = None
    citations: List[Citation] = Field(default_factory=list)
    escalation: Optional[EscalationInfo] = None
    disclaimer_required: bool = True
    disclaimer: Optional[str] = None

    # Quality loop
    quality_check_result: Optional[QualityCheckResult] = None
    quality_retry_count: int = Field(default=0, ge=0, description="Completed re-synthesis passes")

    # Set when synthesis fails; the pipeline still finalizes, then reports it
    synthesis_error: Optional[StreamError] = None


class ConversationTurn(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class AgentInput(BaseModel):
    """Orchestrator input for one request."""

    turns: List[ConversationTurn] = Field(default_factory=list)
    conversation_id: Optional[str] = None
    user_sport: Optional[str] = None
    prior_summary: Optional[str] = None


class AgentOutput(BaseModel):
    """Final, non-streaming result of one request."""

    answer: str
    citations: List[Citation] = Field(default_factory=list)
    escalation: Optional[EscalationInfo] = None
    disclaimer: Optional[str] = None
    discovered_urls: List[WebSearchResult] = Field(default_factory=list)
    error_code: Optional[str] = None


StreamEventType = Literal[
    "text-delta", "citations", "escalation", "disclaimer", "status", "discovered-urls", "error", "done"
]


class StreamEvent(BaseModel):
    """Client-facing stream event; only the payload field matching ``type`` is set."""

    type: StreamEventType
    text: Optional[str] = None
    status: Optional[str] = None
    citations: Optional[List[Citation]] = None
    escalation: Optional[EscalationInfo] = None
    disclaimer: Optional[str] = None
    urls: Optional[List[WebSearchResult]] = None
    error: Optional[StreamError] = None

    def to_sse(self) -> str:
        """Server-Sent Events frame for this event."""
        data = self.model_dump(exclude_none=True, exclude={"type"})
        return f"event: {self.type}\ndata: {json.dumps(data)}\n\n"


class StateIncrement(BaseModel):
    """A streamed text token and the step that produced it."""

    text: str
    step_name: str


# Utility functions for state management

def turns_to_messages(turns: List[ConversationTurn]) -> List[BaseMessage]:
    messages: List[BaseMessage] = []
    for turn in turns:
        if turn.role == "user":
            messages.append(HumanMessage(content=turn.content))
        else:
            messages.append(AIMessage(content=turn.content))
    return messages


def create_initial_state(agent_input: AgentInput) -> AgentState:
    """Create initial state for a new request."""
    return AgentState(
        conversation_id=agent_input.conversation_id,
        messages=turns_to_messages(agent_input.turns),
        user_sport=agent_input.user_sport,
        conversation_summary=agent_input.prior_summary,
    )


def message_text(message: BaseMessage) -> str:
    content = message.content
    if isinstance(content, str):
        return content
    return "".join(
        block.get("text", "") if isinstance(block, dict) else str(block) for block in content
    )


def last_user_message(state: AgentState) -> str:
    """Text of the most recent user turn, or "" when there is none."""
    for message in reversed(state.messages):
        if isinstance(message, HumanMessage):
            return message_text(message)
    return ""


def state_fields(snapshot: Any) -> Dict[str, Any]:
    """Shallow field mapping for a state snapshot (model or mapping)."""
    if isinstance(snapshot, BaseModel):
        return {name: getattr(snapshot, name) for name in type(snapshot).model_fields}
    return dict(snapshot)
