"""
Test suite for the AgentState model and stream event types.

This test suite covers:
- AgentState defaults and closed-set validation
- Initial state creation from a request
- Stream event SSE framing
- Snapshot field mapping
"""

import json

import pytest
from langchain_core.messages import AIMessage, HumanMessage
from pydantic import ValidationError

from api.schemas.agent_state import (
    AgentInput,
    AgentState,
    Citation,
    ConversationTurn,
    QualityCheckResult,
    StreamError,
    StreamEvent,
    create_initial_state,
    last_user_message,
    state_fields,
)


class TestAgentStateBasicFunctionality:
    """Test basic AgentState model functionality."""

    def test_defaults(self):
        state = AgentState()

        assert state.messages == []
        assert state.emotional_state == "neutral"
        assert state.retrieval_confidence == 0.0
        assert state.retrieval_status == "success"
        assert state.disclaimer_required is True
        assert state.quality_retry_count == 0
        assert state.answer is None

    def test_rejects_unknown_topic_domain(self):
        with pytest.raises(ValidationError):
            AgentState(topic_domain="weather")

    def test_rejects_unknown_emotional_state(self):
        with pytest.raises(ValidationError):
            AgentState(emotional_state="ecstatic")

    def test_confidence_is_bounded(self):
        with pytest.raises(ValidationError):
            AgentState(retrieval_confidence=1.5)

    def test_quality_score_is_bounded(self):
        with pytest.raises(ValidationError):
            QualityCheckResult(passed=True, score=-0.1)


class TestInitialState:
    def test_turns_become_messages(self):
        agent_input = AgentInput(
            turns=[
                ConversationTurn(role="user", content="I was left off the roster."),
                ConversationTurn(role="assistant", content="Which sport?"),
                ConversationTurn(role="user", content="Swimming."),
            ],
            conversation_id="conv_42",
            user_sport="swimming",
            prior_summary="Athlete disputes selection.",
        )
        state = create_initial_state(agent_input)

        assert [type(m) for m in state.messages] == [HumanMessage, AIMessage, HumanMessage]
        assert state.conversation_id == "conv_42"
        assert state.user_sport == "swimming"
        assert state.conversation_summary == "Athlete disputes selection."
        assert last_user_message(state) == "Swimming."

    def test_no_user_message(self):
        assert last_user_message(AgentState(messages=[AIMessage(content="Hello")])) == ""


class TestStreamEvent:
    def test_sse_frame_excludes_type_and_empty_fields(self):
        frame = StreamEvent(type="text-delta", text="Hello").to_sse()

        assert frame == 'event: text-delta\ndata: {"text": "Hello"}\n\n'

    def test_done_has_empty_payload(self):
        assert StreamEvent(type="done").to_sse() == "event: done\ndata: {}\n\n"

    def test_nested_payload_serializes(self):
        event = StreamEvent(type="citations", citations=[Citation(title="Bylaws", url="https://example.org")])
        data = json.loads(event.to_sse().split("data: ", 1)[1])

        assert data["citations"][0]["title"] == "Bylaws"
        assert data["citations"][0]["document_type"] == "document"

    def test_error_payload(self):
        event = StreamEvent(type="error", error=StreamError(message="Something went wrong", code="PIPELINE_ERROR"))
        data = json.loads(event.to_sse().split("data: ", 1)[1])
        assert data == {"error": {"message": "Something went wrong", "code": "PIPELINE_ERROR"}}

    def test_rejects_unknown_type(self):
        with pytest.raises(ValidationError):
            StreamEvent(type="progress")


class TestStateFields:
    def test_model_snapshot(self):
        fields = state_fields(AgentState(answer="Done"))
        assert fields["answer"] == "Done"
        assert "quality_check_result" in fields

    def test_mapping_snapshot(self):
        assert state_fields({"answer": "Done"}) == {"answer": "Done"}
