"""Tests for the chat endpoints and the health probe."""

import json
from typing import List

import pytest
from fastapi.testclient import TestClient

from api.main import app
from api.orchestrators.runner import get_runner
from api.schemas.agent_state import AgentInput, AgentOutput, Citation, StreamError, StreamEvent
from api.services.llm_service import llm_breaker


class FakeRunner:
    """Runner double replaying a fixed event sequence."""

    def __init__(self, events: List[StreamEvent]):
        self.events = events
        self.inputs: List[AgentInput] = []

    async def stream(self, agent_input: AgentInput):
        self.inputs.append(agent_input)
        for event in self.events:
            yield event

    async def invoke(self, agent_input: AgentInput) -> AgentOutput:
        self.inputs.append(agent_input)
        text = "".join(e.text for e in self.events if e.type == "text-delta")
        error = next((e.error.code for e in self.events if e.type == "error"), None)
        return AgentOutput(answer=text, error_code=error)


ANSWER_EVENTS = [
    StreamEvent(type="status", status="Understanding your question..."),
    StreamEvent(type="text-delta", text="File a grievance "),
    StreamEvent(type="text-delta", text="within 10 days."),
    StreamEvent(type="citations", citations=[Citation(title="Selection Procedures")]),
    StreamEvent(type="done"),
]


def parse_sse(body: str) -> List[tuple]:
    frames = []
    for block in body.strip().split("\n\n"):
        lines = block.split("\n")
        event_type = lines[0][len("event: "):]
        data = json.loads(lines[1][len("data: "):])
        frames.append((event_type, data))
    return frames


@pytest.fixture
def client_with_runner():
    def make(events: List[StreamEvent]):
        runner = FakeRunner(events)
        app.dependency_overrides[get_runner] = lambda: runner
        return TestClient(app), runner

    yield make
    app.dependency_overrides.clear()


class TestChatStream:
    def test_streams_events_as_sse(self, client_with_runner):
        client, runner = client_with_runner(ANSWER_EVENTS)

        response = client.post(
            "/v1/chat/stream",
            json={"turns": [{"role": "user", "content": "How do I appeal?"}], "conversation_id": "conv_1"},
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["x-request-id"].startswith("chat_")

        frames = parse_sse(response.text)
        assert [t for t, _ in frames] == ["status", "text-delta", "text-delta", "citations", "done"]
        assert frames[1][1] == {"text": "File a grievance "}
        assert frames[-1] == ("done", {})
        assert runner.inputs[0].conversation_id == "conv_1"

    def test_error_event_followed_by_done(self, client_with_runner):
        client, _ = client_with_runner(
            [
                StreamEvent(type="text-delta", text="Partial"),
                StreamEvent(type="error", error=StreamError(message="Something went wrong", code="PIPELINE_ERROR")),
                StreamEvent(type="done"),
            ]
        )

        response = client.post("/v1/chat/stream", json={"turns": [{"role": "user", "content": "Hi"}]})
        frames = parse_sse(response.text)

        assert [t for t, _ in frames] == ["text-delta", "error", "done"]
        assert frames[1][1]["error"]["code"] == "PIPELINE_ERROR"

    def test_rejects_assistant_last_turn(self, client_with_runner):
        client, runner = client_with_runner(ANSWER_EVENTS)

        response = client.post(
            "/v1/chat/stream",
            json={
                "turns": [
                    {"role": "user", "content": "Hi"},
                    {"role": "assistant", "content": "Hello, how can I help?"},
                ]
            },
        )

        assert response.status_code == 422
        assert runner.inputs == []

    def test_rejects_empty_turns(self, client_with_runner):
        client, _ = client_with_runner(ANSWER_EVENTS)
        assert client.post("/v1/chat/stream", json={"turns": []}).status_code == 422


class TestChat:
    def test_returns_complete_output(self, client_with_runner):
        client, _ = client_with_runner(ANSWER_EVENTS)

        response = client.post("/v1/chat", json={"turns": [{"role": "user", "content": "How do I appeal?"}]})

        assert response.status_code == 200
        body = response.json()
        assert body["answer"] == "File a grievance within 10 days."
        assert body["error_code"] is None

    def test_failure_is_not_an_http_error(self, client_with_runner):
        client, _ = client_with_runner(
            [
                StreamEvent(type="error", error=StreamError(message="Something went wrong", code="PIPELINE_ERROR")),
                StreamEvent(type="done"),
            ]
        )

        response = client.post("/v1/chat", json={"turns": [{"role": "user", "content": "Hi"}]})

        assert response.status_code == 200
        assert response.json()["error_code"] == "PIPELINE_ERROR"


class TestHealth:
    def test_healthy_when_breakers_closed(self):
        response = TestClient(app).get("/healthz")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["circuit_breakers"]["llm"]["state"] == "closed"

    def test_degraded_when_breaker_open(self):
        llm_breaker.trip()

        body = TestClient(app).get("/healthz").json()

        assert body["status"] == "degraded"
        assert body["circuit_breakers"]["llm"]["state"] == "open"
