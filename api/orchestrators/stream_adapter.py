"""
Stream adapter: raw orchestrator feed -> client stream events.

The orchestrator feed interleaves cumulative state snapshots with model
tokens. The adapter turns that into an ordered stream of ``StreamEvent``s:

- synthesizer tokens are buffered until a quality check resolves them, so a
  draft that is rejected and re-synthesized never reaches the client
- answers set directly by a step (clarify, escalate, emotional support) are
  emitted as suffix diffs of the snapshot's ``answer``
- a failed synthesis flushes the tokens it streamed; the finalized answer
  continues from them
- citations, escalation and disclaimer are emitted once each
- every stream ends with exactly one ``done``, also when the feed fails
"""

from __future__ import annotations

from typing import Any, AsyncIterable, AsyncIterator, Dict, List, Mapping, Optional

import structlog

from api.nodes import CLASSIFIER, QUALITY_CHECKER, RESEARCHER, RETRIEVER, SYNTHESIZER
from api.orchestrators.query_orchestrator import INCREMENT, SNAPSHOT, FeedRecord, retries_remain
from api.schemas.agent_state import StreamError, StreamEvent
from libs.common.errors import error_to_code, error_to_message
from libs.common.settings import get_settings

logger = structlog.get_logger(__name__)

# Steps whose tokens form the answer
STREAMING_STEPS = frozenset({SYNTHESIZER})

# Progress labels for steps whose tokens are not shown; retrieval has no
# model call and is announced from snapshots instead
STEP_STATUS_LABELS: Dict[str, str] = {
    CLASSIFIER: "Understanding your question...",
    RETRIEVER: "Searching governance documents...",
    RESEARCHER: "Searching the web...",
    QUALITY_CHECKER: "Reviewing answer quality...",
}


def _field(obj: Any, name: str, default: Any = None) -> Any:
    if obj is None:
        return default
    if isinstance(obj, Mapping):
        return obj.get(name, default)
    return getattr(obj, name, default)


class StreamAdapter:
    """Per-stream event state. Create one per request; not reusable."""

    def __init__(
        self,
        max_quality_retries: Optional[int] = None,
        quality_check_enabled: Optional[bool] = None,
    ):
        settings = get_settings()
        self.max_quality_retries = (
            settings.max_quality_retries if max_quality_retries is None else max_quality_retries
        )
        self.quality_check_enabled = (
            settings.feature_quality_checker if quality_check_enabled is None else quality_check_enabled
        )

        self._buffer: List[str] = []
        self._last_status: Optional[str] = None
        self._retrieval_status_seen = False
        self._last_check_id: Optional[str] = None
        self._emitted_answer = ""
        self._citations_emitted = False
        self._escalation_emitted = False
        self._disclaimer_emitted = False
        self._discovered: Dict[str, Any] = {}
        self._synthesis_failed = False

    def _status(self, label: str) -> List[StreamEvent]:
        if label == self._last_status:
            return []
        self._last_status = label
        return [StreamEvent(type="status", status=label)]

    def flush(self) -> List[StreamEvent]:
        """Buffered tokens as text deltas, clearing the buffer."""
        events = [StreamEvent(type="text-delta", text=text) for text in self._buffer]
        self._buffer = []
        return events

    def _discard(self) -> None:
        logger.debug("Discarding rejected draft tokens", tokens=len(self._buffer))
        self._buffer = []
        # The retry pass announces its quality check again
        self._last_status = None

    def on_increment(self, increment: Any) -> List[StreamEvent]:
        step_name = _field(increment, "step_name", "")
        text = _field(increment, "text", "")
        events: List[StreamEvent] = []

        if step_name in STREAMING_STEPS:
            if text:
                self._buffer.append(text)
            return events

        label = STEP_STATUS_LABELS.get(step_name)
        if label:
            events.extend(self._status(label))
        return events

    def on_snapshot(self, snapshot: Mapping[str, Any]) -> List[StreamEvent]:
        events: List[StreamEvent] = []

        if not self._retrieval_status_seen and snapshot.get("retrieved_documents"):
            self._retrieval_status_seen = True
            events.extend(self._status(STEP_STATUS_LABELS[RETRIEVER]))

        events.extend(self._resolve_quality_check(snapshot))
        events.extend(self._resolve_synthesis_failure(snapshot))

        answer = snapshot.get("answer") or ""
        if not self.quality_check_enabled and self._buffer and answer and answer != self._emitted_answer:
            # Without a quality gate the finished answer resolves the buffered tokens
            events.extend(self.flush())
            self._emitted_answer = answer
        if not self._buffer and len(answer) > len(self._emitted_answer):
            events.append(StreamEvent(type="text-delta", text=answer[len(self._emitted_answer):]))
            self._emitted_answer = answer

        citations = snapshot.get("citations")
        if not self._citations_emitted and citations:
            self._citations_emitted = True
            events.append(StreamEvent(type="citations", citations=list(citations)))

        escalation = snapshot.get("escalation")
        if not self._escalation_emitted and escalation is not None:
            self._escalation_emitted = True
            events.append(StreamEvent(type="escalation", escalation=escalation))

        disclaimer = snapshot.get("disclaimer")
        if not self._disclaimer_emitted and disclaimer:
            self._disclaimer_emitted = True
            events.append(StreamEvent(type="disclaimer", disclaimer=disclaimer))

        for result in snapshot.get("web_search_result_urls") or []:
            url = _field(result, "url")
            if url and url not in self._discovered:
                self._discovered[url] = result

        return events

    def _resolve_quality_check(self, snapshot: Mapping[str, Any]) -> List[StreamEvent]:
        result = snapshot.get("quality_check_result")
        check_id = _field(result, "check_id")
        if result is None or check_id == self._last_check_id:
            return []
        self._last_check_id = check_id

        answer = snapshot.get("answer") or ""
        retry_count = snapshot.get("quality_retry_count") or 0

        if _field(result, "passed", True) or not retries_remain(retry_count, self.max_quality_retries):
            events = self.flush()
        else:
            self._discard()
            events = []
        self._emitted_answer = answer
        return events

    def _resolve_synthesis_failure(self, snapshot: Mapping[str, Any]) -> List[StreamEvent]:
        """Partial tokens of a failed synthesis are kept; the finalized answer continues from them."""
        if self._synthesis_failed or snapshot.get("synthesis_error") is None:
            return []
        self._synthesis_failed = True
        events = self.flush()
        self._emitted_answer = "".join(event.text for event in events)
        return events

    def discovered_urls_event(self) -> Optional[StreamEvent]:
        if not self._discovered:
            return None
        return StreamEvent(type="discovered-urls", urls=list(self._discovered.values()))


async def adapt_stream(
    feed: AsyncIterable[FeedRecord],
    max_quality_retries: Optional[int] = None,
    quality_check_enabled: Optional[bool] = None,
) -> AsyncIterator[StreamEvent]:
    """Client events for ``feed``; always terminates with a single ``done``."""
    adapter = StreamAdapter(max_quality_retries, quality_check_enabled)
    errored = False

    try:
        async for kind, payload in feed:
            if kind == INCREMENT:
                events = adapter.on_increment(payload)
            elif kind == SNAPSHOT:
                events = adapter.on_snapshot(payload)
            else:
                logger.warning("Unknown feed record ignored", kind=kind)
                continue
            for event in events:
                yield event
    except Exception as e:
        errored = True
        # Partial progress goes out before the error
        for event in adapter.flush():
            yield event
        code = error_to_code(e)
        logger.error("Stream failed", error=str(e), error_code=code)
        yield StreamEvent(type="error", error=StreamError(message=error_to_message(e), code=code))

    for event in adapter.flush():
        yield event

    if not errored:
        urls_event = adapter.discovered_urls_event()
        if urls_event is not None:
            yield urls_event

    yield StreamEvent(type="done")
