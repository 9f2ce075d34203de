from __future__ import annotations

import time
import uuid
from typing import AsyncGenerator

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from api.models import ChatRequest
from api.orchestrators.runner import AgentRunner, get_runner
from api.schemas.agent_state import AgentOutput

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.post("/v1/chat/stream", tags=["Chat"])
async def stream_chat(
    chat_request: ChatRequest,
    runner: AgentRunner = Depends(get_runner),
) -> StreamingResponse:
    """Answer one chat turn as a Server-Sent Events stream.

    Each frame is ``event: <type>`` followed by a JSON ``data`` line. The
    stream always ends with a ``done`` event, also after an ``error`` event.

    Example:
        ```bash
        curl -N -X POST http://localhost:8000/v1/chat/stream \\
          -H "Content-Type: application/json" \\
          -d '{"turns": [{"role": "user", "content": "How do I appeal a selection decision?"}]}'
        ```
    """
    request_id = f"chat_{uuid.uuid4().hex[:12]}"
    agent_input = chat_request.to_agent_input()
    logger.info(
        "Chat stream started",
        request_id=request_id,
        conversation_id=agent_input.conversation_id,
        turns=len(agent_input.turns),
    )

    async def generate_sse_stream() -> AsyncGenerator[str, None]:
        start_time = time.time()
        events = 0
        async for event in runner.stream(agent_input):
            events += 1
            yield event.to_sse()
        logger.info(
            "Chat stream completed",
            request_id=request_id,
            events=events,
            processing_time_ms=round((time.time() - start_time) * 1000, 2),
        )

    return StreamingResponse(
        generate_sse_stream(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Request-ID": request_id,
        },
    )


@router.post("/v1/chat", response_model=AgentOutput, tags=["Chat"])
async def chat(
    chat_request: ChatRequest,
    runner: AgentRunner = Depends(get_runner),
) -> AgentOutput:
    """Answer one chat turn and return the complete result.

    Synthesis failures do not produce an HTTP error: the partial answer is
    returned with ``error_code`` set.
    """
    start_time = time.time()
    output = await runner.invoke(chat_request.to_agent_input())
    logger.info(
        "Chat completed",
        conversation_id=chat_request.conversation_id,
        error_code=output.error_code,
        answer_length=len(output.answer),
        processing_time_ms=round((time.time() - start_time) * 1000, 2),
    )
    return output
