"""
Language-model invocation behind the ``llm`` circuit breaker.

Every chat-model call in the agent goes through ``invoke_llm`` (critical
paths, errors propagate), ``invoke_llm_with_fallback`` (degrade-gracefully
paths) or ``stream_llm`` (answer synthesis). For the non-streaming calls a
single retry for transient errors runs inside the breaker call, so the
breaker only sees the final outcome.
"""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Any, Awaitable, Callable, List, Optional, Sequence, TypeVar

import httpx
import structlog
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import BaseMessage
from langchain_core.runnables import RunnableConfig
from langchain_openai import ChatOpenAI
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt, wait_fixed

from libs.common.errors import AppError, CircuitBreakerError, ExternalServiceError, OperationTimeoutError
from libs.common.settings import get_settings
from libs.resilience.circuit_breaker import (
    CircuitBreakerConfig,
    get_circuit_breaker,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")

LLM_CIRCUIT_CONFIG = CircuitBreakerConfig(
    name="llm",
    failure_threshold=3,
    reset_timeout=60.0,
    request_timeout=30.0,
    success_threshold=2,
)

llm_breaker = get_circuit_breaker(LLM_CIRCUIT_CONFIG)

TRANSIENT_STATUS_CODES = frozenset({429, 500, 502, 503, 529})
_TRANSIENT_STATUS_PATTERN = re.compile(r"\b(429|500|502|503|529)\b")
_TRANSIENT_MESSAGE_MARKERS = (
    "econnreset",
    "econnrefused",
    "etimedout",
    "socket hang up",
    "network",
    "timeout",
    "timed out",
    "connection reset",
    "connection refused",
)


def is_transient_error(error: BaseException) -> bool:
    """Heuristic: is this failure worth one more attempt?

    Network errors, timeouts and 429/500/502/503/529 responses are transient.
    Breaker-open, authentication and validation errors are not.
    """
    if isinstance(error, CircuitBreakerError):
        return False
    if isinstance(error, ExternalServiceError):
        return error.upstream_status in TRANSIENT_STATUS_CODES
    if isinstance(error, (OperationTimeoutError, TimeoutError, httpx.TransportError)):
        return True

    message = str(error).lower()
    if any(marker in message for marker in _TRANSIENT_MESSAGE_MARKERS):
        return True
    if _TRANSIENT_STATUS_PATTERN.search(message):
        return True

    # AppError.status_code is our own HTTP mapping, not the upstream response
    if isinstance(error, AppError):
        return False

    status = getattr(error, "status_code", None) or getattr(error, "status", None)
    if status is None:
        response = getattr(error, "response", None)
        status = getattr(response, "status_code", None)
    return status in TRANSIENT_STATUS_CODES


def _log_retry(operation_name: str) -> Callable[[RetryCallState], None]:
    def before_sleep(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "Transient error, retrying once",
            operation=operation_name,
            attempt=retry_state.attempt_number,
            error=str(error),
        )

    return before_sleep


async def with_single_retry(
    operation: Callable[[], Awaitable[T]],
    operation_name: str = "operation",
) -> T:
    """Run ``operation``, retrying exactly once after a fixed delay on transient errors.

    ``operation`` returns a fresh awaitable per attempt and is awaited here.
    """
    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(2),
        wait=wait_fixed(get_settings().transient_retry_delay_seconds),
        retry=retry_if_exception(is_transient_error),
        before_sleep=_log_retry(operation_name),
        reraise=True,
    ):
        with attempt:
            return await operation()


def extract_text_from_response(response: Any) -> str:
    """Plain text from a model response.

    Accepts a message object, a bare string, or a list of typed content blocks
    (only ``{"type": "text"}`` blocks contribute).
    """
    content = getattr(response, "content", response)
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(str(block.get("text", "")))
        return "".join(parts)
    return ""


async def invoke_llm(
    model: BaseChatModel,
    messages: Sequence[BaseMessage],
    config: Optional[RunnableConfig] = None,
) -> Any:
    """Invoke ``model`` through the breaker; failures propagate."""
    return await llm_breaker.execute(
        lambda: with_single_retry(lambda: model.ainvoke(list(messages), config=config), "llm.invoke")
    )


async def invoke_llm_with_fallback(
    model: BaseChatModel,
    messages: Sequence[BaseMessage],
    fallback: Any,
    config: Optional[RunnableConfig] = None,
) -> Any:
    """Invoke ``model`` through the breaker, returning ``fallback`` on any failure."""
    return await llm_breaker.execute_with_fallback(
        lambda: with_single_retry(lambda: model.ainvoke(list(messages), config=config), "llm.invoke"),
        fallback,
    )


async def stream_llm(
    model: BaseChatModel,
    messages: Sequence[BaseMessage],
    sink: List[str],
    config: Optional[RunnableConfig] = None,
) -> str:
    """Stream ``model`` through the breaker and return the full text.

    Tokens are appended to ``sink`` as they arrive, so the caller keeps the
    partial text when the stream fails. Streaming calls are never retried:
    tokens already delivered to the client cannot be taken back.
    """

    async def consume() -> str:
        async for chunk in model.astream(list(messages), config=config):
            text = extract_text_from_response(chunk)
            if text:
                sink.append(text)
        return "".join(sink)

    return await llm_breaker.execute(consume)


@lru_cache(maxsize=None)
def get_chat_model(role: str = "classifier") -> ChatOpenAI:
    """Shared chat model for a pipeline role ("classifier" or "synthesis").

    Client-side retries are disabled; ``with_single_retry`` owns retry policy.
    """
    settings = get_settings()
    if role == "synthesis":
        return ChatOpenAI(
            model=settings.synthesis_model,
            temperature=settings.synthesis_temperature,
            max_tokens=settings.synthesis_max_tokens,
            streaming=True,
            max_retries=0,
            api_key=settings.openai_api_key,
        )
    return ChatOpenAI(
        model=settings.classifier_model,
        temperature=0,
        max_tokens=1024,
        max_retries=0,
        api_key=settings.openai_api_key,
    )
