"""
Circuit breaker for external dependencies.

One breaker guards one dependency. The breaker counts consecutive failures,
opens once they reach a threshold, rejects calls while open, and lets a single
trial call through after the reset timeout (half-open). Every call is raced
against a request timeout; a timeout counts as a failure.

Usage:
    breaker = get_circuit_breaker(CircuitBreakerConfig(name="llm", failure_threshold=3))
    result = await breaker.execute(lambda: model.ainvoke(messages))
    text = await breaker.execute_with_fallback(lambda: search(query), fallback=[])
"""

from __future__ import annotations

import asyncio
import inspect
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

import structlog
from pydantic import BaseModel, Field

from libs.common.errors import CircuitBreakerError, OperationTimeoutError

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True)
class CircuitBreakerConfig:
    """Static parameters for one breaker."""

    name: str
    failure_threshold: int = 5
    reset_timeout: float = 30.0
    request_timeout: float = 10.0
    success_threshold: int = 2
    # Returns False for errors that must not count against the breaker
    should_record_failure: Optional[Callable[[BaseException], bool]] = None


class CircuitBreakerMetrics(BaseModel):
    """Point-in-time view of a breaker for health checks."""

    name: str
    state: CircuitState
    consecutive_failures: int = 0
    consecutive_successes: int = 0
    total_requests: int = 0
    total_failures: int = 0
    total_timeouts: int = 0
    total_rejections: int = 0
    last_failure_time: Optional[float] = Field(default=None, description="Epoch seconds of the last counted failure")


class CircuitBreaker:
    """Async circuit breaker with closed, open and half-open states."""

    def __init__(self, config: CircuitBreakerConfig, clock: Callable[[], float] = time.monotonic):
        self.config = config
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._consecutive_successes = 0
        self._next_attempt_at: Optional[float] = None
        self._trial_in_flight = False
        self._last_failure_time: Optional[float] = None

        # Lifetime counters survive reset()
        self._total_requests = 0
        self._total_failures = 0
        self._total_timeouts = 0
        self._total_rejections = 0

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def state(self) -> CircuitState:
        return self._state

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run ``operation`` under breaker protection.

        Raises:
            CircuitBreakerError: breaker is open and the reset timeout has not elapsed,
                or a half-open trial call is already in flight.
            OperationTimeoutError: the operation exceeded the request timeout.
        """
        self._total_requests += 1
        trial = self._admit()

        try:
            result = await asyncio.wait_for(operation(), timeout=self.config.request_timeout)
        except asyncio.TimeoutError:
            error = OperationTimeoutError(self.name, self.config.request_timeout)
            self._on_failure(error)
            raise error from None
        except Exception as e:
            self._on_failure(e)
            raise
        finally:
            if trial:
                self._trial_in_flight = False

        self._on_success()
        return result

    async def execute_with_fallback(
        self,
        operation: Callable[[], Awaitable[T]],
        fallback: Any,
    ) -> T:
        """Like ``execute`` but never raises; returns ``fallback`` instead.

        ``fallback`` may be a plain value or a callable (sync or async) whose
        result is returned.
        """
        try:
            return await self.execute(operation)
        except Exception as e:
            logger.warning(
                "Circuit breaker fallback used",
                breaker=self.name,
                state=self._state.value,
                error=str(e),
                error_type=type(e).__name__,
            )
            if callable(fallback):
                value = fallback()
                if inspect.isawaitable(value):
                    value = await value
                return value
            return fallback

    def get_metrics(self) -> CircuitBreakerMetrics:
        return CircuitBreakerMetrics(
            name=self.name,
            state=self._state,
            consecutive_failures=self._consecutive_failures,
            consecutive_successes=self._consecutive_successes,
            total_requests=self._total_requests,
            total_failures=self._total_failures,
            total_timeouts=self._total_timeouts,
            total_rejections=self._total_rejections,
            last_failure_time=self._last_failure_time,
        )

    def reset(self) -> None:
        """Force the closed state. Lifetime counters are kept."""
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._consecutive_successes = 0
        self._next_attempt_at = None
        self._trial_in_flight = False
        self._last_failure_time = None
        logger.info("Circuit breaker reset", breaker=self.name)

    def trip(self) -> None:
        """Force the open state, as if the failure threshold had been hit."""
        self._open()

    def _admit(self) -> bool:
        """Decide whether a call may proceed; returns True for a half-open trial."""
        if self._state == CircuitState.OPEN:
            if self._next_attempt_at is not None and self._clock() < self._next_attempt_at:
                self._reject()
            self._state = CircuitState.HALF_OPEN
            self._consecutive_successes = 0
            logger.info("Circuit breaker half-open", breaker=self.name)

        if self._state == CircuitState.HALF_OPEN:
            if self._trial_in_flight:
                self._reject()
            self._trial_in_flight = True
            return True

        return False

    def _reject(self) -> None:
        self._total_rejections += 1
        logger.debug("Circuit breaker rejected call", breaker=self.name)
        raise CircuitBreakerError(self.name)

    def _on_success(self) -> None:
        self._consecutive_failures = 0
        if self._state == CircuitState.HALF_OPEN:
            self._consecutive_successes += 1
            if self._consecutive_successes >= self.config.success_threshold:
                self._state = CircuitState.CLOSED
                self._consecutive_successes = 0
                self._next_attempt_at = None
                logger.info("Circuit breaker closed", breaker=self.name)

    def _on_failure(self, error: BaseException) -> None:
        if isinstance(error, OperationTimeoutError):
            self._total_timeouts += 1

        predicate = self.config.should_record_failure
        if predicate is not None and not predicate(error):
            logger.debug("Failure excluded from breaker accounting", breaker=self.name, error=str(error))
            return

        self._consecutive_failures += 1
        self._total_failures += 1
        self._last_failure_time = time.time()

        if self._state == CircuitState.HALF_OPEN:
            self._open()
        elif (
            self._state == CircuitState.CLOSED
            and self._consecutive_failures >= self.config.failure_threshold
        ):
            self._open()

    def _open(self) -> None:
        self._state = CircuitState.OPEN
        self._consecutive_successes = 0
        self._next_attempt_at = self._clock() + self.config.reset_timeout
        logger.warning(
            "Circuit breaker opened",
            breaker=self.name,
            consecutive_failures=self._consecutive_failures,
            reset_timeout=self.config.reset_timeout,
        )


# Process-wide breakers, one per dependency name
_breakers: Dict[str, CircuitBreaker] = {}


def get_circuit_breaker(config: CircuitBreakerConfig) -> CircuitBreaker:
    """Get or create the process-wide breaker for ``config.name``."""
    breaker = _breakers.get(config.name)
    if breaker is None:
        breaker = CircuitBreaker(config)
        _breakers[config.name] = breaker
    return breaker


def get_all_breaker_metrics() -> Dict[str, CircuitBreakerMetrics]:
    return {name: breaker.get_metrics() for name, breaker in _breakers.items()}


def reset_all_breakers() -> None:
    """Close every registered breaker (test isolation only)."""
    for breaker in _breakers.values():
        breaker.reset()
