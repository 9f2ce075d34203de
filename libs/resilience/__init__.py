"""Resilience primitives for calls to external dependencies."""

from libs.resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitState,
    get_all_breaker_metrics,
    get_circuit_breaker,
    reset_all_breakers,
)

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitState",
    "get_all_breaker_metrics",
    "get_circuit_breaker",
    "reset_all_breakers",
]
