"""Application error taxonomy.

Every error the agent raises on purpose derives from ``AppError`` and carries a
stable ``code``. The stream adapter forwards that code verbatim to clients, so
codes are part of the public contract.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class AppError(Exception):
    """Base class for operational errors with a machine-readable code."""

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        status_code: int = 500,
        is_operational: bool = True,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.is_operational = is_operational
        self.context = context or {}

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error_code": self.code, "message": self.message}
        if self.context:
            payload["context"] = self.context
        return payload


class ExternalServiceError(AppError):
    """A dependency answered with an error status."""

    def __init__(self, service: str, message: str, upstream_status: Optional[int] = None):
        super().__init__(
            f"{service}: {message}",
            code="EXTERNAL_SERVICE_ERROR",
            status_code=502,
            context={"service": service, "upstream_status": upstream_status},
        )
        self.service = service
        self.upstream_status = upstream_status


class CircuitBreakerError(AppError):
    """Raised without calling the dependency while its breaker is open."""

    def __init__(self, breaker_name: str):
        super().__init__(
            f"Circuit breaker '{breaker_name}' is open",
            code="CIRCUIT_BREAKER_OPEN",
            status_code=503,
            context={"breaker": breaker_name},
        )
        self.breaker_name = breaker_name


class OperationTimeoutError(AppError):
    """An operation exceeded its deadline."""

    def __init__(self, operation: str, timeout_seconds: float):
        super().__init__(
            f"Request timeout after {timeout_seconds:g}s: {operation}",
            code="PIPELINE_TIMEOUT",
            status_code=504,
            context={"operation": operation, "timeout_seconds": timeout_seconds},
        )
        self.operation = operation
        self.timeout_seconds = timeout_seconds


TIMEOUT_ERROR_CODE = "PIPELINE_TIMEOUT"
GENERIC_ERROR_CODE = "PIPELINE_ERROR"
GENERIC_ERROR_MESSAGE = "Something went wrong while preparing your answer. Please try again."


def error_to_code(error: BaseException) -> str:
    """Map any exception onto the client-facing error taxonomy."""
    if isinstance(error, (OperationTimeoutError, TimeoutError)):
        return TIMEOUT_ERROR_CODE
    if isinstance(error, AppError):
        return error.code
    return GENERIC_ERROR_CODE


def error_to_message(error: BaseException) -> str:
    """User-safe message for an exception; internals are never exposed."""
    if isinstance(error, AppError):
        return error.message
    return GENERIC_ERROR_MESSAGE
