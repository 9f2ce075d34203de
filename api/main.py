"""Athlete support agent API service.

FastAPI application exposing the chat pipeline over JSON and Server-Sent
Events, plus a health endpoint reporting circuit breaker state.
"""

from __future__ import annotations

import logging
import time

import structlog
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from api.models import HealthResponse
from api.routers import chat as chat_router
from libs.caching.redis_client import close_redis_client
from libs.common.errors import AppError
from libs.common.settings import get_settings
from libs.resilience.circuit_breaker import CircuitState, get_all_breaker_metrics

SERVICE_VERSION = "0.1.0"

logging.basicConfig(format="%(message)s", level=get_settings().log_level.upper())

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer(),
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Athlete Support Agent API",
        description="Governance and athlete-rights Q&A for athletes, with streamed answers",
        version=SERVICE_VERSION,
        default_response_class=ORJSONResponse,
        debug=settings.debug,
    )

    cors_origins = ["*"] if settings.is_development else settings.cors_origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=False if settings.is_development else True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def limit_request_size(request: Request, call_next):
        """Limit request body size to prevent abuse."""
        max_size = 1024 * 1024  # 1MB

        if request.method in ["POST", "PUT", "PATCH"]:
            content_length = request.headers.get("content-length")
            if content_length and int(content_length) > max_size:
                return ORJSONResponse(
                    status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                    content={
                        "error_code": "REQUEST_TOO_LARGE",
                        "message": f"Request body too large. Maximum size: {max_size} bytes",
                    },
                )

        return await call_next(request)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all requests with timing and structured data."""
        start_time = time.time()
        request_id = f"req_{int(start_time * 1000000)}"
        request.state.request_id = request_id

        logger.info("Request started", request_id=request_id, method=request.method, url=str(request.url))

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "Request failed",
                request_id=request_id,
                error=str(e),
                process_time_ms=round((time.time() - start_time) * 1000, 2),
                exc_info=True,
            )
            raise

        logger.info(
            "Request completed",
            request_id=request_id,
            status_code=response.status_code,
            process_time_ms=round((time.time() - start_time) * 1000, 2),
        )
        response.headers.setdefault("X-Request-ID", request_id)
        return response

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> ORJSONResponse:
        log = logger.warning if exc.is_operational else logger.error
        log("Application error", error_code=exc.code, error=exc.message, path=request.url.path)
        return ORJSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.on_event("shutdown")
    async def shutdown() -> None:
        await close_redis_client()

    app.include_router(chat_router.router, tags=["Chat"])

    @app.get("/healthz", response_model=HealthResponse, tags=["Health"])
    async def health_check() -> HealthResponse:
        """Liveness probe with circuit breaker state.

        Reports ``degraded`` while any breaker is open.

        Example:
            ```bash
            curl http://localhost:8000/healthz
            ```
        """
        metrics = get_all_breaker_metrics()
        degraded = any(m.state == CircuitState.OPEN for m in metrics.values())
        return HealthResponse(
            status="degraded" if degraded else "healthy",
            service="api",
            version=SERVICE_VERSION,
            timestamp=time.time(),
            circuit_breakers={name: m.model_dump(mode="json") for name, m in metrics.items()},
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    # For local development only
    uvicorn.run(
        "api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info",
    )
