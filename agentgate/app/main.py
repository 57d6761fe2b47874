import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from agentgate.app.api.rate_limit import router as rate_limit_router
from agentgate.app.core.config import Settings, settings as default_settings
from agentgate.app.core.logging import get_logger, setup_logging
from agentgate.app.exceptions import AuthenticationError, RateLimitExceeded
from agentgate.app.middleware.rate_limit import (
    LimiterRegistry,
    RateLimitMiddleware,
    build_limiter_registry,
    build_rejection_response,
)
from agentgate.app.middleware.request_id import RequestIdMiddleware

logger = get_logger(__name__)


async def run_periodic_cleanup(registry: LimiterRegistry, interval_seconds: float) -> None:
    """Sweep expired buckets from every limiter until cancelled."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            removed = registry.cleanup()
        except Exception:
            logger.exception("Periodic rate limit sweep failed")
            continue
        if removed:
            logger.debug(f"Periodic rate limit sweep removed {removed} buckets")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Settings to use (defaults to the environment-loaded instance)

    Returns:
        Configured FastAPI application instance

    Raises:
        RateLimitConfigError: If the rate limit settings are invalid
    """
    settings = settings or default_settings

    setup_logging(settings)

    # Built once; handlers reach it through app.state
    limiters = build_limiter_registry(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Start the periodic bucket sweep; stop it on shutdown."""
        cleanup_task = asyncio.create_task(
            run_periodic_cleanup(limiters, settings.rate_limit_cleanup_interval_seconds)
        )
        logger.info(
            "Application startup complete",
            extra={
                "limiters": limiters.names(),
                "rate_limit_enabled": settings.rate_limit_enabled,
                "debug_mode": settings.debug,
            },
        )

        yield

        cleanup_task.cancel()
        try:
            await cleanup_task
        except asyncio.CancelledError:
            pass
        logger.info("Application shutdown complete")

    app = FastAPI(
        title="agentgate",
        description="Per-client rate limiting for chat widget APIs",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.limiters = limiters

    # Add middleware (order matters: last added = first executed)
    if settings.rate_limit_enabled:
        app.add_middleware(
            RateLimitMiddleware,
            limiter_name="api",
            path_prefix=settings.rate_limit_path_prefix,
            exempt_paths=settings.rate_limit_exempt_paths,
        )

    # Request ID wraps the limiter so rejections carry an ID in logs and headers
    app.add_middleware(RequestIdMiddleware)

    # CORS middleware (outermost - handles preflight requests first)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials="*" not in settings.cors_origins,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=[
            "X-Request-ID",
            "Retry-After",
            "X-RateLimit-Limit",
            "X-RateLimit-Remaining",
            "X-RateLimit-Reset",
        ],
        max_age=600,
    )

    app.include_router(rate_limit_router)

    @app.get("/health")
    @app.get("/api/health")
    async def health() -> dict[str, Any]:
        """Liveness check. Exempt from rate limiting."""
        return {"status": "ok", "limiters": limiters.names()}

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
        """Handle RateLimitExceeded and return HTTP 429 response."""
        return build_rejection_response(exc)

    @app.exception_handler(AuthenticationError)
    async def auth_error_handler(request: Request, exc: AuthenticationError) -> JSONResponse:
        """Handle AuthenticationError and return HTTP 401 response."""
        return JSONResponse(
            status_code=401,
            content={"error": "authentication_failed", "message": exc.detail},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Global exception handler for unhandled exceptions.

        Never returns a traceback to the client; debug mode adds the
        exception message and type.
        """
        request_id = getattr(request.state, "request_id", "unknown")

        logger.exception(
            f"Unhandled exception [request_id={request_id}]",
            extra={
                "request_id": request_id,
                "exception_type": type(exc).__name__,
            },
        )

        content: dict[str, Any] = {
            "error": "internal_error",
            "message": "Internal server error",
            "request_id": request_id,
        }
        if settings.debug:
            content["message"] = str(exc)
            content["exception_type"] = type(exc).__name__
        return JSONResponse(status_code=500, content=content)

    return app


# Create the application instance
app = create_app()
