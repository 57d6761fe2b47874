"""HTTP glue between request handlers and RateLimiter.

Route handlers use it like this:

    @router.post("/api/chat")
    async def chat(request: Request, limiters: LimiterRegistry = Depends(get_limiter_registry)):
        rejection = await with_rate_limit(request, limiters.get("chat"))
        if rejection:
            return rejection
        ...

or declaratively with ``dependencies=[Depends(require_rate_limit("chat"))]``.
"""

from typing import Awaitable, Callable, Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.requests import HTTPConnection

from agentgate.app.core.logging import get_log_context, get_logger
from agentgate.app.exceptions import RateLimitExceeded
from agentgate.app.middleware.rate_limit.identity import get_client_identifier
from agentgate.app.middleware.rate_limit.limiter import RateLimiter
from agentgate.app.middleware.rate_limit.models import RateLimitStatus
from agentgate.app.middleware.rate_limit.registry import get_limiter_registry

logger = get_logger(__name__)

REJECTION_ERROR = "Too many requests"
REJECTION_MESSAGE = "Rate limit exceeded. Please try again later."


def build_rejection_response(exc: RateLimitExceeded) -> JSONResponse:
    """Build the 429 response for an exhausted quota."""
    retry_after = exc.retry_after
    return JSONResponse(
        status_code=429,
        content={
            "error": REJECTION_ERROR,
            "message": REJECTION_MESSAGE,
            "retryAfter": retry_after,
        },
        headers={
            "Retry-After": str(retry_after),
            "X-RateLimit-Limit": str(exc.limit),
            "X-RateLimit-Remaining": "0",
            "X-RateLimit-Reset": str(exc.reset_epoch_seconds),
        },
    )


def rate_limit_headers(status: RateLimitStatus) -> Dict[str, str]:
    """Headers advertising the caller's remaining quota on admitted responses."""
    return {
        "X-RateLimit-Limit": str(status.limit),
        "X-RateLimit-Remaining": str(status.remaining),
        "X-RateLimit-Reset": str(status.reset_epoch_seconds),
    }


def log_rejection(
    exc: RateLimitExceeded,
    limiter_name: Optional[str] = None,
    request: Optional[HTTPConnection] = None,
) -> None:
    request_id = getattr(request.state, "request_id", None) if request is not None else None
    path = request.url.path if request is not None else None
    logger.warning(
        "Rate limit exceeded",
        extra=get_log_context(
            request_id=request_id,
            identifier=exc.identifier,
            limiter=limiter_name,
            limit=exc.limit,
            retry_after=exc.retry_after,
            path=path,
        ),
    )


async def apply_rate_limit(
    limiter: RateLimiter,
    identifier: str,
    *,
    limiter_name: Optional[str] = None,
) -> Optional[JSONResponse]:
    """Apply rate limiting to a request.

    Args:
        limiter: Limiter to charge
        identifier: Client identifier (see get_client_identifier)
        limiter_name: Name used in log records

    Returns:
        None if the request may proceed, otherwise a 429 JSONResponse.
        Exceptions other than RateLimitExceeded propagate.
    """
    try:
        limiter.check(identifier)
    except RateLimitExceeded as exc:
        log_rejection(exc, limiter_name)
        return build_rejection_response(exc)
    return None


async def with_rate_limit(
    request: HTTPConnection,
    limiter: RateLimiter,
    user_id: Optional[str] = None,
    *,
    limiter_name: Optional[str] = None,
) -> Optional[JSONResponse]:
    """Resolve the caller's identifier and apply the limiter.

    Returns:
        None if the request may proceed, otherwise a 429 JSONResponse
    """
    identifier = get_client_identifier(request, user_id)
    return await apply_rate_limit(limiter, identifier, limiter_name=limiter_name)


def require_rate_limit(name: str) -> Callable[[Request], Awaitable[None]]:
    """FastAPI dependency factory charging the named limiter.

    Raises RateLimitExceeded, which the application's exception handler turns
    into the standard 429 response. A ``user_id`` placed on request.state by
    an authentication layer takes precedence over network origin.
    """

    async def _enforce(request: Request) -> None:
        limiter = get_limiter_registry(request).get(name)
        user_id = getattr(request.state, "user_id", None)
        identifier = get_client_identifier(request, user_id)
        try:
            limiter.check(identifier)
        except RateLimitExceeded as exc:
            log_rejection(exc, name, request)
            raise

    return _enforce
