"""Rate limiting for agentgate.

This package provides an in-memory fixed-window limiter keyed by client
identity, the HTTP adapters that turn its decisions into 429 responses, and
a middleware that guards every ``/api/`` route with the general-purpose
limiter.
"""

from typing import Iterable, Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from agentgate.app.exceptions import RateLimitExceeded

from agentgate.app.middleware.rate_limit.adapter import (
    apply_rate_limit,
    build_rejection_response,
    log_rejection,
    rate_limit_headers,
    require_rate_limit,
    with_rate_limit,
)
from agentgate.app.middleware.rate_limit.identity import get_client_identifier
from agentgate.app.middleware.rate_limit.limiter import RateLimiter
from agentgate.app.middleware.rate_limit.models import (
    API_PRESET,
    CHAT_PRESET,
    PRESETS,
    STRICT_PRESET,
    Bucket,
    RateLimitConfig,
    RateLimitStatus,
)
from agentgate.app.middleware.rate_limit.registry import (
    LimiterRegistry,
    build_limiter_registry,
    create_preset_limiters,
    get_limiter_registry,
)

__all__ = [
    # Models
    "RateLimitConfig",
    "RateLimitStatus",
    "Bucket",
    "API_PRESET",
    "CHAT_PRESET",
    "STRICT_PRESET",
    "PRESETS",
    # Limiter and registry
    "RateLimiter",
    "LimiterRegistry",
    "build_limiter_registry",
    "create_preset_limiters",
    "get_limiter_registry",
    # HTTP glue
    "get_client_identifier",
    "apply_rate_limit",
    "with_rate_limit",
    "build_rejection_response",
    "rate_limit_headers",
    "require_rate_limit",
    "RateLimitMiddleware",
]


# Set on every admitted response from a rate limited route
SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
}


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Middleware to enforce a rate limit on API routes.

    Applies to paths under ``path_prefix`` except ``exempt_paths`` and static
    assets. The limiter is taken from the application's registry by name, so
    the middleware shares state with route-level checks on the same limiter.
    Requests are keyed per user when an outer layer set request.state.user_id,
    otherwise per IP. Admitted responses carry X-RateLimit-* and
    SECURITY_HEADERS.
    """

    def __init__(
        self,
        app,
        limiter_name: str = "api",
        path_prefix: str = "/api/",
        exempt_paths: Optional[Iterable[str]] = None,
        limiter: Optional[RateLimiter] = None,
    ):
        super().__init__(app)
        self.limiter_name = limiter_name
        self.path_prefix = path_prefix
        self.exempt_paths = frozenset(exempt_paths if exempt_paths is not None else ("/api/health",))
        self._limiter = limiter

    def applies_to(self, path: str) -> bool:
        """Whether requests to path are rate limited."""
        if not path.startswith(self.path_prefix):
            return False
        if path in self.exempt_paths or path.rstrip("/") in self.exempt_paths:
            return False
        # Static assets (anything with a file extension)
        last_segment = path.rsplit("/", 1)[-1]
        return "." not in last_segment

    def _get_limiter(self, request: Request) -> RateLimiter:
        if self._limiter is not None:
            return self._limiter
        return get_limiter_registry(request).get(self.limiter_name)

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint
    ) -> Response:
        """Process request with rate limiting."""
        if not self.applies_to(request.url.path):
            return await call_next(request)

        limiter = self._get_limiter(request)
        identifier = get_client_identifier(request, getattr(request.state, "user_id", None))

        try:
            limiter.check(identifier)
        except RateLimitExceeded as exc:
            log_rejection(exc, self.limiter_name, request)
            return build_rejection_response(exc)

        response = await call_next(request)

        for name, value in rate_limit_headers(limiter.get_status(identifier)).items():
            response.headers[name] = value
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)

        return response
