"""Middleware package for agentgate."""

from agentgate.app.middleware.rate_limit import RateLimitMiddleware
from agentgate.app.middleware.request_id import RequestIdMiddleware, get_request_id

__all__ = [
    "RateLimitMiddleware",
    "RequestIdMiddleware",
    "get_request_id",
]
