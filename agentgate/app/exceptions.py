"""Custom exceptions for the agentgate application."""

import math
import time
from typing import Optional


class AgentGateException(Exception):
    """Base class for agentgate exceptions with HTTP status code.

    All custom exceptions should inherit from this class and define
    their specific status_code for consistent HTTP response handling.
    """
    status_code: int = 500

    def __init__(self, message: str = "agentgate error"):
        self.message = message
        super().__init__(message)


class RateLimitExceeded(AgentGateException):
    """Raised when an identifier has used up its quota for the current window.

    Carries everything a caller needs to build a 429 response and compute
    retry timing. Maps to HTTP 429 Too Many Requests.
    """
    status_code = 429

    def __init__(
        self,
        identifier: str,
        count: int,
        limit: int,
        reset_at: float,
        retry_after: Optional[int] = None,
    ):
        self.identifier = identifier
        self.count = count
        self.limit = limit
        self.reset_at = reset_at
        if retry_after is None:
            retry_after = int(math.ceil(reset_at - time.time()))
        # Whole seconds until the window resets, never less than 1
        self.retry_after = max(1, retry_after)
        super().__init__(
            f"Rate limit exceeded for {identifier}: "
            f"{count}/{limit} requests in current window"
        )

    @property
    def reset_epoch_seconds(self) -> int:
        return int(math.ceil(self.reset_at))


class RateLimitConfigError(AgentGateException, ValueError):
    """Raised when a rate limiter is constructed with invalid parameters.

    This is a startup error, not a per-request condition.
    """
    status_code = 500

    def __init__(self, field: str, value: object):
        self.field = field
        self.value = value
        super().__init__(f"Invalid rate limit configuration: {field} must be positive, got {value!r}")


class AuthenticationError(AgentGateException):
    """Raised when an admin token check fails.

    Maps to HTTP 401 Unauthorized.
    """
    status_code = 401

    def __init__(self, detail: str = "Invalid or missing admin token"):
        self.detail = detail
        super().__init__(detail)
