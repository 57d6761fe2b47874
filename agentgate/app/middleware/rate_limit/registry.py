"""Named rate limiter instances, built once at startup and injected.

Request handlers reach limiters through ``request.app.state.limiters``
(see ``get_limiter_registry``) rather than through module-level globals.
"""

from typing import Dict, Iterator, List, Optional, Tuple

from starlette.requests import HTTPConnection

from agentgate.app.core.config import Settings
from agentgate.app.middleware.rate_limit.limiter import Clock, RateLimiter
from agentgate.app.middleware.rate_limit.models import PRESETS, RateLimitConfig


class LimiterRegistry:
    """Holds the application's named limiters (api, chat, strict, ...)."""

    def __init__(self, limiters: Dict[str, RateLimiter]):
        self._limiters = dict(limiters)

    def get(self, name: str) -> RateLimiter:
        """Return the limiter registered under name.

        Raises:
            KeyError: If no limiter is registered under name
        """
        try:
            return self._limiters[name]
        except KeyError:
            raise KeyError(f"Unknown rate limiter: {name!r}") from None

    def __contains__(self, name: object) -> bool:
        return name in self._limiters

    def __iter__(self) -> Iterator[Tuple[str, RateLimiter]]:
        return iter(self._limiters.items())

    def names(self) -> List[str]:
        return list(self._limiters)

    def cleanup(self) -> int:
        """Sweep expired buckets from every limiter."""
        return sum(limiter.cleanup() for limiter in self._limiters.values())


def create_preset_limiters(clock: Optional[Clock] = None) -> LimiterRegistry:
    """Registry with the stock api/chat/strict presets (60/20/10 per minute)."""
    return LimiterRegistry(
        {name: RateLimiter(config, clock=clock) for name, config in PRESETS.items()}
    )


def build_limiter_registry(settings: Settings, clock: Optional[Clock] = None) -> LimiterRegistry:
    """Build the api/chat/strict limiters from settings.

    Raises:
        RateLimitConfigError: If the configured values are not positive
    """
    quotas = {
        "api": settings.rate_limit_api_per_interval,
        "chat": settings.rate_limit_chat_per_interval,
        "strict": settings.rate_limit_strict_per_interval,
    }
    limiters = {
        name: RateLimiter(
            RateLimitConfig(
                interval_ms=settings.rate_limit_interval_ms,
                unique_token_per_interval=quota,
            ),
            max_buckets=settings.rate_limit_max_buckets,
            sweep_every=settings.rate_limit_sweep_every,
            clock=clock,
        )
        for name, quota in quotas.items()
    }
    return LimiterRegistry(limiters)


def get_limiter_registry(request: HTTPConnection) -> LimiterRegistry:
    """FastAPI dependency returning the registry attached by create_app."""
    registry = getattr(request.app.state, "limiters", None)
    if registry is None:
        raise RuntimeError("Rate limiter registry is not configured on this application")
    return registry
