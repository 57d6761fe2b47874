"""Rate limiting data models.

This module contains dataclasses for limiter configuration, per-identifier
bucket state and status snapshots.
"""

import math
import threading
from dataclasses import dataclass, field
from typing import Dict

from agentgate.app.exceptions import RateLimitConfigError


@dataclass(frozen=True)
class RateLimitConfig:
    """Construction parameters for a RateLimiter.

    Attributes:
        interval_ms: Window length in milliseconds
        unique_token_per_interval: Max admitted requests per identifier per window
    """
    interval_ms: int
    unique_token_per_interval: int

    def __post_init__(self) -> None:
        if (
            isinstance(self.interval_ms, bool)
            or not isinstance(self.interval_ms, (int, float))
            or self.interval_ms <= 0
        ):
            raise RateLimitConfigError("interval_ms", self.interval_ms)
        if (
            isinstance(self.unique_token_per_interval, bool)
            or not isinstance(self.unique_token_per_interval, int)
            or self.unique_token_per_interval <= 0
        ):
            raise RateLimitConfigError("unique_token_per_interval", self.unique_token_per_interval)

    @property
    def limit(self) -> int:
        return self.unique_token_per_interval

    @property
    def interval_seconds(self) -> float:
        return self.interval_ms / 1000.0


@dataclass
class Bucket:
    """Counting record for one identifier within its current window.

    ``evicted`` is set (under ``lock``) once the bucket has been removed from
    its limiter's store; holders of a stale reference must look it up again.
    """
    count: int
    reset_at: float
    evicted: bool = False
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def is_expired(self, now: float) -> bool:
        return now >= self.reset_at


@dataclass(frozen=True)
class RateLimitStatus:
    """Snapshot of an identifier's quota."""
    limit: int
    remaining: int
    reset_at: float

    @property
    def reset_epoch_seconds(self) -> int:
        return int(math.ceil(self.reset_at))


API_PRESET = RateLimitConfig(interval_ms=60_000, unique_token_per_interval=60)
CHAT_PRESET = RateLimitConfig(interval_ms=60_000, unique_token_per_interval=20)
STRICT_PRESET = RateLimitConfig(interval_ms=60_000, unique_token_per_interval=10)

PRESETS: Dict[str, RateLimitConfig] = {
    "api": API_PRESET,
    "chat": CHAT_PRESET,
    "strict": STRICT_PRESET,
}
