"""In-memory fixed-window rate limiter.

Counts requests per identifier within a window of ``interval_ms`` and rejects
requests once ``unique_token_per_interval`` have been admitted. State is
process-local.

Locking:
- ``_store_lock`` guards the OrderedDict structure (lookup, insert, LRU
  touch, eviction). It is held only for O(1) work, except during sweeps.
- Each Bucket's own lock guards its count/reset_at, so checks for different
  identifiers never wait on each other while counting.
- Lock order is store lock -> bucket lock. Code holding a bucket lock never
  takes the store lock.
"""

import math
import threading
import time
from collections import OrderedDict
from typing import Callable, Optional

from agentgate.app.core.logging import get_log_context, get_logger
from agentgate.app.exceptions import RateLimitConfigError, RateLimitExceeded
from agentgate.app.middleware.rate_limit.models import (
    Bucket,
    RateLimitConfig,
    RateLimitStatus,
)

logger = get_logger(__name__)

Clock = Callable[[], float]


class RateLimiter:
    """Fixed-window limiter keyed by opaque identifier strings.

    Memory is bounded by ``max_buckets``: when a new identifier arrives and
    the store is full, the least recently used bucket is evicted. Every
    ``sweep_every``-th check and every ``cleanup()`` sweep expired buckets.

    Usage:
        limiter = RateLimiter(RateLimitConfig(interval_ms=60_000, unique_token_per_interval=20))
        try:
            limiter.check("ip:203.0.113.7")
        except RateLimitExceeded as exc:
            ...
    """

    DEFAULT_MAX_BUCKETS = 10_000
    DEFAULT_SWEEP_EVERY = 1_000

    def __init__(
        self,
        config: RateLimitConfig,
        *,
        max_buckets: int = DEFAULT_MAX_BUCKETS,
        sweep_every: int = DEFAULT_SWEEP_EVERY,
        clock: Optional[Clock] = None,
    ):
        """Initialize rate limiter.

        Args:
            config: Window length and per-window quota
            max_buckets: Maximum number of identifiers tracked at once
            sweep_every: Sweep expired buckets every N checks
            clock: Returns the current time in epoch seconds (time.time by default)

        Raises:
            RateLimitConfigError: If any numeric parameter is not positive
        """
        if max_buckets < 1:
            raise RateLimitConfigError("max_buckets", max_buckets)
        if sweep_every < 1:
            raise RateLimitConfigError("sweep_every", sweep_every)

        self._config = config
        self._limit = config.limit
        self._interval = config.interval_seconds
        self._max_buckets = max_buckets
        self._sweep_every = sweep_every
        self._clock: Clock = clock or time.time

        self._buckets: "OrderedDict[str, Bucket]" = OrderedDict()
        self._store_lock = threading.Lock()
        self._checks = 0

        logger.debug(
            f"Rate limiter created: {self._limit} requests / {config.interval_ms}ms, "
            f"max_buckets={max_buckets}"
        )

    @property
    def config(self) -> RateLimitConfig:
        return self._config

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def interval_ms(self) -> int:
        return self._config.interval_ms

    @property
    def interval_seconds(self) -> float:
        return self._interval

    @property
    def max_buckets(self) -> int:
        return self._max_buckets

    def __len__(self) -> int:
        with self._store_lock:
            return len(self._buckets)

    def check(self, identifier: str) -> bool:
        """Admit one request for identifier or raise.

        Returns:
            True when the request is admitted

        Raises:
            RateLimitExceeded: If the identifier's quota for the current
                window is used up. The bucket is left unchanged.
            ValueError: If identifier is empty
        """
        if not identifier:
            raise ValueError("identifier must be a non-empty string")

        now = self._clock()
        while True:
            bucket = self._acquire_bucket(identifier, now)
            with bucket.lock:
                if bucket.evicted:
                    # Removed between lookup and lock; fetch the replacement.
                    continue
                if bucket.is_expired(now):
                    bucket.count = 0
                    bucket.reset_at = now + self._interval
                if bucket.count >= self._limit:
                    raise RateLimitExceeded(
                        identifier=identifier,
                        count=bucket.count,
                        limit=self._limit,
                        reset_at=bucket.reset_at,
                        retry_after=int(math.ceil(bucket.reset_at - now)),
                    )
                bucket.count += 1
                return True

    def get_status(self, identifier: str) -> RateLimitStatus:
        """Report the identifier's quota without consuming it.

        Missing or expired buckets are reported as a fresh window; the reset
        is not persisted and no bucket is created.
        """
        now = self._clock()
        with self._store_lock:
            bucket = self._buckets.get(identifier)

        if bucket is not None:
            with bucket.lock:
                if not bucket.evicted and not bucket.is_expired(now):
                    return RateLimitStatus(
                        limit=self._limit,
                        remaining=max(0, self._limit - bucket.count),
                        reset_at=bucket.reset_at,
                    )

        return RateLimitStatus(
            limit=self._limit,
            remaining=self._limit,
            reset_at=now + self._interval,
        )

    def reset(self, identifier: str) -> None:
        """Forget identifier entirely. No-op for unknown identifiers."""
        with self._store_lock:
            bucket = self._buckets.pop(identifier, None)
            if bucket is not None:
                with bucket.lock:
                    bucket.evicted = True

    def cleanup(self) -> int:
        """Remove every expired bucket.

        Returns:
            Number of buckets removed
        """
        now = self._clock()
        with self._store_lock:
            removed = self._sweep_locked(now)
        if removed:
            logger.debug(f"Rate limiter sweep removed {removed} expired buckets")
        return removed

    def _acquire_bucket(self, identifier: str, now: float) -> Bucket:
        with self._store_lock:
            self._checks += 1
            if self._checks % self._sweep_every == 0:
                self._sweep_locked(now)

            bucket = self._buckets.get(identifier)
            if bucket is not None:
                self._buckets.move_to_end(identifier)
                return bucket

            if len(self._buckets) >= self._max_buckets:
                self._make_room_locked(now)

            bucket = Bucket(count=0, reset_at=now + self._interval)
            self._buckets[identifier] = bucket
            return bucket

    def _sweep_locked(self, now: float) -> int:
        """Drop expired buckets. Caller holds the store lock."""
        removed = 0
        for key, bucket in list(self._buckets.items()):
            if not bucket.is_expired(now):
                continue
            # A busy bucket is being refreshed by a check; leave it.
            if not bucket.lock.acquire(blocking=False):
                continue
            try:
                if bucket.is_expired(now):
                    bucket.evicted = True
                    del self._buckets[key]
                    removed += 1
            finally:
                bucket.lock.release()
        return removed

    def _make_room_locked(self, now: float) -> None:
        """Free one slot for a new identifier. Caller holds the store lock.

        Pops from the LRU front only and never scans the store. Expired
        buckets elsewhere are left to the periodic sweeps.
        """
        evicted_live = 0
        while len(self._buckets) >= self._max_buckets:
            _, bucket = self._buckets.popitem(last=False)
            with bucket.lock:
                bucket.evicted = True
                if not bucket.is_expired(now):
                    evicted_live += 1
        if evicted_live:
            logger.warning(
                "Rate limiter store full, evicted least recently used bucket",
                extra=get_log_context(evicted=evicted_live, max_buckets=self._max_buckets),
            )
