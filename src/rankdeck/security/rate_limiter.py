"""In-memory token-bucket rate limiter for the backend endpoints.

Pre-configured tiers:
  - api:   10 req/s, burst 30  (integration endpoints)
  - auth:   1 req/s, burst  5  (code exchange, refresh, callback)
"""

from __future__ import annotations

import time

__all__ = ["RateLimiter", "api_limiter", "auth_limiter"]


class _Bucket:
    """A single token bucket for one client."""

    __slots__ = ("tokens", "last_refill")

    def __init__(self, capacity: float, now: float):
        self.tokens: float = capacity
        self.last_refill: float = now


class RateLimiter:
    """Token-bucket rate limiter keyed by client identifier.

    Parameters
    ----------
    rate : float
        Tokens added per second.
    capacity : int
        Maximum burst size (bucket capacity).
    """

    def __init__(self, rate: float, capacity: int):
        self.rate = rate
        self.capacity = capacity
        self._buckets: dict[str, _Bucket] = {}

    def allow(self, key: str) -> bool:
        """Return True if the request is allowed, consuming one token."""
        now = time.monotonic()
        bucket = self._buckets.get(key)
        if bucket is None:
            bucket = self._buckets[key] = _Bucket(self.capacity, now)

        elapsed = now - bucket.last_refill
        bucket.tokens = min(self.capacity, bucket.tokens + elapsed * self.rate)
        bucket.last_refill = now

        if bucket.tokens >= 1.0:
            bucket.tokens -= 1.0
            return True
        return False

    def reset(self) -> None:
        self._buckets.clear()


api_limiter = RateLimiter(rate=10.0, capacity=30)
auth_limiter = RateLimiter(rate=1.0, capacity=5)

