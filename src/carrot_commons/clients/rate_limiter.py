"""Async token-bucket rate limiter shared by HTTP clients."""

from __future__ import annotations

import asyncio
import time


class TokenBucketRateLimiter:
    """Client-wide admission control using a single token bucket.

    Usage::

        limiter = TokenBucketRateLimiter(rate=2, per=1.0, burst=1)  # 2 requests per second
        await limiter.until_ready()
        await make_api_call()

    Share one instance between clients to make them draw from the same bucket.
    """

    def __init__(self, rate: float, per: float = 1.0, burst: int | None = None) -> None:
        if rate <= 0:
            raise ValueError(f"rate must be positive, got {rate}")
        if per <= 0:
            raise ValueError(f"per must be positive, got {per}")
        if burst is not None and burst < 1:
            raise ValueError(f"burst must be at least 1, got {burst}")

        self.rate = rate
        self.per = per
        self.burst = burst or max(1, int(rate))
        self._tokens = float(self.burst)
        self._last_refill = time.monotonic()
        self._lock = asyncio.Lock()

    @property
    def interval(self) -> float:
        """Seconds between two tokens in steady state."""
        return self.per / self.rate

    async def until_ready(self) -> None:
        """Wait until a token is available, then consume it."""
        async with self._lock:
            now = time.monotonic()
            elapsed = now - self._last_refill
            self._tokens = min(
                self.burst,
                self._tokens + elapsed * (self.rate / self.per),
            )
            self._last_refill = now

            if self._tokens < 1.0:
                wait = (1.0 - self._tokens) * self.interval
                await asyncio.sleep(wait)
                # the wait paid for exactly one token
                self._tokens = 0.0
                self._last_refill = time.monotonic()
            else:
                self._tokens -= 1.0
