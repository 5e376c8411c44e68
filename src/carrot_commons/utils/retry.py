"""Retry driver with randomized exponential backoff."""

from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class ExponentialBackoff:
    """Exponential backoff parameters. All durations are in seconds.

    ``max_elapsed_time=None`` retries transient failures forever.
    """

    initial_interval: float = 0.5
    multiplier: float = 1.5
    max_interval: float = 60.0
    max_elapsed_time: float | None = 900.0
    randomization_factor: float = 0.5

    def __post_init__(self) -> None:
        if self.initial_interval < 0 or self.max_interval < 0:
            raise ValueError("backoff intervals must not be negative")
        if self.multiplier < 1:
            raise ValueError(f"multiplier must be at least 1, got {self.multiplier}")
        if not 0 <= self.randomization_factor <= 1:
            raise ValueError(
                f"randomization_factor must be within [0, 1], got {self.randomization_factor}"
            )

    def base_interval(self, attempt: int) -> float:
        """The interval before randomization for the given retry number."""
        return min(self.initial_interval * self.multiplier**attempt, self.max_interval)

    def interval(self, attempt: int) -> float:
        base = self.base_interval(attempt)
        delta = base * self.randomization_factor
        return random.uniform(base - delta, base + delta)


async def retry(
    policy: ExponentialBackoff,
    operation: Callable[[], Awaitable[T]],
    *,
    is_transient: Callable[[Exception], bool],
    name: str | None = None,
) -> T:
    """Run ``operation`` until it succeeds or fails permanently.

    ``is_transient`` classifies each raised exception. Permanent failures are
    re-raised at once; transient ones are retried after the next backoff
    interval until ``policy.max_elapsed_time`` runs out, at which point the
    last transient exception is re-raised.
    """
    name = name or getattr(operation, "__name__", "operation")
    started = time.monotonic()
    attempt = 0

    while True:
        try:
            return await operation()
        except Exception as exc:
            if not is_transient(exc):
                raise

            wait = policy.interval(attempt)
            elapsed = time.monotonic() - started
            if policy.max_elapsed_time is not None and elapsed + wait > policy.max_elapsed_time:
                logger.warning(
                    "Giving up on %s after %d attempts (%.1fs): %s",
                    name,
                    attempt + 1,
                    elapsed,
                    type(exc).__name__,
                )
                raise

            attempt += 1
            logger.warning(
                "Retrying %s (attempt %d) after %.2fs: %s",
                name,
                attempt + 1,
                wait,
                type(exc).__name__,
            )

        await asyncio.sleep(wait)
