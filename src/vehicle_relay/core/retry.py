"""Retry schedule with exponential backoff.

Dispatch and emergency alert loops share one schedule shape: no delay
before the first attempt, then ``base_delay * backoff_multiplier^(k-2)``
before attempt ``k``, capped at ``max_delay``.

Usage:
    from vehicle_relay.core.retry import RetryConfig

    config = RetryConfig(max_attempts=3, base_delay=1.0, max_delay=10.0)
    for attempt in range(1, config.max_attempts + 1):
        await asyncio.sleep(config.delay_before(attempt))
        ...
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable

SleepFunc = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryConfig:
    """Configuration for retry behavior."""

    max_attempts: int = 3
    base_delay: float = 1.0  # seconds
    max_delay: float = 10.0  # seconds
    backoff_multiplier: float = 2.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must not be negative")
        if self.backoff_multiplier < 1.0:
            raise ValueError("backoff_multiplier must be >= 1.0")

    def calculate_delay(self, retry_number: int) -> float:
        """Calculate delay before the given retry with exponential backoff.

        Args:
            retry_number: Retry count (1 for the first retry)

        Returns:
            Delay in seconds
        """
        return min(
            self.base_delay * (self.backoff_multiplier ** (retry_number - 1)),
            self.max_delay,
        )

    def delay_before(self, attempt: int) -> float:
        """Delay to wait before a 1-based attempt; zero for the first."""
        if attempt <= 1:
            return 0.0
        return self.calculate_delay(attempt - 1)

    def schedule(self) -> list[float]:
        """All delays for a full attempt budget, in attempt order."""
        return [self.delay_before(k) for k in range(1, self.max_attempts + 1)]


DISPATCH_RETRY_CONFIG = RetryConfig(
    max_attempts=3,
    base_delay=1.0,
    max_delay=10.0,
    backoff_multiplier=2.0,
)

ALERT_RETRY_CONFIG = RetryConfig(
    max_attempts=3,
    base_delay=2.0,
    max_delay=30.0,
    backoff_multiplier=2.0,
)


async def default_sleep(seconds: float) -> None:
    """Sleep that skips the event loop round-trip for zero delays."""
    if seconds > 0:
        await asyncio.sleep(seconds)
