"""Adaptive request pacing for MCP tool calls.

Bitrix24 meters REST traffic per portal with a leaky bucket (roughly two
requests per second on cloud plans). The limiter spaces tool invocations,
backs off sharply when the portal answers with a rate-limit error and
recovers slowly on success.
"""

import asyncio
import time


class AdaptiveRateLimiter:
    """Requests-per-second limiter with multiplicative backoff."""

    def __init__(
        self,
        initial_rate: float = 2.0,
        min_rate: float = 0.5,
        max_rate: float = 10.0,
        backoff_factor: float = 0.5,
        recovery_factor: float = 1.1,
    ) -> None:
        if not 0 < min_rate <= initial_rate <= max_rate:
            raise ValueError("Rates must satisfy 0 < min_rate <= initial_rate <= max_rate")
        self.rate = initial_rate
        self.min_rate = min_rate
        self.max_rate = max_rate
        self.backoff_factor = backoff_factor
        self.recovery_factor = recovery_factor
        self._next_slot = 0.0
        self._pause_until = 0.0
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        """Wait until the next request slot is available."""
        async with self._lock:
            now = time.monotonic()
            start = max(now, self._next_slot, self._pause_until)
            self._next_slot = start + 1.0 / self.rate
            delay = start - now
        if delay > 0:
            await asyncio.sleep(delay)

    def on_success(self) -> None:
        self.rate = min(self.max_rate, self.rate * self.recovery_factor)

    def on_rate_limit(self, retry_after: float | None = None) -> None:
        self.rate = max(self.min_rate, self.rate * self.backoff_factor)
        if retry_after:
            self._pause_until = max(self._pause_until, time.monotonic() + float(retry_after))
