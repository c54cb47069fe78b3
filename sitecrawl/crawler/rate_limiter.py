"""
Global token-bucket rate limiter for outbound page fetches.
"""

import asyncio
import logging
import time
from typing import Callable, Optional


class TokenBucketRateLimiter:
    """
    Admits at most ``rate`` fetch starts per second.

    Tokens refill continuously at ``rate`` per second up to ``burst`` tokens,
    so an idle crawler may start ``burst`` fetches back to back before the
    steady rate applies. Waiters are served in arrival order.
    """

    def __init__(self, rate: float, burst: Optional[int] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.rate = float(rate)
        self.burst = burst if burst is not None else max(1, int(rate))
        self.logger = logging.getLogger(__name__)

        self._clock = clock
        self._tokens = float(self.burst)
        self._last_refill = clock()
        self._lock = asyncio.Lock()
        self.total_acquired = 0

    @property
    def enabled(self) -> bool:
        return self.rate > 0

    @property
    def available_tokens(self) -> float:
        """Tokens currently in the bucket (after refill)."""
        self._refill()
        return self._tokens

    def _refill(self):
        now = self._clock()
        elapsed = now - self._last_refill
        if elapsed > 0:
            self._tokens = min(float(self.burst), self._tokens + elapsed * self.rate)
            self._last_refill = now

    async def acquire(self):
        """
        Wait until a token is available and consume it.

        Cancelling the awaiting task abandons the wait without consuming a token.
        """
        if not self.enabled:
            return

        async with self._lock:
            while True:
                self._refill()
                if self._tokens >= 1.0:
                    self._tokens -= 1.0
                    self.total_acquired += 1
                    return

                wait_time = (1.0 - self._tokens) / self.rate
                self.logger.debug(f"Rate limited, waiting {wait_time:.3f}s for a token")
                await asyncio.sleep(wait_time)

    async def __aenter__(self):
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return False
