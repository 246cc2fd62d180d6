from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable

from loguru import logger

# refills accumulate float residue; a token this close to whole counts as whole
_TOKEN_EPS = 1e-9


class TokenBucketLimiter:
    """
    Process-wide request limiter shared by every concurrent sync.

    Tokens refill at `rate_per_s` up to `burst`. acquire() holds an
    asyncio.Lock while waiting, so contending callers are served FIFO and
    the bucket is never overdrawn.
    """

    def __init__(
        self,
        rate_per_s: float,
        *,
        burst: int = 1,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if rate_per_s <= 0:
            raise ValueError(f"rate_per_s must be positive (got {rate_per_s})")
        if burst < 1:
            raise ValueError(f"burst must be >= 1 (got {burst})")

        self.rate_per_s = float(rate_per_s)
        self.burst = int(burst)

        self._clock = clock
        self._sleep = sleep
        self._tokens = float(burst)
        self._updated = clock()
        self._lock = asyncio.Lock()
        self.granted = 0

    def _refill(self) -> None:
        now = self._clock()
        elapsed = now - self._updated
        if elapsed > 0:
            self._tokens = min(float(self.burst), self._tokens + elapsed * self.rate_per_s)
        self._updated = now

    async def acquire(self) -> None:
        async with self._lock:
            self._refill()
            while self._tokens < 1.0 - _TOKEN_EPS:
                wait_s = (1.0 - self._tokens) / self.rate_per_s
                logger.trace("Limiter wait {:.3f}s", wait_s)
                await self._sleep(wait_s)
                self._refill()

            self._tokens = max(0.0, self._tokens - 1.0)
            self.granted += 1

    async def __aenter__(self) -> "TokenBucketLimiter":
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        return None
