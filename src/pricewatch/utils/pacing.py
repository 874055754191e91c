from __future__ import annotations

import asyncio
import random
import time


def next_backoff(prev: float, cap: float) -> float:
    """Exponential backoff progression with cap (no jitter)."""
    return min(prev * 2.0, cap)


def jitter(v: float, *, ratio: float = 0.2) -> float:
    """
    Add ±ratio jitter. ratio=0.2 -> multiply by [0.8, 1.2].
    """
    return v * ((1.0 - ratio) + 2.0 * ratio * random.random())


async def pause(seconds: float) -> None:
    """Fixed pacing delay between upstream calls; no-op for <= 0."""
    if seconds > 0:
        await asyncio.sleep(seconds)


class RateLimiter:
    """
    Token bucket shared by all callers of one upstream.
    rate_per_sec tokens refill continuously up to `burst`.
    """
    def __init__(self, rate_per_sec: float, burst: int = 1):
        if rate_per_sec <= 0:
            raise ValueError("rate_per_sec must be > 0")
        self.rate = float(rate_per_sec)
        self.capacity = max(1, int(burst))
        self.tokens = float(self.capacity)
        self.updated = time.monotonic()
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        async with self._lock:
            self._refill()
            if self.tokens < 1.0:
                await asyncio.sleep((1.0 - self.tokens) / self.rate)
                self._refill()
            self.tokens = max(0.0, self.tokens - 1.0)

    def _refill(self) -> None:
        now = time.monotonic()
        self.tokens = min(self.capacity, self.tokens + (now - self.updated) * self.rate)
        self.updated = now
