"""
Concurrency Limiter

Bounds how many source fetches run at once. Excess work waits in FIFO order
on an asyncio.Semaphore; a unit's slot is released whether it succeeds or
raises, so one failing source never blocks the others.

Usage:
    limiter = ConcurrencyLimiter(max_concurrent=5)
    result = await limiter.submit(fetcher.fetch, source, date_range)
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar


T = TypeVar("T")


class ConcurrencyLimiter:
    def __init__(self, max_concurrent: int = 5):
        if max_concurrent < 1:
            raise ValueError(f"max_concurrent must be at least 1, got {max_concurrent}")
        self.max_concurrent = max_concurrent
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._active = 0
        self._peak = 0
        self._waiting = 0

    @property
    def active(self) -> int:
        """Units currently executing."""
        return self._active

    @property
    def peak(self) -> int:
        """Highest number of units seen executing at once."""
        return self._peak

    @property
    def waiting(self) -> int:
        return self._waiting

    async def submit(self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Run ``func(*args, **kwargs)`` once a slot is free and return its result."""
        self._waiting += 1
        try:
            await self._semaphore.acquire()
        finally:
            self._waiting -= 1

        self._active += 1
        self._peak = max(self._peak, self._active)
        try:
            return await func(*args, **kwargs)
        finally:
            self._active -= 1
            self._semaphore.release()

    @property
    def stats(self) -> dict[str, int]:
        return {
            "max_concurrent": self.max_concurrent,
            "active": self._active,
            "waiting": self._waiting,
            "peak": self._peak,
        }
