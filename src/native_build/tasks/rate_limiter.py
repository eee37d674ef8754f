"""FIFO concurrency gate for external processes."""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Awaitable, Callable
from typing import TypeVar

T = TypeVar("T")


class RateLimiter:
    """Runs at most ``max_running`` bodies at once, releasing waiters in arrival order.

    A freed slot is handed straight to the oldest waiter instead of being
    returned to the pool, so a caller arriving later can never take it first.
    """

    def __init__(self, max_running: int) -> None:
        if max_running < 1:
            raise ValueError(f"max_running must be >= 1, got {max_running}")
        self.max_running = max_running
        self.running = 0
        self._waiters: deque[asyncio.Future[None]] = deque()

    @property
    def waiting(self) -> int:
        return len(self._waiters)

    async def run(self, fn: Callable[[], Awaitable[T]]) -> T:
        await self._acquire()
        try:
            return await fn()
        finally:
            self._release()

    async def _acquire(self) -> None:
        if self.running < self.max_running and not self._waiters:
            self.running += 1
            return

        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter in self._waiters:
                self._waiters.remove(waiter)
            elif not waiter.cancelled():
                # The slot was already handed over; pass it on.
                self._release()
            raise

    def _release(self) -> None:
        while self._waiters:
            waiter = self._waiters.popleft()
            # Skip callers cancelled in the same tick; they never got the slot.
            if not waiter.done():
                waiter.set_result(None)
                return
        self.running -= 1
