"""Bounded concurrency for model calls."""

from __future__ import annotations

import asyncio
from collections import deque
import logging
from typing import Awaitable, Callable, Deque, Optional, TypeVar

from .errors import AbortedError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ConcurrencyLimiter:
    """Run at most ``max_concurrency`` tasks at once, admitting waiters in FIFO order.

    A released slot is handed straight to the oldest waiter, so a newly arriving
    caller can never overtake one that is already queued. A task's failure is
    delivered only to its own caller.
    """

    def __init__(self, max_concurrency: int = 3) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.max_concurrency = max_concurrency
        self._running = 0
        self._waiters: Deque[asyncio.Future[None]] = deque()

    @property
    def running(self) -> int:
        return self._running

    @property
    def pending(self) -> int:
        return sum(1 for waiter in self._waiters if not waiter.done())

    async def execute(
        self,
        task_factory: Callable[[], Awaitable[T]],
        signal: Optional[asyncio.Event] = None,
    ) -> T:
        """Run ``task_factory()`` once a slot is free and return its result.

        Raises:
            AbortedError: ``signal`` was set by the time the task was admitted.
        """
        await self._acquire()
        try:
            if signal is not None and signal.is_set():
                raise AbortedError("Operation aborted")
            return await task_factory()
        finally:
            self._release()

    async def _acquire(self) -> None:
        if self._running < self.max_concurrency and not self._waiters:
            self._running += 1
            return

        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # The slot was handed over just before cancellation; pass it on.
                self._release()
            else:
                try:
                    self._waiters.remove(waiter)
                except ValueError:
                    pass
            raise

    def _release(self) -> None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                # Slot ownership moves to the waiter; the running count is unchanged.
                waiter.set_result(None)
                return
        self._running -= 1


__all__ = ["ConcurrencyLimiter"]
