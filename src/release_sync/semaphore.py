"""FIFO counting semaphore with a drain primitive."""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Self


class BoundedSemaphore:
    """Admission gate limiting how many operations run concurrently.

    Unlike `asyncio.Semaphore`, waiters are admitted strictly in the order they
    called `acquire` (a slot freed by `release` is handed to the oldest waiter
    instead of being up for grabs), and `wait_all` lets a caller wait until
    every holder has released.

    Example:
        ```python
        semaphore = BoundedSemaphore(4)
        for url in urls:
            await semaphore.acquire()
            asyncio.create_task(download_then_release(url, semaphore))
        await semaphore.wait_all()
        ```
    """

    def __init__(self, max_holders: int = 1):
        """Initialize the semaphore.

        Args:
            max_holders: Number of holders admitted at the same time (>= 1)
        """
        if max_holders < 1:
            msg = f"Semaphore capacity must be at least 1, got {max_holders}"
            raise ValueError(msg)
        self.max_holders = max_holders
        self._held = 0
        self._lock = asyncio.Lock()
        self._waiters: deque[asyncio.Future[None]] = deque()
        self._drain_waiters: list[asyncio.Future[None]] = []

    @property
    def held(self) -> int:
        """Number of current holders."""
        return self._held

    @property
    def waiting(self) -> int:
        """Number of callers queued in `acquire`."""
        return sum(1 for waiter in self._waiters if not waiter.done())

    async def acquire(self) -> None:
        """Wait for a free slot and take it."""
        async with self._lock:
            while self._waiters and self._waiters[0].cancelled():
                self._waiters.popleft()
            if self._held < self.max_holders and not self._waiters:
                self._held += 1
                return
            waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
            self._waiters.append(waiter)

        try:
            await waiter
        except asyncio.CancelledError:
            # the slot may have been handed over right before the cancellation
            if waiter.done() and not waiter.cancelled():
                await self.release()
            raise

    async def release(self) -> None:
        """Give the slot back, handing it to the oldest waiter if any."""
        async with self._lock:
            if self._held <= 0:
                msg = "Semaphore released more times than acquired"
                raise ValueError(msg)
            while self._waiters:
                waiter = self._waiters.popleft()
                if not waiter.done():
                    # ownership moves to the waiter, the count stays the same
                    waiter.set_result(None)
                    return
            self._held -= 1
            if self._held == 0:
                for drain_waiter in self._drain_waiters:
                    if not drain_waiter.done():
                        drain_waiter.set_result(None)
                self._drain_waiters.clear()

    async def wait_all(self) -> None:
        """Wait until no slot is held anymore."""
        async with self._lock:
            if self._held == 0:
                return
            waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
            self._drain_waiters.append(waiter)
        await waiter

    async def __aenter__(self) -> Self:
        await self.acquire()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.release()

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(held={self._held}/{self.max_holders}, "
            f"waiting={self.waiting})"
        )
