from __future__ import annotations

import asyncio

import pytest

from release_sync.semaphore import BoundedSemaphore


def test_capacity_must_be_positive():
    with pytest.raises(ValueError, match="at least 1"):
        BoundedSemaphore(0)


async def test_admission_is_fifo():
    """Waiters are admitted in acquire order regardless of work duration."""
    semaphore = BoundedSemaphore(1)
    admitted: list[str] = []
    released: list[str] = []

    async def worker(name: str, duration: float):
        await semaphore.acquire()
        admitted.append(name)
        await asyncio.sleep(duration)
        released.append(name)
        await semaphore.release()

    tasks = []
    for name, duration in [("t1", 0.03), ("t2", 0.0), ("t3", 0.01)]:
        tasks.append(asyncio.create_task(worker(name, duration)))
        await asyncio.sleep(0)

    await semaphore.wait_all()

    assert admitted == ["t1", "t2", "t3"]
    assert released == ["t1", "t2", "t3"]
    assert semaphore.held == 0
    await asyncio.gather(*tasks)


async def test_newcomer_does_not_overtake_queued_waiter():
    semaphore = BoundedSemaphore(1)
    await semaphore.acquire()
    order: list[str] = []

    async def waiter(name: str):
        await semaphore.acquire()
        order.append(name)
        await semaphore.release()

    first = asyncio.create_task(waiter("queued"))
    await asyncio.sleep(0)
    assert semaphore.waiting == 1

    await semaphore.release()
    # the slot now belongs to the queued waiter, so a newcomer has to wait
    second = asyncio.create_task(waiter("newcomer"))
    await asyncio.gather(first, second)

    assert order == ["queued", "newcomer"]


async def test_release_hands_over_without_decrement():
    semaphore = BoundedSemaphore(1)
    await semaphore.acquire()
    task = asyncio.create_task(semaphore.acquire())
    await asyncio.sleep(0)

    await semaphore.release()
    await task

    assert semaphore.held == 1
    assert semaphore.waiting == 0


async def test_capacity_allows_parallel_holders():
    semaphore = BoundedSemaphore(3)
    for _ in range(3):
        await semaphore.acquire()
    assert semaphore.held == 3

    blocked = asyncio.create_task(semaphore.acquire())
    await asyncio.sleep(0)
    assert not blocked.done()

    await semaphore.release()
    await blocked
    assert semaphore.held == 3


async def test_release_unheld_raises():
    semaphore = BoundedSemaphore(2)

    with pytest.raises(ValueError, match="released more times"):
        await semaphore.release()


async def test_wait_all_resolves_immediately_when_idle():
    semaphore = BoundedSemaphore(2)

    await asyncio.wait_for(semaphore.wait_all(), timeout=1)


async def test_wait_all_waits_for_last_release():
    semaphore = BoundedSemaphore(2)
    await semaphore.acquire()
    await semaphore.acquire()
    drained = asyncio.create_task(semaphore.wait_all())

    await semaphore.release()
    await asyncio.sleep(0)
    assert not drained.done()

    await semaphore.release()
    await asyncio.wait_for(drained, timeout=1)


async def test_cancelled_waiter_does_not_leak_slot():
    semaphore = BoundedSemaphore(1)
    await semaphore.acquire()
    cancelled = asyncio.create_task(semaphore.acquire())
    await asyncio.sleep(0)

    cancelled.cancel()
    with pytest.raises(asyncio.CancelledError):
        await cancelled
    await semaphore.release()

    assert semaphore.held == 0
    async with semaphore:
        assert semaphore.held == 1
    assert semaphore.held == 0
