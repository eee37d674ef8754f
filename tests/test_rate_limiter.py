from __future__ import annotations

import asyncio

import allure
import pytest

from native_build.tasks.rate_limiter import RateLimiter

pytestmark = [
    allure.epic("Task Engine"),
    allure.feature("Process Concurrency"),
]


def test_rejects_non_positive_bound() -> None:
    with pytest.raises(ValueError, match="max_running must be >= 1"):
        RateLimiter(0)


@pytest.mark.asyncio
async def test_never_exceeds_bound() -> None:
    limiter = RateLimiter(2)
    live = 0
    peak = 0

    async def body() -> None:
        nonlocal live, peak
        live += 1
        peak = max(peak, live)
        await asyncio.sleep(0.01)
        live -= 1

    await asyncio.gather(*(limiter.run(body) for _ in range(7)))

    assert peak == 2
    assert limiter.running == 0
    assert limiter.waiting == 0


@pytest.mark.asyncio
async def test_waiters_are_released_in_arrival_order() -> None:
    limiter = RateLimiter(1)
    gate = asyncio.Event()
    order: list[str] = []

    async def hold() -> None:
        await gate.wait()
        order.append("holder")

    async def job(label: str) -> str:
        order.append(label)
        return label

    holder = asyncio.create_task(limiter.run(hold))
    await asyncio.sleep(0)
    jobs = [
        asyncio.create_task(limiter.run(lambda label=label: job(label)))
        for label in ("a", "b", "c")
    ]
    await asyncio.sleep(0)
    assert limiter.waiting == 3

    gate.set()
    results = await asyncio.gather(holder, *jobs)

    assert order == ["holder", "a", "b", "c"]
    assert results == [None, "a", "b", "c"]


@pytest.mark.asyncio
async def test_failing_body_releases_its_slot() -> None:
    limiter = RateLimiter(1)

    async def explode() -> None:
        raise RuntimeError("boom")

    async def ok() -> str:
        return "ok"

    with pytest.raises(RuntimeError, match="boom"):
        await limiter.run(explode)

    assert limiter.running == 0
    assert await limiter.run(ok) == "ok"


@pytest.mark.asyncio
async def test_cancelled_waiter_does_not_leak_a_slot() -> None:
    limiter = RateLimiter(1)
    gate = asyncio.Event()

    async def hold() -> None:
        await gate.wait()

    async def ok() -> str:
        return "ok"

    holder = asyncio.create_task(limiter.run(hold))
    await asyncio.sleep(0)
    waiter = asyncio.create_task(limiter.run(ok))
    await asyncio.sleep(0)
    assert limiter.waiting == 1

    waiter.cancel()
    with pytest.raises(asyncio.CancelledError):
        await waiter
    assert limiter.waiting == 0

    gate.set()
    await holder
    assert limiter.running == 0
    assert await limiter.run(ok) == "ok"


@pytest.mark.asyncio
async def test_waiter_cancelled_as_slot_frees_does_not_leak_it() -> None:
    limiter = RateLimiter(1)
    gate = asyncio.Event()

    async def hold() -> str:
        await gate.wait()
        return "held"

    async def ok() -> str:
        return "ok"

    holder = asyncio.create_task(limiter.run(hold))
    await asyncio.sleep(0)
    waiter = asyncio.create_task(limiter.run(ok))
    await asyncio.sleep(0)
    assert limiter.waiting == 1

    # Release and cancellation land in the same loop iteration.
    gate.set()
    waiter.cancel()

    assert await holder == "held"
    with pytest.raises(asyncio.CancelledError):
        await waiter
    assert limiter.running == 0
    assert limiter.waiting == 0
    assert await asyncio.wait_for(limiter.run(ok), timeout=1) == "ok"


@pytest.mark.asyncio
async def test_waiter_cancelled_after_handoff_passes_slot_on() -> None:
    limiter = RateLimiter(1)
    queued: list[asyncio.Task[str]] = []

    async def ok() -> str:
        return "ok"

    async def hold() -> None:
        queued.append(asyncio.create_task(limiter.run(ok)))
        queued.append(asyncio.create_task(limiter.run(ok)))
        await asyncio.sleep(0)
        assert limiter.waiting == 2

    await limiter.run(hold)
    first, second = queued
    # The slot now belongs to ``first``, which has not resumed yet.
    assert limiter.waiting == 1
    first.cancel()

    with pytest.raises(asyncio.CancelledError):
        await first
    assert await asyncio.wait_for(second, timeout=1) == "ok"
    assert limiter.running == 0
