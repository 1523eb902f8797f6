"""Unit tests for cancellation tokens, bounded semaphores, and the worker pool."""

from __future__ import annotations

import asyncio

import pytest

from slo_reconciler.utils import BoundedSemaphore, CancellationToken, WorkerPool


async def _sleep_then(value: int, delay: float) -> int:
    await asyncio.sleep(delay)
    return value


async def test_cancelling_parent_cascades_to_children() -> None:
    parent = CancellationToken()
    child = parent.child()
    grandchild = child.child()

    parent.cancel()

    assert child.is_cancelled
    assert grandchild.is_cancelled
    with pytest.raises(asyncio.CancelledError):
        grandchild.raise_if_cancelled()


async def test_cancelling_child_leaves_parent_running() -> None:
    parent = CancellationToken()
    child = parent.child()

    child.cancel()

    assert child.is_cancelled
    assert not parent.is_cancelled
    parent.raise_if_cancelled()


async def test_child_of_cancelled_token_starts_cancelled() -> None:
    parent = CancellationToken()
    parent.cancel()

    assert parent.child().is_cancelled


async def test_on_cancel_callbacks_fire_once_and_can_be_removed() -> None:
    token = CancellationToken()
    fired: list[str] = []
    token.on_cancel(lambda: fired.append("kept"))
    unregister = token.on_cancel(lambda: fired.append("removed"))

    unregister()
    token.cancel()
    token.cancel()
    token.on_cancel(lambda: fired.append("late"))

    assert fired == ["kept", "late"]


async def test_bounded_semaphore_tracks_peak_usage() -> None:
    semaphore = BoundedSemaphore(2)

    async def hold() -> None:
        async with semaphore:
            await asyncio.sleep(0.01)

    await asyncio.gather(*(hold() for _ in range(5)))

    assert semaphore.peak_in_use == 2
    assert semaphore.snapshot() == {"limit": 2, "in_use": 0, "peak_in_use": 2, "available": 2}
    with pytest.raises(RuntimeError, match="release"):
        semaphore.release()
    with pytest.raises(ValueError):
        BoundedSemaphore(0)


async def test_worker_pool_yields_every_result() -> None:
    pool: WorkerPool[int] = WorkerPool(max_concurrency=2)

    results = [value async for value in pool.run(_sleep_then(i, 0.001 * i) for i in range(4))]

    assert sorted(results) == [0, 1, 2, 3]
    assert pool.semaphore.peak_in_use <= 2


async def test_worker_pool_timeout_keeps_finished_results() -> None:
    pool: WorkerPool[int] = WorkerPool(max_concurrency=2)
    collected: list[int] = []

    with pytest.raises(TimeoutError):
        async for value in pool.run(
            [_sleep_then(1, 0.0), _sleep_then(2, 5.0)], timeout_seconds=0.1
        ):
            collected.append(value)

    assert collected == [1]


async def test_worker_pool_stops_on_cancellation() -> None:
    token = CancellationToken()
    pool: WorkerPool[int] = WorkerPool(max_concurrency=2, cancel_token=token)
    collected: list[int] = []

    async def consume() -> None:
        async for value in pool.run([_sleep_then(1, 0.0), _sleep_then(2, 5.0)]):
            collected.append(value)

    task = asyncio.create_task(consume())
    await asyncio.sleep(0.05)
    token.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert collected == [1]


async def test_worker_pool_rejects_bad_arguments() -> None:
    with pytest.raises(ValueError, match="max_concurrency"):
        WorkerPool(max_concurrency=0)

    pool: WorkerPool[int] = WorkerPool(max_concurrency=1)
    with pytest.raises(ValueError, match="timeout_seconds"):
        async for _ in pool.run([_sleep_then(1, 0.0)], timeout_seconds=0):
            pass
