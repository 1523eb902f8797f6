"""Async building blocks for fanning out provider queries."""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Generic, Literal, TypeVar

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Iterable

T = TypeVar("T")


class CancellationToken:
    """Cooperative cancellation flag.

    A token derived with ``child()`` is cancelled together with its parent, but
    cancelling the child never reaches the parent. Callbacks registered with
    ``on_cancel`` run once, synchronously, when the token fires.
    """

    def __init__(self) -> None:
        self._fired = asyncio.Event()
        self._callbacks: list[Callable[[], None]] = []

    @property
    def is_cancelled(self) -> bool:
        return self._fired.is_set()

    def cancel(self) -> None:
        if self._fired.is_set():
            return
        self._fired.set()
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()

    def on_cancel(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register ``callback``; returns a function that unregisters it."""

        if self.is_cancelled:
            callback()
            return _noop
        self._callbacks.append(callback)

        def unregister() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unregister

    def child(self) -> CancellationToken:
        derived = CancellationToken()
        self.on_cancel(derived.cancel)
        return derived

    async def wait(self) -> None:
        await self._fired.wait()

    def raise_if_cancelled(self) -> None:
        if self.is_cancelled:
            raise asyncio.CancelledError("operation cancelled")


class BoundedSemaphore(asyncio.Semaphore):
    """``asyncio.Semaphore`` that remembers how many permits are out and the peak."""

    def __init__(self, limit: int) -> None:
        if limit <= 0:
            raise ValueError("limit must be > 0")
        super().__init__(limit)
        self.limit = limit
        self.in_use = 0
        self.peak_in_use = 0

    @property
    def available(self) -> int:
        return self.limit - self.in_use

    async def acquire(self) -> Literal[True]:
        await super().acquire()
        self.in_use += 1
        self.peak_in_use = max(self.peak_in_use, self.in_use)
        return True

    def release(self) -> None:
        if self.in_use == 0:
            raise RuntimeError("release without a matching acquire")
        self.in_use -= 1
        super().release()

    def snapshot(self) -> dict[str, int]:
        return {
            "limit": self.limit,
            "in_use": self.in_use,
            "peak_in_use": self.peak_in_use,
            "available": self.available,
        }


@dataclass(slots=True)
class WorkerPool(Generic[T]):
    """Run awaitables with at most ``max_concurrency`` in flight.

    ``run`` yields results in completion order. When the cancel token fires or
    the deadline passes, results finished before that point are still yielded,
    then ``asyncio.CancelledError`` or ``TimeoutError`` is raised and whatever
    is still running gets cancelled. A worker exception propagates unchanged.
    """

    max_concurrency: int
    cancel_token: CancellationToken | None = None
    semaphore: BoundedSemaphore = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if self.max_concurrency <= 0:
            raise ValueError("max_concurrency must be > 0")
        if self.cancel_token is None:
            self.cancel_token = CancellationToken()
        self.semaphore = BoundedSemaphore(self.max_concurrency)

    async def run(
        self,
        work: Iterable[Awaitable[T]],
        *,
        timeout_seconds: float | None = None,
    ) -> AsyncIterator[T]:
        token = self.cancel_token
        assert token is not None
        if timeout_seconds is not None and timeout_seconds <= 0:
            _discard(work)
            raise ValueError("timeout_seconds must be > 0")
        if token.is_cancelled:
            _discard(work)
            raise asyncio.CancelledError("operation cancelled")

        loop = asyncio.get_running_loop()
        deadline = None if timeout_seconds is None else loop.time() + timeout_seconds
        # Finished tasks in completion order; ``None`` marks cancellation.
        completed: asyncio.Queue[asyncio.Task[T] | None] = asyncio.Queue()
        tasks = [asyncio.create_task(self._gated(item, token)) for item in work]
        for task in tasks:
            task.add_done_callback(completed.put_nowait)
        unsubscribe = token.on_cancel(lambda: completed.put_nowait(None))

        try:
            for _ in range(len(tasks)):
                try:
                    async with asyncio.timeout_at(deadline):
                        task = await completed.get()
                except TimeoutError:
                    raise TimeoutError(
                        f"operation timed out after {timeout_seconds} seconds"
                    ) from None
                if task is None:
                    raise asyncio.CancelledError("operation cancelled")
                if task.cancelled():
                    if token.is_cancelled:
                        continue
                    raise asyncio.CancelledError("worker task cancelled")
                yield task.result()
        finally:
            unsubscribe()
            await _cancel_unfinished(tasks)

    async def _gated(self, item: Awaitable[T], token: CancellationToken) -> T:
        try:
            async with self.semaphore:
                token.raise_if_cancelled()
                return await item
        finally:
            # A coroutine cancelled while waiting for a permit never started.
            if inspect.iscoroutine(item):
                item.close()


def _noop() -> None:
    return None


def _discard(work: Iterable[Awaitable[object]]) -> None:
    for item in work:
        if inspect.iscoroutine(item):
            item.close()


async def _cancel_unfinished(tasks: list[asyncio.Task[T]]) -> None:
    unfinished = [task for task in tasks if not task.done()]
    for task in unfinished:
        task.cancel()
    if unfinished:
        await asyncio.gather(*unfinished, return_exceptions=True)


__all__ = [
    "BoundedSemaphore",
    "CancellationToken",
    "WorkerPool",
]
