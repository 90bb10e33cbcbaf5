"""Bounded single-producer result channel with cooperative cancellation."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

from noteharvest.models import LoadResult

_END = object()


class LoadStream:
    """Async iterator over the results of one load.

    The producer coroutine starts on first use and pushes into a bounded
    queue, so it never runs more than ``maxsize`` results ahead of the
    consumer. Leaving an ``async with`` block (or calling ``aclose``) cancels
    the producer and waits for it to stop.
    """

    def __init__(self, produce: Callable[["LoadStream"], Awaitable[None]], *, maxsize: int = 8) -> None:
        if maxsize < 1:
            raise ValueError("maxsize must be positive")
        self._produce = produce
        self._maxsize = maxsize
        self._queue: asyncio.Queue[object] | None = None
        self._task: asyncio.Task[None] | None = None
        self._cancelled = False
        self._finished = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    async def emit(self, result: LoadResult) -> bool:
        """Hand one result to the consumer; False once the load is cancelled."""

        if self._cancelled:
            return False
        assert self._queue is not None
        await self._queue.put(result)
        return not self._cancelled

    def _ensure_started(self) -> None:
        if self._task is not None or self._finished:
            return
        self._queue = asyncio.Queue(maxsize=self._maxsize)
        self._task = asyncio.create_task(self._run())

    async def _run(self) -> None:
        assert self._queue is not None
        try:
            await self._produce(self)
        finally:
            await self._queue.put(_END)

    def __aiter__(self) -> "LoadStream":
        return self

    async def __anext__(self) -> LoadResult:
        self._ensure_started()
        if self._finished:
            raise StopAsyncIteration
        assert self._queue is not None
        item = await self._queue.get()
        if item is _END:
            self._finished = True
            await self._join()
            raise StopAsyncIteration
        return item  # type: ignore[return-value]

    async def aclose(self) -> None:
        self.cancel()
        if self._task is None:
            self._finished = True
            return
        assert self._queue is not None
        while not self._finished:
            if await self._queue.get() is _END:
                self._finished = True
        await self._join()

    async def _join(self) -> None:
        task = self._task
        if task is not None:
            await task

    async def __aenter__(self) -> "LoadStream":
        self._ensure_started()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
