"""Single-worker FIFO queue serialising coroutine jobs on the event loop."""

from __future__ import annotations

import asyncio
from collections import deque
from contextvars import ContextVar
from typing import Any, Awaitable, Callable, TypeVar

import structlog

from ..errors import QueueClosedError

T = TypeVar("T")

_ACTIVE_QUEUE: ContextVar["SerialTaskQueue | None"] = ContextVar("_ACTIVE_QUEUE", default=None)


class SerialTaskQueue:
    """Run submitted jobs one at a time, strictly in submission order.

    A job is a zero-argument callable returning an awaitable. The queue is
    not re-entrant: a job submitting to its own queue would wait on itself,
    so ``submit`` refuses it.
    """

    def __init__(self, name: str, logger: structlog.BoundLogger | None = None) -> None:
        self.name = name
        self.logger = logger or structlog.get_logger("tweet_harvester.queue").bind(queue=name)
        self._jobs: deque[tuple[Callable[[], Awaitable[Any]], asyncio.Future]] = deque()
        self._worker: asyncio.Task | None = None
        self._processing = False
        self._closed = False

    def __len__(self) -> int:
        return len(self._jobs)

    @property
    def processing(self) -> bool:
        return self._processing

    @property
    def closed(self) -> bool:
        return self._closed

    def submit(self, job: Callable[[], Awaitable[T]]) -> "asyncio.Future[T]":
        if self._closed:
            raise QueueClosedError(f"{self.name} queue is closed")
        if _ACTIVE_QUEUE.get() is self:
            raise RuntimeError(f"{self.name} queue is not re-entrant")
        loop = asyncio.get_running_loop()
        future: asyncio.Future[T] = loop.create_future()
        self._jobs.append((job, future))
        if self._worker is None or self._worker.done():
            self._worker = loop.create_task(self._drain(), name=f"{self.name}-worker")
        return future

    async def join(self) -> None:
        """Wait until every job submitted so far has finished."""

        while self._worker is not None and not self._worker.done():
            await asyncio.shield(self._worker)

    async def close(self) -> None:
        """Stop accepting jobs and let queued ones drain."""

        self._closed = True
        await self.join()

    async def _drain(self) -> None:
        _ACTIVE_QUEUE.set(self)
        while self._jobs:
            job, future = self._jobs.popleft()
            if future.cancelled():
                continue
            self._processing = True
            try:
                result = await job()
            except Exception as exc:  # noqa: BLE001
                self.logger.debug("queue_job_failed", error=str(exc))
                if not future.done():
                    future.set_exception(exc)
            else:
                if not future.done():
                    future.set_result(result)
            finally:
                self._processing = False


__all__ = ["SerialTaskQueue"]
