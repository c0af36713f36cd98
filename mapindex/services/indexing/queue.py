from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Any, Awaitable, Callable

from mapindex.core.errors import IndexerClosedError
from mapindex.services.telemetry import set_gauge


logger = logging.getLogger(__name__)

Job = Callable[[], Awaitable[Any]]


class PriorityTaskPool:
    """Bounded worker pool draining a priority heap.

    Higher priority runs first; submissions of equal priority run in FIFO
    order. Workers start on the first submission so the pool binds to the
    running loop.
    """

    def __init__(self, concurrency: int, *, name: str = "index") -> None:
        self.name = name
        self.concurrency = max(1, int(concurrency))
        self._queue: asyncio.PriorityQueue[tuple[int, int, Job, asyncio.Future[Any]]] = asyncio.PriorityQueue()
        self._sequence = itertools.count()
        self._workers: list[asyncio.Task[None]] = []
        self._active = 0
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        return self._active

    def qsize(self) -> int:
        return self._queue.qsize()

    def submit(self, job: Job, *, priority: int = 0) -> asyncio.Future[Any]:
        if self._closed:
            raise IndexerClosedError(f"{self.name} pool is closed")
        self._ensure_workers()
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        # Negated priority: the heap pops its smallest key first.
        self._queue.put_nowait((-priority, next(self._sequence), job, future))
        self._report_depth()
        return future

    async def close(self) -> None:
        # Refuse new work, let queued and running jobs finish, then stop workers.
        self._closed = True
        if not self._workers:
            return
        await self._queue.join()
        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers.clear()
        self._report_depth()

    def _ensure_workers(self) -> None:
        if self._workers:
            return
        for index in range(self.concurrency):
            self._workers.append(asyncio.create_task(self._run_worker(), name=f"{self.name}-worker-{index}"))

    def _report_depth(self) -> None:
        set_gauge(f"{self.name}_queue_depth", self._queue.qsize())
        set_gauge(f"{self.name}_in_flight", self._active)

    async def _run_worker(self) -> None:
        while True:
            _, _, job, future = await self._queue.get()
            self._active += 1
            self._report_depth()
            try:
                result = await job()
            except Exception as exc:  # noqa: BLE001 - delivered to the submitter
                if not future.done():
                    future.set_exception(exc)
                else:
                    logger.warning("pool_job_failed pool=%s error=%s", self.name, exc)
            else:
                if not future.done():
                    future.set_result(result)
            finally:
                self._active -= 1
                self._queue.task_done()
                self._report_depth()
