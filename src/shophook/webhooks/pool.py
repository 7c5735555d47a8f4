"""Bounded background worker pool for delivery jobs.

Producers submit zero-argument coroutine factories. Submission never
blocks: when the queue is full the job is dropped and the caller is told.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)

Job = Callable[[], Awaitable[Any]]


class DeliveryWorkerPool:
    """Runs delivery jobs on a fixed number of asyncio worker tasks.

    Example:
        ```python
        pool = DeliveryWorkerPool(workers=4, queue_size=1000)
        await pool.start()
        pool.submit(lambda: dispatcher.dispatch_now(...))
        await pool.stop()  # waits for queued jobs
        ```
    """

    def __init__(self, workers: int = 4, queue_size: int = 1000) -> None:
        if workers < 1:
            raise ValueError("workers must be at least 1")
        if queue_size < 1:
            raise ValueError("queue_size must be at least 1")

        self._num_workers = workers
        self._queue: asyncio.Queue[Job] = asyncio.Queue(maxsize=queue_size)
        self._workers: list[asyncio.Task[None]] = []
        self._running = False

    @property
    def running(self) -> bool:
        """Whether worker tasks are consuming the queue."""
        return self._running

    @property
    def pending(self) -> int:
        """Number of jobs waiting in the queue."""
        return self._queue.qsize()

    async def start(self) -> None:
        """Start the worker tasks. Calling twice is a no-op."""
        if self._running:
            return

        self._running = True
        for i in range(self._num_workers):
            self._workers.append(asyncio.create_task(self._worker(f"worker-{i}")))

        logger.info("Started delivery pool with %d workers", self._num_workers)

    async def stop(self, drain: bool = True) -> None:
        """Stop the worker tasks.

        Args:
            drain: Wait for queued jobs to finish before cancelling workers.
        """
        if not self._running:
            return

        if drain:
            await self._queue.join()

        self._running = False
        for worker in self._workers:
            worker.cancel()
        for worker in self._workers:
            with contextlib.suppress(asyncio.CancelledError):
                await worker
        self._workers.clear()

        logger.info("Stopped delivery pool")

    def submit(self, job: Job) -> bool:
        """Queue a job without waiting.

        Returns:
            True if queued, False if the queue was full and the job dropped.
        """
        try:
            self._queue.put_nowait(job)
        except asyncio.QueueFull:
            logger.warning("Delivery queue full (%d jobs), dropping job", self._queue.qsize())
            return False
        return True

    async def join(self) -> None:
        """Wait until every queued job has been processed."""
        await self._queue.join()

    async def _worker(self, name: str) -> None:
        while True:
            job = await self._queue.get()
            try:
                await job()
            except Exception:
                logger.exception("Delivery job failed in %s", name)
            finally:
                self._queue.task_done()
