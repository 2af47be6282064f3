"""
In-process job queue for report pipeline runs.

Submit and Regenerate hand a report id to the queue and return; worker tasks
started with the application run the pipeline. A report id is held from the
moment it is claimed until its run finishes, so the same report never runs
twice at once.
"""

import asyncio
import logging
from typing import Awaitable, Callable

from sitelog.app.core.exceptions import ReportBusyError

logger = logging.getLogger(__name__)

JobHandler = Callable[[str], Awaitable[None]]


class ReportJobQueue:
    """
    asyncio.Queue of report ids consumed by a fixed pool of worker tasks.

    Examples:
        >>> queue = ReportJobQueue(handler=pipeline.run_pipeline, workers=2)
        >>> queue.start()
        >>> queue.enqueue(report_id)
        >>> await queue.join()
        >>> await queue.stop()
    """

    def __init__(self, handler: JobHandler | None = None, workers: int = 2):
        self.handler = handler
        self.worker_count = workers
        self._queue: asyncio.Queue[str] = asyncio.Queue()
        self._pending: set[str] = set()
        self._locks: dict[str, asyncio.Lock] = {}
        self._workers: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return bool(self._workers)

    def is_pending(self, report_id: str) -> bool:
        """Whether the report is claimed, queued or running."""
        return report_id in self._pending

    def claim(self, report_id: str) -> None:
        """
        Reserve a report id before changing its state.

        Raises:
            ReportBusyError: If the report is already claimed, queued or running
        """
        if report_id in self._pending:
            raise ReportBusyError(report_id)
        self._pending.add(report_id)

    def release(self, report_id: str) -> None:
        """Give up a claim that will not be enqueued."""
        self._pending.discard(report_id)

    def put(self, report_id: str) -> None:
        """Queue a claimed report id."""
        self._queue.put_nowait(report_id)
        logger.info(f"[QUEUE] Enqueued report {report_id} (queue size: {self._queue.qsize()})")

    def enqueue(self, report_id: str) -> None:
        """
        Claim and queue a report id.

        Raises:
            ReportBusyError: If the report is already claimed, queued or running
        """
        self.claim(report_id)
        self.put(report_id)

    def lock_for(self, report_id: str) -> asyncio.Lock:
        lock = self._locks.get(report_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[report_id] = lock
        return lock

    async def run_job(self, report_id: str) -> None:
        """Run the handler for one report while holding its lock."""
        if self.handler is None:
            raise RuntimeError("ReportJobQueue has no handler")

        lock = self.lock_for(report_id)
        try:
            async with lock:
                await self.handler(report_id)
        except Exception as e:
            logger.error(f"[QUEUE] Job for report {report_id} failed: {e}", exc_info=True)
        finally:
            self._pending.discard(report_id)
            if not lock.locked():
                self._locks.pop(report_id, None)

    async def _worker(self, index: int) -> None:
        logger.info(f"[QUEUE] Worker {index} started")
        while True:
            report_id = await self._queue.get()
            try:
                await self.run_job(report_id)
            finally:
                self._queue.task_done()

    def start(self) -> None:
        """Start worker tasks. Must be called from a running event loop."""
        if self._workers:
            return
        self._workers = [
            asyncio.create_task(self._worker(index), name=f"report-worker-{index}")
            for index in range(self.worker_count)
        ]
        logger.info(f"[QUEUE] Started {self.worker_count} pipeline workers")

    async def join(self) -> None:
        """Wait until every queued job has finished."""
        await self._queue.join()

    async def stop(self) -> None:
        """Cancel worker tasks. Jobs still queued are dropped."""
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        logger.info("[QUEUE] Pipeline workers stopped")
