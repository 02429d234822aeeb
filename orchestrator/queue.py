"""Bounded in-process work queue for background enrichment."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
import logging
from typing import Any, Awaitable, Callable, List, Optional

from core import utcnow
from utils.logger import emit_event


logger = logging.getLogger(__name__)


@dataclass
class WorkItem:
    """One unit of background work; ``handler`` is awaited by a worker."""

    name: str
    handler: Callable[[], Awaitable[Any]]
    run_id: Optional[str] = None
    size: int = 0
    enqueued_at: Any = field(default_factory=utcnow)


class EnrichmentQueue:
    """
    asyncio queue drained by a fixed pool of worker tasks.

    Items never block the producer: a full queue drops the item and emits
    ``enrichment.dropped``. Workers start lazily on the first enqueue from
    inside a running loop, or explicitly via ``start``.
    """

    def __init__(self, maxsize: int = 100, workers: int = 2) -> None:
        self._maxsize = max(1, int(maxsize))
        self._worker_count = max(1, int(workers))
        self._queue: Optional[asyncio.Queue] = None
        self._workers: List[asyncio.Task] = []
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self.completed = 0
        self.failed = 0
        self.dropped = 0

    @property
    def running(self) -> bool:
        return bool(self._workers) and not all(task.done() for task in self._workers)

    def start(self) -> None:
        """Spawn workers on the running loop (idempotent)."""
        loop = asyncio.get_running_loop()
        if self.running and self._loop is loop:
            return
        self._loop = loop
        self._queue = asyncio.Queue(maxsize=self._maxsize)
        self._workers = [
            loop.create_task(self._worker(index, self._queue), name=f"enrichment-worker-{index}")
            for index in range(self._worker_count)
        ]
        logger.info("enrichment workers started count=%s maxsize=%s", self._worker_count, self._maxsize)

    async def stop(self) -> None:
        """Cancel workers; pending items are discarded."""
        workers, self._workers = self._workers, []
        for task in workers:
            task.cancel()
        if workers:
            await asyncio.gather(*workers, return_exceptions=True)
        self._queue = None

    def enqueue(self, item: WorkItem) -> bool:
        """Queue ``item`` without waiting. Returns False when it was dropped."""
        self.start()
        try:
            self._queue.put_nowait(item)
        except asyncio.QueueFull:
            self.dropped += 1
            emit_event(
                "enrichment.dropped",
                level=logging.WARNING,
                task=item.name,
                run_id=item.run_id,
                size=item.size,
                queue_depth=self.size(),
            )
            return False
        return True

    async def join(self) -> None:
        """Wait until every queued item has been handled."""
        if self._queue is not None:
            await self._queue.join()

    def size(self) -> int:
        return self._queue.qsize() if self._queue is not None else 0

    async def _worker(self, index: int, queue: asyncio.Queue) -> None:
        while True:
            item: WorkItem = await queue.get()
            try:
                await item.handler()
                self.completed += 1
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                self.failed += 1
                logger.exception("enrichment task failed worker=%s task=%s run_id=%s", index, item.name, item.run_id)
                emit_event("enrichment.task_failed", level=logging.ERROR, task=item.name, run_id=item.run_id, error=exc)
            finally:
                queue.task_done()
