"""Priority queue for on-demand task runs, drained by a single worker."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from itertools import count
from typing import TYPE_CHECKING

from taskwarden.scheduling.models import ScheduledTask, TaskExecution, TaskPriority

if TYPE_CHECKING:
    from taskwarden.scheduling.runner import ExecutorRunner

logger = logging.getLogger(__name__)


@dataclass(order=True)
class QueuedRun:
    """Queue record ordered by priority then insertion order."""

    sort_index: tuple[int, int]
    task: ScheduledTask = field(compare=False)
    result: asyncio.Future[TaskExecution] = field(compare=False)

    @classmethod
    def create(
        cls,
        *,
        task: ScheduledTask,
        priority: TaskPriority,
        sequence: int,
        result: asyncio.Future[TaskExecution],
    ) -> QueuedRun:
        # Negative rank so higher priority pops first from the min-heap.
        return cls(sort_index=(-priority.rank, sequence), task=task, result=result)


class AdHocTaskQueue:
    """Run queued tasks one at a time in priority order.

    Queued runs never overlap each other; the worker is started lazily on the
    first submission.
    """

    def __init__(self, runner: ExecutorRunner) -> None:
        self._runner = runner
        self._queue: asyncio.PriorityQueue[QueuedRun] = asyncio.PriorityQueue()
        self._sequence = count()
        self._worker: asyncio.Task[None] | None = None
        self._processing = False

    @property
    def processing(self) -> bool:
        return self._processing

    def size(self) -> int:
        return self._queue.qsize()

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def start(self) -> None:
        if self.running:
            return
        self._worker = asyncio.create_task(self._drain(), name="taskwarden-adhoc-queue")

    async def stop(self) -> None:
        """Stop the worker and cancel every run still waiting in the queue."""
        worker, self._worker = self._worker, None
        if worker is not None:
            worker.cancel()
            await asyncio.gather(worker, return_exceptions=True)
        while not self._queue.empty():
            item = self._queue.get_nowait()
            item.result.cancel()
            self._queue.task_done()

    def submit(self, task: ScheduledTask, *, priority: TaskPriority | None = None) -> asyncio.Future[TaskExecution]:
        """Queue *task*; the returned future resolves to its execution."""
        future: asyncio.Future[TaskExecution] = asyncio.get_running_loop().create_future()
        item = QueuedRun.create(
            task=task,
            priority=TaskPriority(priority or task.priority),
            sequence=next(self._sequence),
            result=future,
        )
        self._queue.put_nowait(item)
        logger.debug("Queued ad-hoc run task_id=%s queue_size=%d", task.id, self._queue.qsize())
        self.start()
        return future

    async def run(self, task: ScheduledTask, *, priority: TaskPriority | None = None) -> TaskExecution:
        return await self.submit(task, priority=priority)

    async def join(self) -> None:
        await self._queue.join()

    async def _drain(self) -> None:
        while True:
            item = await self._queue.get()
            if item.result.cancelled():
                self._queue.task_done()
                continue
            self._processing = True
            try:
                execution = await self._runner.run(item.task)
            except asyncio.CancelledError:
                item.result.cancel()
                raise
            except Exception as exc:
                logger.exception("Ad-hoc run failed task_id=%s", item.task.id)
                if not item.result.done():
                    item.result.set_exception(exc)
            else:
                if not item.result.done():
                    item.result.set_result(execution)
            finally:
                self._processing = False
                self._queue.task_done()
