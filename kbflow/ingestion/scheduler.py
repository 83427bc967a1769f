# kbflow/ingestion/scheduler.py
"""
Admission-controlled concurrent runner for loader tasks.

Two caps bound the work in flight across every submitted task:
- max_processing_item_count: task items processing at once
- max_workload: sum of the workload estimates (bytes) processing at once

Admission scans the registered tasks in submission order and starts PENDING
items until the next one would exceed a cap, then stops scanning (later
items never overtake an earlier one that doesn't fit).

Completions are pushed onto a queue drained by a single run-loop coroutine,
which frees capacity, resolves finished tasks and re-runs admission. The
run loop is started on demand and exits when nothing is processing.

Usage:
    scheduler = ProcessingScheduler.from_config(config.scheduler)
    result = await scheduler.submit(task)
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import List, Optional, Set, Tuple

from kbflow.config.schema import MB, OversizedPolicy, SchedulerConfig
from kbflow.core.exceptions import WorkloadTooLargeError
from kbflow.ingestion.tasks import LoaderTask, LoaderTaskItem, TaskItemState
from kbflow.knowledge.schema import ERROR_LOADER_RETURN, LoaderReturn
from kbflow.logging.logger import get_logger
from kbflow.logging.tags import SCHEDULER

logger = get_logger(__name__)

DEFAULT_MAX_PROCESSING_ITEM_COUNT = 30
DEFAULT_MAX_WORKLOAD = 80 * MB


@dataclass(eq=False)
class _QueuedTask:
    task: LoaderTask
    pending: List[LoaderTaskItem]  # Items not DONE yet
    results: List[Optional[LoaderReturn]]
    future: "asyncio.Future[LoaderReturn]"


_Completion = Tuple[_QueuedTask, int, LoaderTaskItem, LoaderReturn]


class ProcessingScheduler:
    """
    Runs task items concurrently under an item-count cap and a workload cap.

    An item whose workload alone exceeds max_workload is handled according
    to `oversized_policy`:
    - ADMIT_ALONE: admitted once nothing else is processing
    - DEFER: submit() rejects the task with WorkloadTooLargeError

    Not thread-safe: use from a single event loop.
    """

    def __init__(
        self,
        max_processing_item_count: int = DEFAULT_MAX_PROCESSING_ITEM_COUNT,
        max_workload: int = DEFAULT_MAX_WORKLOAD,
        oversized_policy: OversizedPolicy = OversizedPolicy.ADMIT_ALONE,
    ) -> None:
        if max_processing_item_count < 1:
            raise ValueError("max_processing_item_count must be at least 1")
        if max_workload <= 0:
            raise ValueError("max_workload must be positive")

        self.max_processing_item_count = max_processing_item_count
        self.max_workload = max_workload
        self.oversized_policy = OversizedPolicy(oversized_policy)

        self._queue: List[_QueuedTask] = []
        self._workload = 0
        self._processing_item_count = 0
        self._completions: Optional["asyncio.Queue[_Completion]"] = None
        self._runner: Optional[asyncio.Task] = None
        self._running: Set[asyncio.Task] = set()

    @classmethod
    def from_config(cls, config: SchedulerConfig) -> "ProcessingScheduler":
        return cls(
            max_processing_item_count=config.max_processing_item_count,
            max_workload=config.max_workload,
            oversized_policy=config.oversized_policy,
        )

    @property
    def workload(self) -> int:
        """Sum of workloads of the items processing right now."""
        return self._workload

    @property
    def processing_item_count(self) -> int:
        return self._processing_item_count

    @property
    def pending_item_count(self) -> int:
        return sum(
            1
            for entry in self._queue
            for item in entry.pending
            if item.state == TaskItemState.PENDING
        )

    @property
    def task_count(self) -> int:
        """Tasks submitted and not yet resolved."""
        return len(self._queue)

    def submit(self, task: LoaderTask) -> "asyncio.Future[LoaderReturn]":
        """
        Register a task and return a future resolving to its aggregate result.

        Must be called from a running event loop.

        Raises:
            WorkloadTooLargeError: Under DEFER, if an item can never be admitted
        """
        loop = asyncio.get_running_loop()

        if self.oversized_policy == OversizedPolicy.DEFER:
            for item in task.items:
                if item.workload > self.max_workload:
                    raise WorkloadTooLargeError(item.workload, self.max_workload)

        future: "asyncio.Future[LoaderReturn]" = loop.create_future()

        if not task.items:
            future.set_result(self._aggregate(task, []))
            return future

        self._queue.append(
            _QueuedTask(
                task=task,
                pending=list(task.items),
                results=[None] * len(task.items),
                future=future,
            )
        )
        logger.debug(
            f"{SCHEDULER} Registered {task.label or task.item_id}: "
            f"{len(task.items)} items, {task.total_workload} bytes"
        )

        self._admit()
        return future

    # -------------------------------------------------------------------------
    # Admission
    # -------------------------------------------------------------------------

    def _fits(self, item: LoaderTaskItem) -> bool:
        if self._processing_item_count >= self.max_processing_item_count:
            return False
        if self._workload + item.workload <= self.max_workload:
            return True
        # Only an item larger than the whole cap can pass here, and only alone
        return (
            self.oversized_policy == OversizedPolicy.ADMIT_ALONE
            and self._processing_item_count == 0
        )

    def _admit(self) -> None:
        for entry in self._queue:
            for index, item in enumerate(entry.task.items):
                if item.state != TaskItemState.PENDING:
                    continue
                if not self._fits(item):
                    return
                self._start(entry, index, item)

    def _start(self, entry: _QueuedTask, index: int, item: LoaderTaskItem) -> None:
        item.state = TaskItemState.PROCESSING
        self._workload += item.workload
        self._processing_item_count += 1

        if item.workload > self.max_workload:
            logger.info(
                f"{SCHEDULER} Admitting oversized item alone: "
                f"{item.label} ({item.workload} bytes)"
            )
        else:
            logger.debug(
                f"{SCHEDULER} Admitted {item.label} "
                f"(items={self._processing_item_count}, workload={self._workload})"
            )

        self._ensure_runner()
        running = asyncio.get_running_loop().create_task(self._execute(entry, index, item))
        self._running.add(running)
        running.add_done_callback(self._running.discard)

    def _ensure_runner(self) -> None:
        if self._runner is None or self._runner.done():
            self._completions = asyncio.Queue()
            self._runner = asyncio.get_running_loop().create_task(self._run())

    # -------------------------------------------------------------------------
    # Execution and completion
    # -------------------------------------------------------------------------

    async def _execute(self, entry: _QueuedTask, index: int, item: LoaderTaskItem) -> None:
        try:
            result = await item.run()
        except Exception:
            logger.exception(f"{SCHEDULER} Task item failed: {item.label}")
            result = ERROR_LOADER_RETURN
        self._completions.put_nowait((entry, index, item, result))

    async def _run(self) -> None:
        while self._processing_item_count > 0:
            entry, index, item, result = await self._completions.get()
            self._complete(entry, index, item, result)
            self._admit()

    def _complete(
        self,
        entry: _QueuedTask,
        index: int,
        item: LoaderTaskItem,
        result: LoaderReturn,
    ) -> None:
        item.state = TaskItemState.DONE
        self._workload -= item.workload
        self._processing_item_count -= 1
        entry.pending.remove(item)
        entry.results[index] = result

        if entry.pending:
            return

        self._queue.remove(entry)
        aggregate = self._aggregate(entry.task, entry.results)
        if not entry.future.done():
            entry.future.set_result(aggregate)
        logger.info(
            f"{SCHEDULER} Completed {entry.task.label or entry.task.item_id}: "
            f"entries_added={aggregate.entries_added}"
        )

    @staticmethod
    def _aggregate(task: LoaderTask, results: List[Optional[LoaderReturn]]) -> LoaderReturn:
        try:
            return task.aggregate([r if r is not None else ERROR_LOADER_RETURN for r in results])
        except Exception:
            logger.exception(f"{SCHEDULER} Aggregating results failed: {task.label}")
            return ERROR_LOADER_RETURN


__all__ = [
    "DEFAULT_MAX_PROCESSING_ITEM_COUNT",
    "DEFAULT_MAX_WORKLOAD",
    "ProcessingScheduler",
]
