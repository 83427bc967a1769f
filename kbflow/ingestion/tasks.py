# kbflow/ingestion/tasks.py
"""
Loader tasks: what the scheduler runs.

A LoaderTask is the work for one knowledge item. It holds an ordered list of
LoaderTaskItems, each an async unit of work with a workload estimate in
bytes. When every item is done the task folds the item results into the
single LoaderReturn delivered to the caller.

SourceTaskFactory builds tasks from knowledge items:
    file      -> one item, workload = file size
    url       -> one item, workload = workloads.url (2 MB)
    sitemap   -> one item, workload = workloads.sitemap (20 MB)
    note      -> one item, workload = UTF-8 byte length of the text
    directory -> one item per new/changed file + a trailing deletion scan
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Sequence

from kbflow.backends.base import SitemapLoaderSpec, TextLoaderSpec, WebLoaderSpec
from kbflow.config.schema import WorkloadConfig
from kbflow.core.exceptions import TaskBuildError
from kbflow.ingestion.diff.differ import DiffResult, FileChange
from kbflow.ingestion.pipeline import IngestionPipeline
from kbflow.knowledge.schema import ERROR_LOADER_RETURN, ItemType, KnowledgeItem, LoaderReturn
from kbflow.logging.logger import get_logger
from kbflow.logging.tags import INGEST, SYNC

logger = get_logger(__name__)

DIRECTORY_LOADER_TYPE = "DirectoryLoader"

ProgressCallback = Callable[[str, float], None]
UnitOfWork = Callable[[], Awaitable[LoaderReturn]]
Aggregator = Callable[[Sequence[LoaderReturn]], LoaderReturn]


class TaskItemState(str, Enum):
    """Lifecycle of a task item: PENDING -> PROCESSING -> DONE."""

    PENDING = "pending"
    PROCESSING = "processing"
    DONE = "done"


@dataclass(eq=False)
class LoaderTaskItem:
    """One schedulable unit of work."""

    run: UnitOfWork
    workload: int
    label: str = ""
    state: TaskItemState = TaskItemState.PENDING


def _last_result(results: Sequence[LoaderReturn]) -> LoaderReturn:
    return results[-1] if results else ERROR_LOADER_RETURN


@dataclass(eq=False)
class LoaderTask:
    """
    Work for one knowledge item.

    `aggregator` receives the item results in item order; by default the
    result of the last item is delivered.
    """

    item_id: str
    items: List[LoaderTaskItem]
    aggregator: Aggregator = _last_result
    label: str = ""

    @property
    def total_workload(self) -> int:
        return sum(item.workload for item in self.items)

    def aggregate(self, results: Sequence[LoaderReturn]) -> LoaderReturn:
        return self.aggregator(results)


class _Progress:
    """Monotonic processed/total percentage for one knowledge item."""

    def __init__(self, item_id: str, total: int, callback: Optional[ProgressCallback]) -> None:
        self._item_id = item_id
        self._total = total
        self._processed = 0
        self._callback = callback

    def advance(self, count: int = 1) -> None:
        self._processed = min(self._processed + count, self._total)
        if self._total:
            self._emit(self._processed / self._total * 100)

    def finish(self) -> None:
        self._processed = self._total
        self._emit(100.0)

    def _emit(self, percent: float) -> None:
        if self._callback is None:
            return
        try:
            self._callback(self._item_id, percent)
        except Exception as e:
            logger.warning(f"{INGEST} Progress callback failed for {self._item_id}: {e}")


class SourceTaskFactory:
    """
    Converts knowledge items into loader tasks for one knowledge base.

    Usage:
        factory = SourceTaskFactory(pipeline, config.workloads)
        task = await factory.build(item, incremental_update=True)
        if task is None:
            ...  # unknown item type
    """

    def __init__(
        self,
        pipeline: IngestionPipeline,
        workloads: Optional[WorkloadConfig] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> None:
        self._pipeline = pipeline
        self._workloads = workloads or WorkloadConfig()
        self._on_progress = on_progress

    async def build(
        self,
        item: KnowledgeItem,
        force_reload: bool = False,
        incremental_update: bool = False,
    ) -> Optional[LoaderTask]:
        """
        Build the task for a knowledge item.

        Returns None for an unrecognized item type.

        Raises:
            TaskBuildError: If the item's source can't be read
        """
        item_type = item.item_type
        if item_type is None:
            logger.warning(f"{INGEST} Unknown knowledge item type {item.type!r} ({item.id})")
            return None

        if item_type == ItemType.FILE:
            return self._file_task(item, force_reload, incremental_update)
        if item_type == ItemType.DIRECTORY:
            return await self._directory_task(item, force_reload, incremental_update)
        if item_type == ItemType.URL:
            spec = WebLoaderSpec(url=item.content, **self._chunking())
            return self._source_task(item, spec, self._workloads.url, force_reload)
        if item_type == ItemType.SITEMAP:
            spec = SitemapLoaderSpec(url=item.content, **self._chunking())
            return self._source_task(item, spec, self._workloads.sitemap, force_reload)

        spec = TextLoaderSpec(text=item.content, **self._chunking())
        return self._source_task(item, spec, len(item.content.encode("utf-8")), force_reload)

    def _chunking(self) -> dict:
        params = self._pipeline.params
        return {"chunk_size": params.chunk_size, "chunk_overlap": params.chunk_overlap}

    def _single(self, item: KnowledgeItem, run: UnitOfWork, workload: int) -> LoaderTask:
        progress = _Progress(item.id, 1, self._on_progress)

        async def unit() -> LoaderReturn:
            result = await run()
            progress.finish()
            return result

        return LoaderTask(
            item_id=item.id,
            items=[LoaderTaskItem(run=unit, workload=workload, label=item.content)],
            label=f"{item.type}:{item.content}",
        )

    def _file_task(
        self, item: KnowledgeItem, force_reload: bool, incremental_update: bool
    ) -> LoaderTask:
        path = Path(item.content)
        try:
            size = path.stat().st_size
        except OSError as e:
            raise TaskBuildError(f"Cannot read file {item.content}: {e}") from e
        if not path.is_file():
            raise TaskBuildError(f"Not a file: {item.content}")

        return self._single(
            item,
            lambda: self._pipeline.sync_file(path, force_reload, incremental_update),
            size,
        )

    def _source_task(
        self, item: KnowledgeItem, spec, workload: int, force_reload: bool
    ) -> LoaderTask:
        return self._single(item, lambda: self._pipeline.add_source(spec, force_reload), workload)

    async def _directory_task(
        self, item: KnowledgeItem, force_reload: bool, incremental_update: bool
    ) -> LoaderTask:
        pipeline = self._pipeline
        try:
            scan = await pipeline.scanner.scan_async(item.content)
        except OSError as e:
            raise TaskBuildError(f"Cannot scan directory {item.content}: {e}") from e

        full_refresh = force_reload or not incremental_update
        if full_refresh:
            mode = "force reload" if force_reload else "full refresh"
            logger.info(f"{SYNC} Performing {mode} for directory: {scan.root}")
        diff = pipeline.differ.compute_diff(scan, force=full_refresh)

        progress = _Progress(item.id, diff.total_files + scan.total_errors, self._on_progress)
        # Unchanged and unreadable files are decided already
        progress.advance(len(diff.to_skip) + scan.total_errors)

        changes = diff.to_ingest
        items: List[LoaderTaskItem] = []
        for change in changes:
            items.append(
                LoaderTaskItem(
                    run=self._file_unit(change, force_reload, progress),
                    workload=change.scanned.size_bytes,
                    label=change.path,
                )
            )

        async def deletion_scan() -> LoaderReturn:
            await pipeline.delete_removed(diff.to_delete)
            return LoaderReturn(loader_type=DIRECTORY_LOADER_TYPE)

        items.append(LoaderTaskItem(run=deletion_scan, workload=0, label=f"{scan.root} (deletions)"))

        return LoaderTask(
            item_id=item.id,
            items=items,
            aggregator=_directory_aggregator(diff, changes, progress),
            label=f"directory:{scan.root}",
        )

    def _file_unit(
        self, change: FileChange, force_reload: bool, progress: _Progress
    ) -> UnitOfWork:
        async def unit() -> LoaderReturn:
            result = await self._pipeline.index_change(change, force_reload)
            progress.advance()
            return result

        return unit


def _directory_aggregator(
    diff: DiffResult, changes: List[FileChange], progress: _Progress
) -> Aggregator:
    """
    Fold a directory task's results.

    entries_added counts successfully indexed new and changed files;
    unique_ids lists every file indexed in the base, unchanged ones included.
    """
    unchanged = {c.path: c.record.external_unique_id for c in diff.to_skip}

    def aggregate(results: Sequence[LoaderReturn]) -> LoaderReturn:
        progress.finish()

        indexed = dict(unchanged)
        entries_added = 0
        for change, result in zip(changes, results):
            if result.is_error:
                continue
            entries_added += 1
            indexed[change.path] = result.unique_id

        return LoaderReturn(
            entries_added=entries_added,
            unique_id=f"{DIRECTORY_LOADER_TYPE}_{uuid.uuid4()}",
            unique_ids=tuple(indexed[path] for path in sorted(indexed)),
            loader_type=DIRECTORY_LOADER_TYPE,
        )

    return aggregate


__all__ = [
    "DIRECTORY_LOADER_TYPE",
    "ProgressCallback",
    "TaskItemState",
    "LoaderTaskItem",
    "LoaderTask",
    "SourceTaskFactory",
]
