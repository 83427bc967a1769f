# kbflow/ingestion/pipeline.py
"""
Per-item units of work for one knowledge base.

Each public coroutine is a failure boundary: hashing, backend and metadata
store errors are logged and turned into ERROR_LOADER_RETURN, so a failing
file never takes its siblings down with it.

Operations:
- add_new:         index a file without a record, then insert its record
- replace_changed: delete the old artifact, re-index, replace the record
- sync_file:       single-file item (skip / add / replace)
- delete_removed:  drop artifacts and records of files gone from disk
- add_source:      url / sitemap / note items (no record kept)
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Iterable, Optional

from kbflow.backends.base import EmbeddingBackend, FileLoaderSpec, LoaderResult, LoaderSpec
from kbflow.config.schema import ChangePolicy
from kbflow.ingestion.diff.differ import Differ, FileChange
from kbflow.ingestion.diff.scanner import FileScanner, ScannedFile
from kbflow.ingestion.state.schema import FileRecord
from kbflow.ingestion.state.store import MetadataStore
from kbflow.knowledge.schema import ERROR_LOADER_RETURN, KnowledgeBaseParams, LoaderReturn
from kbflow.logging.logger import get_logger
from kbflow.logging.tags import INGEST

logger = get_logger(__name__)


def _loader_return(result: LoaderResult) -> LoaderReturn:
    return LoaderReturn(
        entries_added=result.entries_added,
        unique_id=result.unique_id,
        unique_ids=(result.unique_id,),
        loader_type=result.loader_type,
    )


class IngestionPipeline:
    """
    Units of work against one knowledge base's backend and metadata store.

    Usage:
        pipeline = IngestionPipeline(params, backend, store)
        result = await pipeline.sync_file("/docs/a.md", incremental_update=True)
    """

    def __init__(
        self,
        params: KnowledgeBaseParams,
        backend: EmbeddingBackend,
        store: MetadataStore,
        change_policy: ChangePolicy = ChangePolicy.HASH_OR_MTIME,
        scanner: Optional[FileScanner] = None,
    ) -> None:
        self.params = params
        self.backend = backend
        self.store = store
        self.scanner = scanner or FileScanner()
        self.differ = Differ(store, change_policy)

    def file_spec(self, path: str) -> FileLoaderSpec:
        return FileLoaderSpec(
            path=path,
            chunk_size=self.params.chunk_size,
            chunk_overlap=self.params.chunk_overlap,
        )

    def _record(self, scanned: ScannedFile, result: LoaderResult) -> FileRecord:
        return FileRecord(
            knowledge_base_id=self.params.id,
            file_path=scanned.path,
            content_hash=scanned.content_hash,
            size=scanned.size_bytes,
            last_modified_timestamp=scanned.mtime_ms,
            external_unique_id=result.unique_id,
            loader_type=result.loader_type,
        )

    # -------------------------------------------------------------------------
    # Files
    # -------------------------------------------------------------------------

    async def _add(self, scanned: ScannedFile, force_reload: bool) -> LoaderReturn:
        result = await self.backend.add_loader(self.file_spec(scanned.path), force_reload)
        self.store.upsert(self._record(scanned, result))
        return _loader_return(result)

    async def _replace(self, scanned: ScannedFile, record: FileRecord) -> LoaderReturn:
        await self.backend.delete_loader(record.external_unique_id)
        try:
            result = await self.backend.add_loader(self.file_spec(scanned.path), True)
        except Exception:
            # The stored handle is gone; the next sync must see the file as new
            self.store.delete_by_path(record.file_path)
            raise
        self.store.upsert(self._record(scanned, result))
        return _loader_return(result)

    async def add_new(self, scanned: ScannedFile, force_reload: bool = False) -> LoaderReturn:
        """Index a file that has no record yet."""
        try:
            logger.info(f"{INGEST} Adding new file: {scanned.path}")
            return await self._add(scanned, force_reload)
        except Exception as e:
            logger.error(f"{INGEST} Error adding new file {scanned.path}: {e}")
            return ERROR_LOADER_RETURN

    async def replace_changed(self, scanned: ScannedFile, record: FileRecord) -> LoaderReturn:
        """Delete a file's old artifact, re-index it and replace its record."""
        try:
            logger.info(f"{INGEST} Updating changed file: {scanned.path}")
            return await self._replace(scanned, record)
        except Exception as e:
            logger.error(f"{INGEST} Error updating file {scanned.path}: {e}")
            return ERROR_LOADER_RETURN

    async def index_change(self, change: FileChange, force_reload: bool = False) -> LoaderReturn:
        """Run the add or replace unit for one classified file."""
        if change.record is None:
            return await self.add_new(change.scanned, force_reload)
        return await self.replace_changed(change.scanned, change.record)

    async def sync_file(
        self,
        path: str | Path,
        force_reload: bool = False,
        incremental_update: bool = False,
    ) -> LoaderReturn:
        """
        Unit of work of a single-file item.

        With incremental_update and without force_reload an unchanged file
        makes no backend calls and returns its stored handle.
        """
        try:
            scanned = await asyncio.to_thread(self.scanner.scan_file, path)
            force = force_reload or not incremental_update
            record = self.store.get_by_path(scanned.path)
            reason = self.differ.check(scanned, record, force=force)

            if not reason.needs_reingest:
                logger.debug(f"{INGEST} Skipping unchanged file: {scanned.path}")
                return LoaderReturn(
                    entries_added=0,
                    unique_id=record.external_unique_id,
                    unique_ids=(record.external_unique_id,),
                    loader_type=record.loader_type,
                )

            if record is None:
                logger.info(f"{INGEST} Adding file: {scanned.path}")
                return await self._add(scanned, force_reload)

            logger.info(f"{INGEST} Re-indexing file ({reason}): {scanned.path}")
            return await self._replace(scanned, record)
        except Exception as e:
            logger.error(f"{INGEST} Error processing file {path}: {e}")
            return ERROR_LOADER_RETURN

    async def delete_removed(self, records: Iterable[FileRecord]) -> int:
        """
        Delete artifacts and records of files that disappeared from disk.

        Returns the number of files cleaned up. A failure on one record is
        logged and does not stop the others.
        """
        deleted = 0
        for record in records:
            try:
                logger.info(f"{INGEST} Deleting missing file: {record.file_path}")
                await self.backend.delete_loader(record.external_unique_id)
                self.store.delete_by_path(record.file_path)
                deleted += 1
            except Exception as e:
                logger.error(f"{INGEST} Error deleting missing file {record.file_path}: {e}")
        return deleted

    # -------------------------------------------------------------------------
    # Other sources
    # -------------------------------------------------------------------------

    async def add_source(self, spec: LoaderSpec, force_reload: bool = False) -> LoaderReturn:
        """Index a url, sitemap or note. No FileRecord is kept for these."""
        try:
            result = await self.backend.add_loader(spec, force_reload)
            return _loader_return(result)
        except Exception as e:
            logger.error(f"{INGEST} Error adding {spec.kind} source: {e}")
            return ERROR_LOADER_RETURN


__all__ = ["IngestionPipeline"]
