# kbflow/service.py
"""
KnowledgeService: the command surface of kbflow.

Operations:
    create(base)                          prepare storage + backend of a base
    add(item, base, ...)                  schedule a knowledge item, await its result
    remove(base, unique_id, unique_ids)   delete indexed artifacts and their records
    reset(base)                           clear the backend and every record
    delete(base_id)                       drop a base's storage directory
    search(query, base)                   ranked search
    rerank(query, base, results)          rerank search results

add() never raises for item-level problems; it returns ERROR_LOADER_RETURN.
Every other operation propagates BackendError / MetadataStoreError.

Usage:
    service = KnowledgeService(config, backend_factory=factory)
    result = await service.add(KnowledgeItem(type="directory", content="./docs"), base,
                               incremental_update=True)
"""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from kbflow.backends.base import BackendFactory, EmbeddingBackend, Reranker, SearchResult
from kbflow.backends.http import http_backend_factory
from kbflow.config.schema import KbflowConfig
from kbflow.core.exceptions import KbflowError, WorkloadTooLargeError
from kbflow.core.paths import METADATA_DB_NAME, KbPaths, check_base_id, is_within
from kbflow.ingestion.diff.scanner import FileScanner
from kbflow.ingestion.pipeline import IngestionPipeline
from kbflow.ingestion.scheduler import ProcessingScheduler
from kbflow.ingestion.state.store import MetadataStore
from kbflow.ingestion.tasks import ProgressCallback, SourceTaskFactory
from kbflow.knowledge.schema import (
    ERROR_LOADER_RETURN,
    KnowledgeBaseParams,
    KnowledgeItem,
    LoaderReturn,
)
from kbflow.logging.logger import get_logger
from kbflow.logging.tags import INGEST

logger = get_logger(__name__)


class KnowledgeService:
    """
    Ingests knowledge items into knowledge bases under one shared scheduler.

    One backend and one metadata store are cached per knowledge base id.
    """

    def __init__(
        self,
        config: Optional[KbflowConfig] = None,
        backend_factory: Optional[BackendFactory] = None,
        reranker: Optional[Reranker] = None,
        storage_root: Optional[Path] = None,
    ) -> None:
        self.config = config or KbflowConfig()
        self._backend_factory = backend_factory or http_backend_factory(self.config.backend)
        self._reranker = reranker
        self._storage_root = Path(
            storage_root or self.config.storage.root or KbPaths.storage_root()
        )
        self.scheduler = ProcessingScheduler.from_config(self.config.scheduler)
        self._scanner = FileScanner(skip_hidden=self.config.sync.skip_hidden)

        self._bases: Dict[str, KnowledgeBaseParams] = {}
        self._backends: Dict[str, EmbeddingBackend] = {}
        self._stores: Dict[str, MetadataStore] = {}

    @property
    def storage_root(self) -> Path:
        return self._storage_root

    def storage_dir(self, base: KnowledgeBaseParams) -> Path:
        """Storage directory of a knowledge base."""
        if base.storage_dir is not None:
            return Path(base.storage_dir)
        return KbPaths.knowledge_base(base.id, self._storage_root)

    # -------------------------------------------------------------------------
    # Per-base resources
    # -------------------------------------------------------------------------

    def get_backend(self, base: KnowledgeBaseParams) -> EmbeddingBackend:
        """Get (or build and cache) the backend of a knowledge base."""
        backend = self._backends.get(base.id)
        if backend is None:
            backend = self._backend_factory(base)
            self._backends[base.id] = backend
            self._bases[base.id] = base
        return backend

    def get_store(self, base: KnowledgeBaseParams) -> MetadataStore:
        """Get (or open and cache) the metadata store of a knowledge base."""
        store = self._stores.get(base.id)
        if store is None:
            store = MetadataStore(base.id, self.storage_dir(base) / METADATA_DB_NAME)
            self._stores[base.id] = store
            self._bases[base.id] = base
        return store

    def pipeline(self, base: KnowledgeBaseParams) -> IngestionPipeline:
        return IngestionPipeline(
            base,
            self.get_backend(base),
            self.get_store(base),
            change_policy=self.config.sync.change_policy,
            scanner=self._scanner,
        )

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    async def create(self, base: KnowledgeBaseParams) -> None:
        """Create the storage directory, metadata table and backend of a base."""
        self.storage_dir(base).mkdir(parents=True, exist_ok=True)
        self.get_store(base).initialize()
        self.get_backend(base)
        logger.info(f"{INGEST} Created knowledge base {base.id} at {self.storage_dir(base)}")

    async def add(
        self,
        item: KnowledgeItem,
        base: KnowledgeBaseParams,
        force_reload: bool = False,
        incremental_update: bool = False,
        on_progress: Optional[ProgressCallback] = None,
    ) -> LoaderReturn:
        """
        Index a knowledge item and return its aggregate result.

        Returns ERROR_LOADER_RETURN if the item can't be turned into a task
        (unknown type, unreadable source, backend setup failure).
        """
        try:
            factory = SourceTaskFactory(self.pipeline(base), self.config.workloads, on_progress)
            task = await factory.build(item, force_reload, incremental_update)
        except Exception as e:
            logger.error(f"{INGEST} Failed to prepare {item.type} item {item.id}: {e}")
            return ERROR_LOADER_RETURN

        if task is None:
            return ERROR_LOADER_RETURN

        try:
            future = self.scheduler.submit(task)
        except WorkloadTooLargeError as e:
            logger.error(f"{INGEST} Rejected {item.type} item {item.id}: {e}")
            return ERROR_LOADER_RETURN

        return await future

    async def remove(
        self,
        base: KnowledgeBaseParams,
        unique_id: str,
        unique_ids: Sequence[str],
    ) -> None:
        """
        Delete indexed artifacts of a knowledge item.

        Each id in unique_ids is deleted from the backend, then its FileRecord
        (if any) is dropped. unique_id only identifies the item in logs: for
        directories it is a synthetic id the backend never issued.
        """
        backend = self.get_backend(base)
        store = self.get_store(base)
        logger.info(f"{INGEST} Removing item {unique_id} ({len(unique_ids)} artifacts)")
        for uid in unique_ids:
            await backend.delete_loader(uid)
            store.delete_by_unique_id(uid)

    async def reset(self, base: KnowledgeBaseParams) -> None:
        """Clear the backend of a base and forget every FileRecord."""
        await self.get_backend(base).reset()
        removed = self.get_store(base).clear()
        logger.info(f"{INGEST} Reset knowledge base {base.id} ({removed} records dropped)")

    async def delete(self, base_id: str) -> None:
        """
        Close a base's resources and remove its storage directory.

        Only directories strictly below the storage root are ever removed.

        Raises:
            InvalidBaseIdError: If base_id is not a single directory name
            KbflowError: If the storage directory lies outside the storage root
        """
        check_base_id(base_id)
        base = self._bases.get(base_id)
        storage_dir = (
            self.storage_dir(base) if base else KbPaths.knowledge_base(base_id, self._storage_root)
        )
        if not is_within(storage_dir, self._storage_root):
            raise KbflowError(
                f"Refusing to delete {storage_dir}: not inside storage root {self._storage_root}"
            )

        self._bases.pop(base_id, None)

        store = self._stores.pop(base_id, None)
        if store is not None:
            store.close()
        await self._close_backend(self._backends.pop(base_id, None))

        if storage_dir.exists():
            shutil.rmtree(storage_dir)
            logger.info(f"{INGEST} Deleted knowledge base {base_id} ({storage_dir})")

    async def search(self, query: str, base: KnowledgeBaseParams) -> List[SearchResult]:
        return await self.get_backend(base).search(query)

    async def rerank(
        self,
        query: str,
        base: KnowledgeBaseParams,
        results: List[SearchResult],
    ) -> List[SearchResult]:
        """
        Rerank search results of a base.

        Raises:
            KbflowError: If results are given but no reranker is configured
        """
        if not results:
            return results
        if self._reranker is None:
            raise KbflowError(f"No reranker configured for knowledge base {base.id}")
        return await self._reranker.rerank(query, results)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @staticmethod
    async def _close_backend(backend: Optional[object]) -> None:
        aclose = getattr(backend, "aclose", None)
        if aclose is not None:
            await aclose()

    async def aclose(self) -> None:
        """Close every cached store, backend and the reranker."""
        for store in self._stores.values():
            store.close()
        for backend in self._backends.values():
            await self._close_backend(backend)
        await self._close_backend(self._reranker)
        self._stores.clear()
        self._backends.clear()
        self._bases.clear()


__all__ = ["KnowledgeService"]
