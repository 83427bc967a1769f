"""
kbflow - incremental, admission-controlled knowledge base ingestion.

kbflow decides WHAT to submit to an embedding backend and WHEN: it turns
knowledge items (files, directories, web pages, sitemaps, notes) into
loader tasks, runs them under an item-count cap and a byte-workload cap,
and keeps per-file fingerprints so unchanged files are never re-indexed.

Quick Start:
    >>> from kbflow import KnowledgeService, KnowledgeItem, KnowledgeBaseParams, EmbeddingConfig
    >>> base = KnowledgeBaseParams(id="docs", embedding=EmbeddingConfig.create("openai", "small"))
    >>> service = KnowledgeService()
    >>> result = await service.add(KnowledgeItem(type="directory", content="./docs"), base,
    ...                            incremental_update=True)

Architecture:
    kbflow/
    ├── knowledge/        # KnowledgeBaseParams, KnowledgeItem, LoaderReturn
    ├── backends/         # EmbeddingBackend protocol + HTTP implementation
    ├── ingestion/
    │   ├── state/        # FileRecord + SQLite MetadataStore
    │   ├── diff/         # FileScanner + Differ (incremental sync)
    │   ├── pipeline.py   # per-file units of work
    │   ├── tasks.py      # LoaderTask + SourceTaskFactory
    │   └── scheduler.py  # ProcessingScheduler
    ├── service.py        # KnowledgeService command surface
    └── cli/              # typer CLI
"""

from kbflow.config import KbflowConfig, load_config
from kbflow.core.exceptions import (
    BackendError,
    KbflowError,
    MetadataStoreError,
    SchedulerError,
    TaskBuildError,
    WorkloadTooLargeError,
)
from kbflow.ingestion.scheduler import ProcessingScheduler
from kbflow.ingestion.state import FileRecord, MetadataStore
from kbflow.ingestion.tasks import LoaderTask, LoaderTaskItem, SourceTaskFactory, TaskItemState
from kbflow.knowledge import (
    ERROR_LOADER_RETURN,
    EmbeddingConfig,
    ItemType,
    KnowledgeBaseParams,
    KnowledgeItem,
    LoaderReturn,
)
from kbflow.service import KnowledgeService

__version__ = "0.1.0"

__all__ = [
    # Service
    "KnowledgeService",
    # Models
    "KnowledgeBaseParams",
    "KnowledgeItem",
    "EmbeddingConfig",
    "ItemType",
    "LoaderReturn",
    "ERROR_LOADER_RETURN",
    "FileRecord",
    # Building blocks
    "MetadataStore",
    "ProcessingScheduler",
    "SourceTaskFactory",
    "LoaderTask",
    "LoaderTaskItem",
    "TaskItemState",
    # Config
    "KbflowConfig",
    "load_config",
    # Errors
    "KbflowError",
    "BackendError",
    "MetadataStoreError",
    "SchedulerError",
    "TaskBuildError",
    "WorkloadTooLargeError",
]
