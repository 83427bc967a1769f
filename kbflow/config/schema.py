# kbflow/config/schema.py
"""
Configuration schema for kbflow.

Example YAML:
    scheduler:
      max_processing_item_count: 30
      max_workload_mb: 80
      oversized_policy: admit_alone

    workloads:
      url_mb: 2
      sitemap_mb: 20

    sync:
      change_policy: hash_or_mtime

    backend:
      base_url: http://127.0.0.1:8700

    reranker:
      base_url: http://127.0.0.1:8701
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

MB = 1024 * 1024


class OversizedPolicy(str, Enum):
    """What the scheduler does with an item larger than the whole workload cap."""

    ADMIT_ALONE = "admit_alone"  # Run it once nothing else is processing
    DEFER = "defer"  # Reject the task up front


class ChangePolicy(str, Enum):
    """Which fingerprint differences mark a tracked file as changed."""

    HASH_OR_MTIME = "hash_or_mtime"
    HASH_ONLY = "hash_only"


class SchedulerConfig(BaseModel):
    """Admission caps for the processing scheduler."""

    model_config = ConfigDict(extra="forbid")

    max_processing_item_count: int = Field(
        default=30, ge=1, description="Task items processing at once, across all tasks"
    )
    max_workload_mb: float = Field(
        default=80, gt=0, description="Sum of workload estimates processing at once (MB)"
    )
    oversized_policy: OversizedPolicy = Field(
        default=OversizedPolicy.ADMIT_ALONE,
        description="Handling of items whose workload alone exceeds the cap",
    )

    @property
    def max_workload(self) -> int:
        """Workload cap in bytes."""
        return int(self.max_workload_mb * MB)


class WorkloadConfig(BaseModel):
    """Fixed workload estimates for sources whose size is unknown up front."""

    model_config = ConfigDict(extra="forbid")

    url_mb: float = Field(default=2, gt=0, description="Estimate for one web page")
    sitemap_mb: float = Field(default=20, gt=0, description="Estimate for a whole sitemap")

    @property
    def url(self) -> int:
        return int(self.url_mb * MB)

    @property
    def sitemap(self) -> int:
        return int(self.sitemap_mb * MB)


class SyncConfig(BaseModel):
    """Incremental directory sync behavior."""

    model_config = ConfigDict(extra="forbid")

    change_policy: ChangePolicy = Field(default=ChangePolicy.HASH_OR_MTIME)
    skip_hidden: bool = Field(default=True, description="Ignore dot files and dot directories")


class StorageConfig(BaseModel):
    """Where knowledge base storage directories live."""

    model_config = ConfigDict(extra="forbid")

    root: Optional[Path] = Field(
        default=None, description="Storage root. None = {workspace}/knowledge_bases"
    )


class BackendConfig(BaseModel):
    """Connection settings for the remote embedding backend."""

    model_config = ConfigDict(extra="forbid")

    base_url: str = Field(default="http://127.0.0.1:8700")
    api_key: Optional[str] = Field(default=None)
    timeout: float = Field(default=60.0, gt=0)


class RerankerConfig(BaseModel):
    """Connection settings for the remote reranker. No base_url means no reranking."""

    model_config = ConfigDict(extra="forbid")

    base_url: Optional[str] = Field(default=None)
    api_key: Optional[str] = Field(default=None)
    timeout: float = Field(default=60.0, gt=0)

    @property
    def enabled(self) -> bool:
        return bool(self.base_url)


class LoggingConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    level: str = Field(default="INFO")

    @field_validator("level")
    @classmethod
    def normalize_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v!r}")
        return level


class KbflowConfig(BaseModel):
    """Top-level kbflow configuration."""

    model_config = ConfigDict(extra="forbid")

    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    workloads: WorkloadConfig = Field(default_factory=WorkloadConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    backend: BackendConfig = Field(default_factory=BackendConfig)
    reranker: RerankerConfig = Field(default_factory=RerankerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


__all__ = [
    "MB",
    "OversizedPolicy",
    "ChangePolicy",
    "SchedulerConfig",
    "WorkloadConfig",
    "SyncConfig",
    "StorageConfig",
    "BackendConfig",
    "RerankerConfig",
    "LoggingConfig",
    "KbflowConfig",
]
