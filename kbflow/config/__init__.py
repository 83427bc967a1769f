# kbflow/config/__init__.py
"""Configuration schema and layered loading."""

from kbflow.config.loader import deep_merge, load_config, load_defaults
from kbflow.config.schema import (
    BackendConfig,
    ChangePolicy,
    KbflowConfig,
    LoggingConfig,
    OversizedPolicy,
    SchedulerConfig,
    StorageConfig,
    SyncConfig,
    WorkloadConfig,
)

__all__ = [
    "KbflowConfig",
    "SchedulerConfig",
    "WorkloadConfig",
    "SyncConfig",
    "StorageConfig",
    "BackendConfig",
    "LoggingConfig",
    "ChangePolicy",
    "OversizedPolicy",
    "deep_merge",
    "load_config",
    "load_defaults",
]
