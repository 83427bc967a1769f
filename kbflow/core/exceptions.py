# kbflow/core/exceptions.py
"""
All exceptions for kbflow.

Hierarchy:
    KbflowError
    ├── BackendError - Embedding/vector-store backend call failed
    ├── MetadataStoreError - FileRecord storage read/write failed
    ├── TaskBuildError - A knowledge item could not be turned into a task
    ├── SchedulerError - Scheduler misuse
    │   └── WorkloadTooLargeError - Item can never be admitted under the caps
    └── InvalidBaseIdError - Base id is not a single directory name

Configuration errors live in kbflow.core.config (ConfigError).
"""

from __future__ import annotations

from typing import Optional


class KbflowError(Exception):
    """Base error for kbflow."""

    pass


class BackendError(KbflowError):
    """Embedding backend call failed (API failure, transport error, bad payload)."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        endpoint: Optional[str] = None,
    ):
        self.status_code = status_code
        self.endpoint = endpoint
        parts = [message]
        if status_code:
            parts.append(f"(HTTP {status_code})")
        if endpoint:
            parts.append(f"[{endpoint}]")
        super().__init__(" ".join(parts))


class MetadataStoreError(KbflowError):
    """Metadata store read or write failed."""

    pass


class TaskBuildError(KbflowError):
    """A knowledge item could not be converted into a loader task."""

    pass


class InvalidBaseIdError(KbflowError, ValueError):
    """
    A knowledge base id that can't be used as one directory name.

    Also a ValueError, so pydantic validators report it as a validation error.
    """

    pass


class SchedulerError(KbflowError):
    """General scheduler failure."""

    pass


class WorkloadTooLargeError(SchedulerError):
    """A task item's workload exceeds the cap and the policy forbids admitting it."""

    def __init__(self, workload: int, max_workload: int):
        self.workload = workload
        self.max_workload = max_workload
        super().__init__(
            f"Task item workload {workload} bytes exceeds the maximum of "
            f"{max_workload} bytes and would never be admitted"
        )


__all__ = [
    "KbflowError",
    "BackendError",
    "MetadataStoreError",
    "TaskBuildError",
    "SchedulerError",
    "WorkloadTooLargeError",
    "InvalidBaseIdError",
]
