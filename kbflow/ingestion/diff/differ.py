# kbflow/ingestion/diff/differ.py
"""
Diff computation for incremental sync.

Computes the action plan by comparing:
1. Scanned files from disk
2. FileRecords of the metadata store (authoritative source for skip decisions)

A tracked file is re-indexed when:
- Its content changes (content_hash differs)
- Its mtime changes (only under ChangePolicy.HASH_OR_MTIME)
- The sync is forced

This module ONLY computes actions - it does NOT execute them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Protocol, Set, runtime_checkable

from kbflow.config.schema import ChangePolicy
from kbflow.ingestion.state.schema import FileRecord
from kbflow.logging.logger import get_logger
from kbflow.logging.tags import SYNC

from .scanner import ScannedFile, ScanResult

logger = get_logger(__name__)


@runtime_checkable
class StateReader(Protocol):
    """
    Protocol for reading FileRecords.

    MetadataStore implements this.
    """

    def get_by_path(self, file_path: str) -> Optional[FileRecord]:
        ...

    def list_under(self, directory: str | Path) -> List[FileRecord]:
        ...


@dataclass
class ReingestReason:
    """Reason why a file needs re-indexing."""

    is_new: bool = False
    content_changed: bool = False
    mtime_changed: bool = False
    forced: bool = False

    @property
    def needs_reingest(self) -> bool:
        return self.is_new or self.content_changed or self.mtime_changed or self.forced

    def __str__(self) -> str:
        reasons = []
        if self.is_new:
            reasons.append("new")
        if self.content_changed:
            reasons.append("content_changed")
        if self.mtime_changed:
            reasons.append("mtime_changed")
        if self.forced:
            reasons.append("forced")
        return ", ".join(reasons) if reasons else "none"


@dataclass(frozen=True)
class FileChange:
    """A scanned file together with its stored record (None for new files)."""

    scanned: ScannedFile
    record: Optional[FileRecord]
    reason: str = ""

    @property
    def path(self) -> str:
        return self.scanned.path

    @property
    def is_new(self) -> bool:
        return self.record is None


@dataclass
class DiffResult:
    """
    Result of diff computation.

    - to_add: files without a record
    - to_update: tracked files whose fingerprint differs (or forced)
    - to_skip: tracked files that are unchanged
    - to_delete: records whose file is gone from disk
    """

    to_add: List[FileChange] = field(default_factory=list)
    to_update: List[FileChange] = field(default_factory=list)
    to_skip: List[FileChange] = field(default_factory=list)
    to_delete: List[FileRecord] = field(default_factory=list)

    @property
    def to_ingest(self) -> List[FileChange]:
        """New and changed files, in scan order."""
        return sorted(self.to_add + self.to_update, key=lambda c: c.path)

    @property
    def total_files(self) -> int:
        """Files currently on disk that were classified."""
        return len(self.to_add) + len(self.to_update) + len(self.to_skip)

    @property
    def summary(self) -> str:
        return (
            f"add={len(self.to_add)}, "
            f"update={len(self.to_update)}, "
            f"skip={len(self.to_skip)}, "
            f"delete={len(self.to_delete)}"
        )


class Differ:
    """
    Computes diff between disk state and stored FileRecords.

    Usage:
        differ = Differ(store, ChangePolicy.HASH_OR_MTIME)
        result = differ.compute_diff(scanner.scan("/docs"))
    """

    def __init__(
        self,
        state_reader: StateReader,
        change_policy: ChangePolicy = ChangePolicy.HASH_OR_MTIME,
    ) -> None:
        self._state = state_reader
        self._policy = ChangePolicy(change_policy)

    def check(
        self,
        scanned: ScannedFile,
        record: Optional[FileRecord],
        force: bool = False,
    ) -> ReingestReason:
        """Classify one scanned file against its stored record."""
        if record is None:
            return ReingestReason(is_new=True)

        reason = ReingestReason(forced=force)

        if record.content_hash != scanned.content_hash:
            reason.content_changed = True

        if (
            self._policy == ChangePolicy.HASH_OR_MTIME
            and record.last_modified_timestamp != scanned.mtime_ms
        ):
            reason.mtime_changed = True

        return reason

    def compute_diff(self, scan: ScanResult, force: bool = False) -> DiffResult:
        """
        Compute the diff action plan for a scanned directory.

        Args:
            scan: Result of FileScanner.scan().
            force: If True, every tracked file is classified as changed.
                   Deletion detection still runs.
        """
        result = DiffResult()

        records = {r.file_path: r for r in self._state.list_under(scan.root)}

        # Files that failed to scan still exist and are never deleted
        seen_paths: Set[str] = {path for path, _ in scan.errors}

        for scanned in scan.files:
            seen_paths.add(scanned.path)
            record = records.get(scanned.path)
            reason = self.check(scanned, record, force)
            change = FileChange(scanned=scanned, record=record, reason=str(reason))

            if reason.is_new:
                result.to_add.append(change)
            elif reason.needs_reingest:
                logger.debug(f"{SYNC} Re-index {scanned.path}: {reason}")
                result.to_update.append(change)
            else:
                logger.debug(f"{SYNC} Skip unchanged {scanned.path}")
                result.to_skip.append(change)

        # Deletion detection
        for path in sorted(set(records) - seen_paths):
            result.to_delete.append(records[path])

        logger.info(f"{SYNC} Diff for {scan.root}: {result.summary}")
        return result


__all__ = [
    "StateReader",
    "ReingestReason",
    "FileChange",
    "DiffResult",
    "Differ",
]
