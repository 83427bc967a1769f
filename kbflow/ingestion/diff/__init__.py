# kbflow/ingestion/diff/__init__.py
"""
Incremental (diff) sync for directories and files.

Key components:
- Scanner: Walks directories and fingerprints files (hash, size, mtime)
- Differ: Classifies files as new / changed / unchanged / deleted against
  the stored FileRecords

Usage:
    from kbflow.ingestion.diff import Differ, FileScanner

    scan = FileScanner().scan("./documents")
    diff = Differ(metadata_store).compute_diff(scan)
    print(diff.summary)
"""

from kbflow.ingestion.diff.differ import (
    Differ,
    DiffResult,
    FileChange,
    ReingestReason,
    StateReader,
)
from kbflow.ingestion.diff.scanner import FileScanner, ScannedFile, ScanResult

__all__ = [
    # Scanner
    "ScannedFile",
    "ScanResult",
    "FileScanner",
    # Differ
    "StateReader",
    "ReingestReason",
    "FileChange",
    "DiffResult",
    "Differ",
]
