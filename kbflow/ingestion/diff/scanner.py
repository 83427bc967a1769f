# kbflow/ingestion/diff/scanner.py
"""
File scanner for incremental sync.

Walks directories and fingerprints every file it finds.

This module is responsible for the "scan" phase:
1. Walk files recursively (optionally skipping hidden entries)
2. Stat each file (size, mtime in milliseconds)
3. Compute the content hash of each file

Walked paths stay lexical under the resolved root: a symlinked file is
tracked under its own path inside the directory, never under its target.
Symlinked directories are not descended into.
"""

from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, List, Tuple

from kbflow.ingestion.hashing import compute_content_hash
from kbflow.logging.logger import get_logger
from kbflow.logging.tags import SYNC

logger = get_logger(__name__)


@dataclass(frozen=True)
class ScannedFile:
    """
    Result of scanning a single file.

    Contains all information needed for diff computation.
    """

    path: str  # Absolute path
    root: str  # Absolute path of scan root
    size_bytes: int  # File size
    mtime_ms: int  # Modification time, milliseconds since epoch
    content_hash: str  # SHA-256 content hash

    @property
    def relative_path(self) -> str:
        """Get path relative to root."""
        return str(Path(self.path).relative_to(self.root))


@dataclass
class ScanResult:
    """
    Result of scanning a directory.

    Files that could not be fingerprinted are listed in `errors`; they still
    exist on disk and must not be treated as deleted.
    """

    root: str
    files: List[ScannedFile] = field(default_factory=list)
    errors: List[Tuple[str, str]] = field(default_factory=list)  # (path, message)

    @property
    def total_scanned(self) -> int:
        return len(self.files)

    @property
    def total_errors(self) -> int:
        return len(self.errors)

    @property
    def total_bytes(self) -> int:
        return sum(f.size_bytes for f in self.files)


class FileScanner:
    """
    Scans directories for files to sync.

    Usage:
        scanner = FileScanner()
        result = scanner.scan("/path/to/documents")

        for file in result.files:
            print(f"{file.path}: {file.content_hash}")
    """

    def __init__(self, skip_hidden: bool = True) -> None:
        """
        Args:
            skip_hidden: Ignore files and directories whose name starts with a dot.
        """
        self._skip_hidden = skip_hidden

    def scan(self, root: str | Path) -> ScanResult:
        """
        Scan a directory recursively.

        Raises:
            FileNotFoundError: If root doesn't exist
            NotADirectoryError: If root is not a directory
        """
        root_path = Path(root).resolve()

        if not root_path.exists():
            raise FileNotFoundError(f"Directory not found: {root}")
        if not root_path.is_dir():
            raise NotADirectoryError(f"Not a directory: {root}")

        result = ScanResult(root=str(root_path))

        for path in self._walk(root_path):
            try:
                result.files.append(self.scan_file(path, root_path))
            except OSError as e:
                logger.warning(f"{SYNC} Failed to scan {path}: {e}")
                result.errors.append((str(path), str(e)))

        logger.info(
            f"{SYNC} Scanned {result.root}: {result.total_scanned} files, "
            f"{result.total_errors} errors"
        )
        return result

    async def scan_async(self, root: str | Path) -> ScanResult:
        """Scan in a worker thread so the event loop keeps running."""
        return await asyncio.to_thread(self.scan, root)

    def scan_file(self, path: str | Path, root: str | Path | None = None) -> ScannedFile:
        """
        Fingerprint one file.

        Raises OSError (FileNotFoundError, IsADirectoryError, ...) on failure.
        """
        p = Path(os.path.abspath(path))
        content_hash = compute_content_hash(p)
        stat = p.stat()

        return ScannedFile(
            path=str(p),
            root=str(Path(root).resolve()) if root is not None else str(p.parent),
            size_bytes=stat.st_size,
            mtime_ms=stat.st_mtime_ns // 1_000_000,
            content_hash=content_hash,
        )

    def _walk(self, root: Path) -> Iterator[Path]:
        for path in sorted(root.rglob("*")):
            if not path.is_file():
                continue

            if self._skip_hidden and any(
                part.startswith(".") for part in path.relative_to(root).parts
            ):
                continue

            yield path


__all__ = ["ScannedFile", "ScanResult", "FileScanner"]
