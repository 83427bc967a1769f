# kbflow/ingestion/hashing.py
"""
Content hashing for incremental sync.

A FileRecord's content_hash is what the differ compares to decide whether a
tracked file must be re-indexed. Under the hash_only change policy it is the
only signal; under hash_or_mtime a matching hash still skips the file unless
its mtime moved.
"""

from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Union

CHUNK_SIZE = 65536
HASH_PREFIX = "sha256:"


def compute_content_hash(path: Union[str, Path]) -> str:
    """
    Fingerprint the bytes of a file as "sha256:<hex>".

    Symlinks are followed, so a link and its target share a hash while still
    being tracked under their own paths.

    Raises:
        FileNotFoundError: If the file is gone (e.g. deleted mid-scan)
        IsADirectoryError: If the path is a directory
        PermissionError: If the file can't be read
    """
    p = Path(path)
    if p.is_dir():
        raise IsADirectoryError(f"Path is a directory: {path}")

    hasher = hashlib.sha256()
    try:
        with p.open("rb") as f:
            for block in iter(lambda: f.read(CHUNK_SIZE), b""):
                hasher.update(block)
    except FileNotFoundError as e:
        raise FileNotFoundError(f"File not found: {path}") from e

    return HASH_PREFIX + hasher.hexdigest()


__all__ = ["CHUNK_SIZE", "HASH_PREFIX", "compute_content_hash"]
