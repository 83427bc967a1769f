# kbflow/core/paths.py
"""
Central path management for kbflow.

ALL components that need file paths should use this module.

The workspace is the .kbflow directory in the current working directory,
or an override set for testing.

Usage:
    from kbflow.core.paths import KbPaths

    config_path = KbPaths.config()
    base_dir = KbPaths.knowledge_base("my-base")

    # Override workspace for testing
    KbPaths.set_workspace("/tmp/test_kbflow")
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from kbflow.core.exceptions import InvalidBaseIdError

METADATA_DB_NAME = "metadata.db"


def check_base_id(base_id: str) -> str:
    """
    Return base_id if it names exactly one directory under the storage root.

    Raises:
        InvalidBaseIdError: For empty ids, "." and "..", and ids containing a
            path separator or NUL
    """
    if base_id in ("", ".", "..") or any(c in base_id for c in ("/", "\\", "\0")):
        raise InvalidBaseIdError(
            f"Invalid knowledge base id {base_id!r}: must be a single directory name"
        )
    return base_id


def is_within(path: Path, root: Path) -> bool:
    """True if path resolves to a location strictly below root."""
    path, root = path.resolve(), root.resolve()
    return path != root and root in path.parents


class KbPaths:
    """
    Central path management.

    All methods are classmethods for static access.
    """

    _workspace_override: Optional[Path] = None

    @classmethod
    def set_workspace(cls, path: Optional[str | Path]) -> None:
        """
        Override the workspace root.

        Pass None to reset to default (CWD).
        """
        cls._workspace_override = None if path is None else Path(path)

    @classmethod
    def reset(cls) -> None:
        """Reset to default workspace (CWD). Useful in tests."""
        cls._workspace_override = None

    @classmethod
    def workspace(cls) -> Path:
        """
        The .kbflow workspace directory.

        Default: {CWD}/.kbflow/
        """
        if cls._workspace_override is not None:
            return cls._workspace_override
        return Path.cwd() / ".kbflow"

    @classmethod
    def config(cls) -> Path:
        """User config file: {workspace}/config.yaml"""
        return cls.workspace() / "config.yaml"

    @classmethod
    def storage_root(cls) -> Path:
        """Root of all knowledge base storage: {workspace}/knowledge_bases/"""
        return cls.workspace() / "knowledge_bases"

    @classmethod
    def knowledge_base(cls, base_id: str, root: Optional[Path] = None) -> Path:
        """
        Storage directory of one knowledge base.

        Raises:
            InvalidBaseIdError: If base_id is not a single directory name
        """
        check_base_id(base_id)
        return (root or cls.storage_root()) / base_id


__all__ = ["METADATA_DB_NAME", "check_base_id", "is_within", "KbPaths"]
