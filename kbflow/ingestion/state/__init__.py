# kbflow/ingestion/state/__init__.py
"""
Per-knowledge-base file fingerprint tracking.

Key exports:
- FileRecord: fingerprint + backend handle of one indexed file
- MetadataStore: SQLite-backed CRUD over FileRecord
"""

from kbflow.ingestion.state.schema import FileRecord
from kbflow.ingestion.state.store import MetadataStore, directory_prefix

__all__ = ["FileRecord", "MetadataStore", "directory_prefix"]
