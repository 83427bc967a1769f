# kbflow/ingestion/state/schema.py
"""
State schema for incremental sync.

A FileRecord tracks everything needed to decide whether a file must be
re-indexed, and the backend handle needed to delete its old artifact:
- content_hash: detects content changes
- last_modified_timestamp: auxiliary change signal (see ChangePolicy)
- external_unique_id: handle of the indexed artifact in the backend
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class FileRecord(BaseModel):
    """Fingerprint of one indexed file in one knowledge base."""

    model_config = ConfigDict(extra="forbid")

    knowledge_base_id: str = Field(..., description="Owning knowledge base")
    file_path: str = Field(..., description="Absolute file path (unique per base)")
    content_hash: str = Field(..., description="SHA-256 hash of file content")
    size: int = Field(..., ge=0, description="File size in bytes")
    last_modified_timestamp: int = Field(..., description="mtime in milliseconds since epoch")
    external_unique_id: str = Field(..., description="Backend handle of the indexed artifact")
    loader_type: str = Field(..., description="Loader type reported by the backend")
    created_at: Optional[str] = Field(default=None, description="Set by the database")
    updated_at: Optional[str] = Field(default=None, description="Refreshed on every update")


__all__ = ["FileRecord"]
