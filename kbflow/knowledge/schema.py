# kbflow/knowledge/schema.py
"""
Models for knowledge bases, the items added to them, and loader results.

- KnowledgeBaseParams: identity, embedding config and chunking of one base
- KnowledgeItem: one source submitted by a caller (file, directory, url, ...)
- LoaderReturn: the aggregate result delivered to the caller of add()
"""

from __future__ import annotations

import uuid
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from kbflow.core.paths import check_base_id


class ItemType(str, Enum):
    """Known knowledge item types."""

    FILE = "file"
    DIRECTORY = "directory"
    URL = "url"
    SITEMAP = "sitemap"
    NOTE = "note"


class EmbeddingConfig(BaseModel):
    """Embedding configuration of a knowledge base."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    provider: str = Field(..., description="Embedding provider (e.g., 'openai')")
    model: str = Field(..., description="Model name (e.g., 'text-embedding-3-small')")
    dimension: Optional[int] = Field(default=None, description="Vector dimension")
    id: str = Field(..., description="Composite ID: provider:model")

    @classmethod
    def create(
        cls,
        provider: str,
        model: str,
        dimension: Optional[int] = None,
    ) -> "EmbeddingConfig":
        """Create an EmbeddingConfig with auto-generated ID."""
        return cls(
            provider=provider,
            model=model,
            dimension=dimension,
            id=f"{provider}:{model}",
        )


class KnowledgeBaseParams(BaseModel):
    """
    Parameters of one knowledge base.

    A base is created on first use and deleted by removing its storage
    directory. `storage_dir` overrides the default location under the
    configured storage root. The id names the base's directory, so it must
    be a single path segment.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str = Field(..., min_length=1, description="Knowledge base identifier")
    embedding: EmbeddingConfig = Field(..., description="Embedding configuration")
    chunk_size: Optional[int] = Field(default=None, gt=0)
    chunk_overlap: Optional[int] = Field(default=None, ge=0)
    storage_dir: Optional[Path] = Field(default=None)

    @field_validator("id")
    @classmethod
    def single_segment_id(cls, v: str) -> str:
        return check_base_id(v)


class KnowledgeItem(BaseModel):
    """
    One source submitted to a knowledge base.

    `type` is kept as a plain string so that items of types this process
    does not handle can still be represented; they resolve to no task.
    `content` is a file path, directory path, URL, or note text.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    type: str = Field(..., description="One of ItemType values")
    content: str = Field(..., description="Path, URL, or text payload")
    base_id: Optional[str] = Field(default=None, description="Owning knowledge base")

    @property
    def item_type(self) -> Optional[ItemType]:
        """Known type of this item, or None if unrecognized."""
        try:
            return ItemType(self.type)
        except ValueError:
            return None


class LoaderReturn(BaseModel):
    """
    Result of indexing one knowledge item.

    A failed item returns ERROR_LOADER_RETURN: empty unique_id and empty
    loader_type.
    """

    model_config = ConfigDict(frozen=True)

    entries_added: int = 0
    unique_id: str = ""
    unique_ids: Tuple[str, ...] = ()
    loader_type: str = ""

    @property
    def is_error(self) -> bool:
        return not self.unique_id and not self.loader_type


ERROR_LOADER_RETURN = LoaderReturn()


__all__ = [
    "ItemType",
    "EmbeddingConfig",
    "KnowledgeBaseParams",
    "KnowledgeItem",
    "LoaderReturn",
    "ERROR_LOADER_RETURN",
]
