# kbflow/knowledge/__init__.py
"""Knowledge base and knowledge item models."""

from kbflow.knowledge.schema import (
    ERROR_LOADER_RETURN,
    EmbeddingConfig,
    ItemType,
    KnowledgeBaseParams,
    KnowledgeItem,
    LoaderReturn,
)

__all__ = [
    "ERROR_LOADER_RETURN",
    "EmbeddingConfig",
    "ItemType",
    "KnowledgeBaseParams",
    "KnowledgeItem",
    "LoaderReturn",
]
