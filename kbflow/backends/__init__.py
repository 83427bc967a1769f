# kbflow/backends/__init__.py
"""
Embedding backend boundary.

kbflow never embeds or stores vectors itself. It decides what to submit to
an EmbeddingBackend and when; the backend does the indexing.
"""

from kbflow.backends.base import (
    BackendFactory,
    EmbeddingBackend,
    FileLoaderSpec,
    LoaderResult,
    LoaderSpec,
    Reranker,
    SearchResult,
    SitemapLoaderSpec,
    TextLoaderSpec,
    WebLoaderSpec,
)
from kbflow.backends.http import HttpEmbeddingBackend, HttpReranker, http_backend_factory

__all__ = [
    "BackendFactory",
    "EmbeddingBackend",
    "Reranker",
    "LoaderSpec",
    "FileLoaderSpec",
    "WebLoaderSpec",
    "SitemapLoaderSpec",
    "TextLoaderSpec",
    "LoaderResult",
    "SearchResult",
    "HttpEmbeddingBackend",
    "HttpReranker",
    "http_backend_factory",
]
