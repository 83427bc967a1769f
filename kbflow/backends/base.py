# kbflow/backends/base.py
"""
Protocols and value types for the external embedding backend.

The backend owns chunking, embedding and vector storage. kbflow hands it a
loader spec describing one source and gets back the handle (unique_id) of
the indexed artifact, which is what the metadata store remembers.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import (
    Any,
    Callable,
    ClassVar,
    Dict,
    List,
    Optional,
    Protocol,
    Union,
    runtime_checkable,
)

from kbflow.knowledge.schema import KnowledgeBaseParams


@dataclass(frozen=True)
class FileLoaderSpec:
    """A local file to index."""

    kind: ClassVar[str] = "file"

    path: str
    chunk_size: Optional[int] = None
    chunk_overlap: Optional[int] = None


@dataclass(frozen=True)
class WebLoaderSpec:
    """A single web page to fetch and index."""

    kind: ClassVar[str] = "url"

    url: str
    chunk_size: Optional[int] = None
    chunk_overlap: Optional[int] = None


@dataclass(frozen=True)
class SitemapLoaderSpec:
    """A sitemap whose pages are fetched and indexed."""

    kind: ClassVar[str] = "sitemap"

    url: str
    chunk_size: Optional[int] = None
    chunk_overlap: Optional[int] = None


@dataclass(frozen=True)
class TextLoaderSpec:
    """Free text (a note) to index."""

    kind: ClassVar[str] = "text"

    text: str
    chunk_size: Optional[int] = None
    chunk_overlap: Optional[int] = None


LoaderSpec = Union[FileLoaderSpec, WebLoaderSpec, SitemapLoaderSpec, TextLoaderSpec]


def spec_payload(spec: LoaderSpec) -> Dict[str, Any]:
    """Serialize a loader spec to a JSON-ready dict tagged with its kind."""
    payload = {k: v for k, v in asdict(spec).items() if v is not None}
    payload["kind"] = spec.kind
    return payload


@dataclass(frozen=True)
class LoaderResult:
    """What the backend reports after indexing one loader spec."""

    entries_added: int
    unique_id: str
    loader_type: str


@dataclass
class SearchResult:
    """One ranked search hit."""

    content: str
    score: float
    source: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class EmbeddingBackend(Protocol):
    """Protocol for the embedding/vector-store backend of one knowledge base."""

    async def add_loader(self, spec: LoaderSpec, force_reload: bool = False) -> LoaderResult:
        """Index a source and return the handle of the indexed artifact."""
        ...

    async def delete_loader(self, unique_id: str) -> None:
        """Delete an indexed artifact by its handle."""
        ...

    async def reset(self) -> None:
        """Clear all indexed content."""
        ...

    async def search(self, query: str) -> List[SearchResult]:
        """Return ranked results for a query."""
        ...


@runtime_checkable
class Reranker(Protocol):
    """Protocol for reranking search results."""

    async def rerank(self, query: str, results: List[SearchResult]) -> List[SearchResult]:
        ...


BackendFactory = Callable[[KnowledgeBaseParams], EmbeddingBackend]


__all__ = [
    "FileLoaderSpec",
    "WebLoaderSpec",
    "SitemapLoaderSpec",
    "TextLoaderSpec",
    "LoaderSpec",
    "spec_payload",
    "LoaderResult",
    "SearchResult",
    "EmbeddingBackend",
    "Reranker",
    "BackendFactory",
]
