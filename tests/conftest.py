# tests/conftest.py
"""
Shared fixtures for kbflow tests.

Nothing here talks to a real embedding service: FakeBackend records every
call and hands out sequential unique ids.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Callable, Dict, List, Optional, Set, Tuple

import pytest

from kbflow.backends.base import LoaderResult, LoaderSpec, SearchResult
from kbflow.config.schema import KbflowConfig
from kbflow.core.exceptions import BackendError
from kbflow.core.paths import KbPaths
from kbflow.ingestion.pipeline import IngestionPipeline
from kbflow.ingestion.state.store import MetadataStore
from kbflow.knowledge.schema import EmbeddingConfig, KnowledgeBaseParams
from kbflow.service import KnowledgeService

LOADER_TYPES = {
    "file": "LocalPathLoader",
    "url": "WebLoader",
    "sitemap": "SitemapLoader",
    "text": "TextLoader",
}


class FakeBackend:
    """In-memory embedding backend recording every call."""

    def __init__(self, entries_per_add: int = 3) -> None:
        self.entries_per_add = entries_per_add
        self.added: List[Tuple[LoaderSpec, bool]] = []
        self.deleted: List[str] = []
        self.resets = 0
        self.queries: List[str] = []
        self.live: Dict[str, LoaderSpec] = {}
        self.fail_add: Set[str] = set()  # paths / urls / texts whose add fails
        self.fail_delete: Set[str] = set()  # unique ids whose delete fails
        self.closed = False
        self._counter = 0

    @property
    def calls(self) -> int:
        return len(self.added) + len(self.deleted)

    @property
    def added_paths(self) -> List[str]:
        return [getattr(spec, "path", "") for spec, _ in self.added]

    def reset_calls(self) -> None:
        self.added.clear()
        self.deleted.clear()

    async def add_loader(self, spec: LoaderSpec, force_reload: bool = False) -> LoaderResult:
        self.added.append((spec, force_reload))
        source = getattr(spec, "path", None) or getattr(spec, "url", None) or spec.text
        if source in self.fail_add:
            raise BackendError(f"cannot index {source}", status_code=500)
        self._counter += 1
        unique_id = f"{spec.kind}-{self._counter}"
        self.live[unique_id] = spec
        return LoaderResult(
            entries_added=self.entries_per_add,
            unique_id=unique_id,
            loader_type=LOADER_TYPES[spec.kind],
        )

    async def delete_loader(self, unique_id: str) -> None:
        self.deleted.append(unique_id)
        if unique_id in self.fail_delete:
            raise BackendError(f"cannot delete {unique_id}", status_code=500)
        self.live.pop(unique_id, None)

    async def reset(self) -> None:
        self.resets += 1
        self.live.clear()

    async def search(self, query: str) -> List[SearchResult]:
        self.queries.append(query)
        return [
            SearchResult(content=f"{query} result {i}", score=1.0 - i / 10, source=f"doc-{i}")
            for i in range(3)
        ]

    async def aclose(self) -> None:
        self.closed = True


class FakeReranker:
    """Reverses the order of results."""

    def __init__(self) -> None:
        self.calls = 0

    async def rerank(self, query: str, results: List[SearchResult]) -> List[SearchResult]:
        self.calls += 1
        return list(reversed(results))


@pytest.fixture(autouse=True)
def isolated_workspace(tmp_path):
    """Keep every test out of the real .kbflow workspace."""
    KbPaths.set_workspace(tmp_path / ".kbflow")
    yield
    KbPaths.reset()


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def reranker() -> FakeReranker:
    return FakeReranker()


@pytest.fixture
def base(tmp_path) -> KnowledgeBaseParams:
    return KnowledgeBaseParams(
        id="test-base",
        embedding=EmbeddingConfig.create("openai", "text-embedding-3-small"),
        chunk_size=500,
        chunk_overlap=50,
        storage_dir=tmp_path / "storage" / "test-base",
    )


@pytest.fixture
def store(tmp_path):
    s = MetadataStore("test-base", tmp_path / "storage" / "test-base" / "metadata.db")
    yield s
    s.close()


@pytest.fixture
def pipeline(base, backend, store) -> IngestionPipeline:
    return IngestionPipeline(base, backend, store)


@pytest.fixture
def docs(tmp_path) -> Path:
    d = tmp_path / "docs"
    d.mkdir()
    return d.resolve()


@pytest.fixture
def write_file() -> Callable[..., Path]:
    """Write a file, optionally pinning its mtime (milliseconds since epoch)."""

    def _write(path: Path, content: str | bytes, mtime_ms: Optional[int] = None) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")
        if mtime_ms is not None:
            ns = mtime_ms * 1_000_000
            os.utime(path, ns=(ns, ns))
        return path

    return _write


@pytest.fixture
def make_service(tmp_path, backend) -> Callable[..., KnowledgeService]:
    """Build a KnowledgeService backed by the shared FakeBackend."""
    services: List[KnowledgeService] = []

    def _make(config: Optional[KbflowConfig] = None, **kwargs) -> KnowledgeService:
        service = KnowledgeService(
            config or KbflowConfig(),
            backend_factory=lambda params: backend,
            storage_root=tmp_path / "storage",
            **kwargs,
        )
        services.append(service)
        return service

    yield _make

    for service in services:
        for s in service._stores.values():
            s.close()
