# tests/test_http_backend.py
"""
Tests for kbflow.backends.http using httpx.MockTransport.

No network: every request is answered by an in-process handler that also
records what was sent.
"""

import json
from typing import List

import httpx
import pytest

from kbflow.backends.base import FileLoaderSpec, SearchResult, WebLoaderSpec, spec_payload
from kbflow.backends.http import (
    HttpEmbeddingBackend,
    HttpReranker,
    http_backend_factory,
    http_reranker,
)
from kbflow.config.schema import BackendConfig, RerankerConfig
from kbflow.core.exceptions import BackendError

BASE_URL = "http://backend.test"


class RecordingHandler:
    """Answers every request with a fixed response and records the requests."""

    def __init__(self, status_code: int = 200, body=None, content: bytes = b"") -> None:
        self.status_code = status_code
        self.body = body
        self.content = content
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.body is not None:
            return httpx.Response(self.status_code, json=self.body)
        return httpx.Response(self.status_code, content=self.content)

    @property
    def last_json(self):
        return json.loads(self.requests[-1].content)


def make_backend(base, handler, **kwargs) -> HttpEmbeddingBackend:
    return HttpEmbeddingBackend(
        base, base_url=BASE_URL, transport=httpx.MockTransport(handler), **kwargs
    )


class TestSpecPayload:
    def test_drops_none_and_tags_kind(self):
        payload = spec_payload(FileLoaderSpec(path="/docs/a.md", chunk_size=500))

        assert payload == {"path": "/docs/a.md", "chunk_size": 500, "kind": "file"}


class TestAddLoader:
    @pytest.mark.asyncio
    async def test_posts_spec_and_parses_result(self, base):
        handler = RecordingHandler(
            body={"entries_added": 4, "unique_id": "abc", "loader_type": "LocalPathLoader"}
        )
        backend = make_backend(base, handler)

        result = await backend.add_loader(FileLoaderSpec(path="/docs/a.md"), force_reload=True)

        assert result.entries_added == 4
        assert result.unique_id == "abc"
        assert result.loader_type == "LocalPathLoader"

        request = handler.requests[0]
        assert request.method == "POST"
        assert request.url.path == "/bases/test-base/loaders"
        body = handler.last_json
        assert body["spec"] == {"path": "/docs/a.md", "kind": "file"}
        assert body["force_reload"] is True
        assert body["embedding"]["id"] == "openai:text-embedding-3-small"
        await backend.aclose()

    @pytest.mark.asyncio
    async def test_malformed_response(self, base):
        backend = make_backend(base, RecordingHandler(body={"unique_id": "abc"}))

        with pytest.raises(BackendError, match="Malformed"):
            await backend.add_loader(WebLoaderSpec(url="https://example.com"))
        await backend.aclose()

    @pytest.mark.asyncio
    async def test_invalid_json(self, base):
        backend = make_backend(base, RecordingHandler(content=b"<html>oops</html>"))

        with pytest.raises(BackendError, match="invalid JSON"):
            await backend.add_loader(WebLoaderSpec(url="https://example.com"))
        await backend.aclose()


class TestErrors:
    @pytest.mark.asyncio
    async def test_http_error_maps_to_backend_error(self, base):
        backend = make_backend(base, RecordingHandler(500, body={"detail": "index offline"}))

        with pytest.raises(BackendError) as exc_info:
            await backend.delete_loader("abc")

        error = exc_info.value
        assert error.status_code == 500
        assert error.endpoint == "/bases/test-base/loaders/abc"
        assert "index offline" in str(error)
        await backend.aclose()

    @pytest.mark.asyncio
    async def test_message_field_preferred(self, base):
        backend = make_backend(
            base, RecordingHandler(404, body={"message": "no such loader", "detail": "x"})
        )

        with pytest.raises(BackendError, match="no such loader"):
            await backend.delete_loader("abc")
        await backend.aclose()

    @pytest.mark.asyncio
    async def test_connect_error(self, base):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        backend = make_backend(base, refuse)

        with pytest.raises(BackendError, match="Failed to connect"):
            await backend.reset()
        await backend.aclose()

    @pytest.mark.asyncio
    async def test_timeout(self, base):
        def slow(request):
            raise httpx.ReadTimeout("too slow", request=request)

        backend = make_backend(base, slow)

        with pytest.raises(BackendError, match="timed out"):
            await backend.search("q")
        await backend.aclose()


class TestOtherCalls:
    @pytest.mark.asyncio
    async def test_delete_and_reset(self, base):
        handler = RecordingHandler(204)
        backend = make_backend(base, handler)

        await backend.delete_loader("abc")
        await backend.reset()

        assert [(r.method, r.url.path) for r in handler.requests] == [
            ("DELETE", "/bases/test-base/loaders/abc"),
            ("POST", "/bases/test-base/reset"),
        ]
        await backend.aclose()

    @pytest.mark.asyncio
    async def test_search(self, base):
        handler = RecordingHandler(
            body={
                "results": [
                    {"content": "hit", "score": 0.9, "source": "a.md", "metadata": {"page": 1}},
                    {"content": "other", "score": "0.5"},
                ]
            }
        )
        backend = make_backend(base, handler)

        results = await backend.search("what")

        assert handler.last_json == {"query": "what"}
        assert results[0] == SearchResult(content="hit", score=0.9, source="a.md", metadata={"page": 1})
        assert results[1].score == 0.5
        assert results[1].source == ""
        await backend.aclose()

    @pytest.mark.asyncio
    async def test_api_key_sent(self, base):
        handler = RecordingHandler(204)
        backend = make_backend(base, handler, api_key="secret")

        await backend.reset()

        assert handler.requests[0].headers["Authorization"] == "Bearer secret"
        await backend.aclose()


class TestReranker:
    @pytest.mark.asyncio
    async def test_rerank(self):
        handler = RecordingHandler(body=[{"content": "b", "score": 0.8}, {"content": "a", "score": 0.1}])
        reranker = HttpReranker(BASE_URL, transport=httpx.MockTransport(handler))

        results = await reranker.rerank(
            "q", [SearchResult(content="a", score=0.5), SearchResult(content="b", score=0.4)]
        )

        assert [r.content for r in results] == ["b", "a"]
        assert handler.requests[0].url.path == "/rerank"
        assert [r["content"] for r in handler.last_json["results"]] == ["a", "b"]
        await reranker.aclose()

    @pytest.mark.asyncio
    async def test_rerank_error(self):
        reranker = HttpReranker(
            BASE_URL, transport=httpx.MockTransport(RecordingHandler(503, body={}))
        )

        with pytest.raises(BackendError) as exc_info:
            await reranker.rerank("q", [SearchResult(content="a", score=0.5)])

        assert exc_info.value.status_code == 503
        await reranker.aclose()


class TestFactory:
    @pytest.mark.asyncio
    async def test_builds_backend_per_base(self, base):
        handler = RecordingHandler(204)
        factory = http_backend_factory(
            BackendConfig(base_url=BASE_URL), transport=httpx.MockTransport(handler)
        )

        backend = factory(base)
        await backend.reset()

        assert isinstance(backend, HttpEmbeddingBackend)
        assert str(handler.requests[0].url) == f"{BASE_URL}/bases/test-base/reset"
        await backend.aclose()


class TestRerankerFactory:
    def test_none_without_url(self):
        assert http_reranker(RerankerConfig()) is None

    @pytest.mark.asyncio
    async def test_builds_from_config(self):
        handler = RecordingHandler(body=[])
        reranker = http_reranker(
            RerankerConfig(base_url=BASE_URL, api_key="secret"),
            transport=httpx.MockTransport(handler),
        )

        await reranker.rerank("q", [SearchResult(content="a", score=0.5)])

        assert isinstance(reranker, HttpReranker)
        assert str(handler.requests[0].url) == f"{BASE_URL}/rerank"
        assert handler.requests[0].headers["Authorization"] == "Bearer secret"
        await reranker.aclose()
