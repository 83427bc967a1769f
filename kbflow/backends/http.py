# kbflow/backends/http.py
"""
HTTP implementation of the embedding backend and reranker.

Talks to a remote indexing service that owns embedding and vector storage:

    POST   /bases/{base_id}/loaders              index a loader spec
    DELETE /bases/{base_id}/loaders/{unique_id}  delete an indexed artifact
    POST   /bases/{base_id}/reset                clear the base
    POST   /bases/{base_id}/search               ranked search
    POST   /rerank                               rerank results

Usage:
    backend = HttpEmbeddingBackend(params, base_url="http://127.0.0.1:8700")
    result = await backend.add_loader(FileLoaderSpec(path="/docs/a.md"))
    await backend.aclose()

All httpx failures surface as BackendError.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx

from kbflow.backends.base import (
    BackendFactory,
    LoaderResult,
    LoaderSpec,
    SearchResult,
    spec_payload,
)
from kbflow.config.schema import BackendConfig, RerankerConfig
from kbflow.core.exceptions import BackendError
from kbflow.knowledge.schema import KnowledgeBaseParams
from kbflow.logging.logger import get_logger
from kbflow.logging.tags import BACKEND

logger = get_logger(__name__)

DEFAULT_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json",
}


def create_async_client(
    base_url: str,
    api_key: Optional[str] = None,
    timeout: float = 60.0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """Create a configured async HTTP client for the backend service."""
    headers = dict(DEFAULT_HEADERS)
    if api_key:
        headers["Authorization"] = f"Bearer {api_key}"

    logger.debug(f"{BACKEND} Created HTTP client for {base_url} (timeout={timeout}s)")
    return httpx.AsyncClient(
        base_url=base_url,
        headers=headers,
        timeout=timeout,
        transport=transport,
    )


def handle_api_error(exc: Exception, endpoint: str) -> BackendError:
    """Convert an httpx exception to a BackendError."""
    if isinstance(exc, httpx.HTTPStatusError):
        response = exc.response
        details = None
        try:
            error_data = response.json()
            if isinstance(error_data, dict):
                details = error_data.get("message") or error_data.get("detail")
        except ValueError:
            details = response.text[:200] if response.text else None

        message = "Backend request failed"
        if details:
            message = f"{message}: {details}"
        return BackendError(message, status_code=response.status_code, endpoint=endpoint)

    if isinstance(exc, httpx.TimeoutException):
        return BackendError(f"Backend request timed out: {exc}", endpoint=endpoint)

    if isinstance(exc, httpx.ConnectError):
        return BackendError(f"Failed to connect to backend: {exc}", endpoint=endpoint)

    return BackendError(f"Backend request failed: {exc}", endpoint=endpoint)


def _parse_results(data: Any) -> List[SearchResult]:
    results = data.get("results", []) if isinstance(data, dict) else data
    return [
        SearchResult(
            content=r.get("content", ""),
            score=float(r.get("score", 0.0)),
            source=r.get("source", ""),
            metadata=r.get("metadata") or {},
        )
        for r in results
    ]


def _result_payload(result: SearchResult) -> Dict[str, Any]:
    return {
        "content": result.content,
        "score": result.score,
        "source": result.source,
        "metadata": result.metadata,
    }


class HttpEmbeddingBackend:
    """
    Embedding backend for one knowledge base, served over HTTP.

    One instance per knowledge base; the client is reused for all calls.
    """

    def __init__(
        self,
        params: KnowledgeBaseParams,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._params = params
        self._client = create_async_client(base_url, api_key, timeout, transport)
        self._prefix = f"/bases/{params.id}"

    async def _request(
        self,
        method: str,
        endpoint: str,
        json: Optional[Dict[str, Any]] = None,
    ) -> Any:
        try:
            response = await self._client.request(method, endpoint, json=json)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise handle_api_error(exc, endpoint) from exc

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise BackendError("Backend returned invalid JSON", endpoint=endpoint) from exc

    async def add_loader(self, spec: LoaderSpec, force_reload: bool = False) -> LoaderResult:
        endpoint = f"{self._prefix}/loaders"
        payload = {
            "spec": spec_payload(spec),
            "force_reload": force_reload,
            "embedding": self._params.embedding.model_dump(),
        }
        data = await self._request("POST", endpoint, json=payload)
        try:
            return LoaderResult(
                entries_added=int(data["entries_added"]),
                unique_id=str(data["unique_id"]),
                loader_type=str(data["loader_type"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise BackendError(f"Malformed loader response: {data!r}", endpoint=endpoint) from exc

    async def delete_loader(self, unique_id: str) -> None:
        await self._request("DELETE", f"{self._prefix}/loaders/{unique_id}")

    async def reset(self) -> None:
        await self._request("POST", f"{self._prefix}/reset")

    async def search(self, query: str) -> List[SearchResult]:
        data = await self._request("POST", f"{self._prefix}/search", json={"query": query})
        return _parse_results(data or {})

    async def aclose(self) -> None:
        await self._client.aclose()


class HttpReranker:
    """Reranker served over HTTP."""

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._client = create_async_client(base_url, api_key, timeout, transport)

    async def rerank(self, query: str, results: List[SearchResult]) -> List[SearchResult]:
        endpoint = "/rerank"
        payload = {"query": query, "results": [_result_payload(r) for r in results]}
        try:
            response = await self._client.post(endpoint, json=payload)
            response.raise_for_status()
            return _parse_results(response.json())
        except httpx.HTTPError as exc:
            raise handle_api_error(exc, endpoint) from exc
        except ValueError as exc:
            raise BackendError("Backend returned invalid JSON", endpoint=endpoint) from exc

    async def aclose(self) -> None:
        await self._client.aclose()


def http_backend_factory(
    config: BackendConfig,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> BackendFactory:
    """Build a factory creating one HttpEmbeddingBackend per knowledge base."""

    def factory(params: KnowledgeBaseParams) -> HttpEmbeddingBackend:
        return HttpEmbeddingBackend(
            params,
            base_url=config.base_url,
            api_key=config.api_key,
            timeout=config.timeout,
            transport=transport,
        )

    return factory


def http_reranker(
    config: RerankerConfig,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Optional[HttpReranker]:
    """Build the configured reranker, or None when no reranker URL is set."""
    if not config.enabled:
        return None
    return HttpReranker(
        config.base_url,
        api_key=config.api_key,
        timeout=config.timeout,
        transport=transport,
    )


__all__ = [
    "create_async_client",
    "handle_api_error",
    "HttpEmbeddingBackend",
    "HttpReranker",
    "http_backend_factory",
    "http_reranker",
]
