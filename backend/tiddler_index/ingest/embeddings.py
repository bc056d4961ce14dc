"""Embedding service client."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import httpx

from tiddler_index.core.logging import get_logger

logger = get_logger(__name__)

# nomic-embed-text expects different task prefixes for stored passages and queries.
DOCUMENT_PREFIX = "search_document: "
QUERY_PREFIX = "search_query: "


class EmbeddingError(RuntimeError):
    """Raised when the embedding service rejects or fails a request."""


@dataclass(slots=True)
class EmbeddingBatch:
    vectors: list[list[float]]
    model: str
    dim: int


class OllamaEmbeddingClient:
    """Async client for the Ollama ``/api/embed`` endpoint."""

    def __init__(
        self,
        base_url: str,
        model: str = "nomic-embed-text",
        timeout: float = 120.0,
        health_timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self.health_timeout = health_timeout
        self._client = httpx.AsyncClient(base_url=self.base_url, transport=transport)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def embed(self, texts: Sequence[str]) -> EmbeddingBatch:
        """Embed texts verbatim; callers apply the task prefix."""
        if not texts:
            return EmbeddingBatch(vectors=[], model=self.model, dim=0)
        logger.debug("Embedding %s text(s) with %s", len(texts), self.model)
        try:
            response = await self._client.post(
                "/api/embed",
                json={"model": self.model, "input": list(texts)},
                timeout=self.timeout,
            )
        except httpx.TimeoutException as exc:
            raise EmbeddingError(f"Embedding {len(texts)} text(s) timed out after {self.timeout:g}s") from exc
        except httpx.HTTPError as exc:
            raise EmbeddingError(f"Embedding request failed: {exc}") from exc

        if response.is_error:
            logger.error("Embedding request failed: %s - %s", response.status_code, response.text)
            raise EmbeddingError(f"Ollama API error ({response.status_code}): {response.text}")

        try:
            payload = response.json()
        except ValueError as exc:
            raise EmbeddingError(f"Malformed embedding response: {exc}") from exc
        vectors = payload.get("embeddings") if isinstance(payload, dict) else None
        if not isinstance(vectors, list) or len(vectors) != len(texts):
            raise EmbeddingError(
                f"Expected {len(texts)} embeddings, got {len(vectors) if isinstance(vectors, list) else 'none'}"
            )
        dim = len(vectors[0]) if vectors else 0
        return EmbeddingBatch(vectors=[[float(x) for x in vector] for vector in vectors], model=self.model, dim=dim)

    async def embed_documents(self, texts: Sequence[str]) -> list[list[float]]:
        batch = await self.embed([f"{DOCUMENT_PREFIX}{text}" for text in texts])
        return batch.vectors

    async def embed_query(self, text: str) -> list[float]:
        batch = await self.embed([f"{QUERY_PREFIX}{text}"])
        return batch.vectors[0]

    async def health_check(self) -> bool:
        try:
            response = await self._client.get("/", timeout=self.health_timeout)
        except httpx.HTTPError as exc:
            logger.error("Embedding service health check failed: %s", exc)
            return False
        if response.is_error:
            logger.warning("Embedding service unhealthy: HTTP %s", response.status_code)
            return False
        return True


__all__ = [
    "DOCUMENT_PREFIX",
    "QUERY_PREFIX",
    "EmbeddingBatch",
    "EmbeddingError",
    "OllamaEmbeddingClient",
]
