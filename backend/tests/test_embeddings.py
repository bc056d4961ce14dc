"""Tests for the embedding client."""

from __future__ import annotations

import json

import httpx
import pytest

from tiddler_index.ingest.embeddings import (
    DOCUMENT_PREFIX,
    QUERY_PREFIX,
    EmbeddingError,
    OllamaEmbeddingClient,
)


def _client(handler) -> OllamaEmbeddingClient:
    return OllamaEmbeddingClient(
        "http://ollama.test/",
        model="nomic-embed-text",
        transport=httpx.MockTransport(handler),
    )


def _echo_handler(seen: list[dict]):
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        seen.append(body)
        return httpx.Response(200, json={"embeddings": [[0.1, 0.2, 0.3] for _ in body["input"]]})

    return handler


@pytest.mark.asyncio
async def test_embed_documents_applies_document_prefix() -> None:
    seen: list[dict] = []
    client = _client(_echo_handler(seen))
    vectors = await client.embed_documents(["alpha", "beta"])
    await client.aclose()

    assert vectors == [[0.1, 0.2, 0.3], [0.1, 0.2, 0.3]]
    assert seen[0]["model"] == "nomic-embed-text"
    assert seen[0]["input"] == [f"{DOCUMENT_PREFIX}alpha", f"{DOCUMENT_PREFIX}beta"]


@pytest.mark.asyncio
async def test_embed_query_applies_query_prefix() -> None:
    seen: list[dict] = []
    client = _client(_echo_handler(seen))
    vector = await client.embed_query("what is a tiddler")
    await client.aclose()

    assert vector == [0.1, 0.2, 0.3]
    assert seen[0]["input"] == [f"{QUERY_PREFIX}what is a tiddler"]
    assert DOCUMENT_PREFIX != QUERY_PREFIX


@pytest.mark.asyncio
async def test_embed_raises_on_error_status() -> None:
    client = _client(lambda request: httpx.Response(400, text="input length exceeds context length"))
    with pytest.raises(EmbeddingError, match="400"):
        await client.embed(["too long"])
    await client.aclose()


@pytest.mark.asyncio
async def test_embed_raises_on_count_mismatch() -> None:
    client = _client(lambda request: httpx.Response(200, json={"embeddings": [[1.0]]}))
    with pytest.raises(EmbeddingError, match="Expected 2 embeddings"):
        await client.embed(["a", "b"])
    await client.aclose()


@pytest.mark.asyncio
async def test_embed_wraps_timeouts() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    client = _client(handler)
    with pytest.raises(EmbeddingError, match="timed out"):
        await client.embed(["slow"])
    await client.aclose()


@pytest.mark.asyncio
async def test_embed_empty_input_makes_no_request() -> None:
    seen: list[dict] = []
    client = _client(_echo_handler(seen))
    batch = await client.embed([])
    await client.aclose()
    assert batch.vectors == []
    assert seen == []


@pytest.mark.asyncio
async def test_health_check() -> None:
    healthy = _client(lambda request: httpx.Response(200, text="Ollama is running"))
    unhealthy = _client(lambda request: httpx.Response(503))

    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    unreachable = _client(refuse)

    assert await healthy.health_check() is True
    assert await unhealthy.health_check() is False
    assert await unreachable.health_check() is False
    for client in (healthy, unhealthy, unreachable):
        await client.aclose()
