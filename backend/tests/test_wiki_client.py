"""Tests for the TiddlyWiki HTTP client."""

from __future__ import annotations

import json
from datetime import datetime, timezone

import httpx
import pytest

from tiddler_index.models.entities import Tiddler
from tiddler_index.wiki.client import (
    TiddlyWikiClient,
    WikiError,
    apply_update,
    generate_timestamp,
    new_tiddler,
)

STORE = {
    "Alpha": {"title": "Alpha", "text": "first", "tags": "demo", "modified": "20240101000000000", "revision": 3},
    "Beta": {"title": "Beta", "text": "second", "fields": {"custom": "yes"}},
    "Gamma": {"title": "Gamma", "text": "third"},
}


class Recorder:
    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/recipes/default/tiddlers.json":
            return httpx.Response(200, json=[{k: v for k, v in item.items() if k != "text"} for item in STORE.values()])
        if path.startswith("/recipes/default/tiddlers/"):
            title = path.rsplit("/", 1)[-1]
            if request.method == "PUT":
                return httpx.Response(204)
            if title in STORE:
                return httpx.Response(200, json=STORE[title])
            return httpx.Response(404)
        if path.startswith("/bags/default/tiddlers/") and request.method == "DELETE":
            return httpx.Response(204)
        return httpx.Response(500)


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def client(recorder: Recorder) -> TiddlyWikiClient:
    return TiddlyWikiClient("http://wiki.test", transport=httpx.MockTransport(recorder))


@pytest.mark.asyncio
async def test_query_sends_filter_and_auth_header(client, recorder) -> None:
    tiddlers = await client.query_tiddlers("[!is[system]sort[title]]")
    await client.aclose()

    assert [tiddler.title for tiddler in tiddlers] == ["Alpha", "Beta", "Gamma"]
    request = recorder.requests[0]
    assert request.url.params["filter"] == "[!is[system]sort[title]]"
    assert request.headers["X-Oidc-Username"] == "mcp-user"
    assert tiddlers[0].text is None


@pytest.mark.asyncio
async def test_pagination_applies_before_text_fetch(client, recorder) -> None:
    tiddlers = await client.query_tiddlers("[all[]]", include_text=True, offset=1, limit=1)
    await client.aclose()

    assert [tiddler.title for tiddler in tiddlers] == ["Beta"]
    assert tiddlers[0].text == "second"
    fetched = [req.url.path for req in recorder.requests if req.url.path.startswith("/recipes/default/tiddlers/")]
    assert fetched == ["/recipes/default/tiddlers/Beta"]


@pytest.mark.asyncio
async def test_get_tiddler_flattens_fields_and_handles_404(client) -> None:
    beta = await client.get_tiddler("Beta")
    missing = await client.get_tiddler("Nope")
    await client.aclose()

    assert beta is not None
    assert beta.extra_fields == {"custom": "yes"}
    assert missing is None


@pytest.mark.asyncio
async def test_query_error_raises() -> None:
    client = TiddlyWikiClient("http://wiki.test", transport=httpx.MockTransport(lambda request: httpx.Response(502)))
    with pytest.raises(WikiError):
        await client.list_documents("[all[]]")
    await client.aclose()


@pytest.mark.asyncio
async def test_put_strips_server_fields_and_marks_request(client, recorder) -> None:
    tiddler = Tiddler(title="Alpha", text="changed", revision=3, bag="default", custom="x")
    await client.put_tiddler(tiddler)
    await client.aclose()

    request = recorder.requests[-1]
    body = json.loads(request.content)
    assert request.method == "PUT"
    assert request.headers["x-requested-with"] == "TiddlyWiki"
    assert "revision" not in body and "bag" not in body
    assert body["custom"] == "x"


@pytest.mark.asyncio
async def test_delete_uses_bag_endpoint(client, recorder) -> None:
    await client.delete_tiddler("Some Title")
    await client.aclose()
    request = recorder.requests[-1]
    assert request.method == "DELETE"
    assert request.url.raw_path == b"/bags/default/tiddlers/Some%20Title"


def test_generate_timestamp_format() -> None:
    moment = datetime(2024, 3, 5, 7, 8, 9, 123456, tzinfo=timezone.utc)
    assert generate_timestamp(moment) == "20240305070809123"
    assert len(generate_timestamp()) == 17


def test_new_tiddler_sets_creation_fields() -> None:
    tiddler = new_tiddler("Fresh", "body", creator="alice", tags="a b", extra={"priority": "high"})
    assert tiddler.creator == "alice"
    assert tiddler.type == "text/markdown"
    assert len(tiddler.created) == 17
    assert tiddler.extra_fields == {"priority": "high"}


def test_apply_update_preserves_identity() -> None:
    current = Tiddler(
        title="Alpha",
        text="old",
        created="20240101000000000",
        creator="alice",
        revision=7,
        bag="default",
        custom="kept",
    )
    updated = apply_update(current, {"text": "new", "title": "Hijacked", "creator": "mallory"}, modifier="bob")

    assert updated.title == "Alpha"
    assert updated.text == "new"
    assert updated.created == "20240101000000000"
    assert updated.creator == "alice"
    assert updated.modifier == "bob"
    assert updated.modified is not None and len(updated.modified) == 17
    assert updated.revision is None and updated.bag is None
    assert updated.extra_fields == {"custom": "kept"}
