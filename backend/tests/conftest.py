"""Test fixtures for the tiddler index."""

from __future__ import annotations

import re
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterator, Sequence

import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from tiddler_index.core.config import Settings  # noqa: E402
from tiddler_index.db.sqlite import SQLiteDatabase  # noqa: E402
from tiddler_index.ingest.embeddings import EmbeddingError  # noqa: E402
from tiddler_index.models.entities import Tiddler  # noqa: E402
from tiddler_index.retrieval.vector_store import VectorStore  # noqa: E402
from tiddler_index.wiki.client import WikiError  # noqa: E402

DIM = 8
_TAG_FILTER_RE = re.compile(r"^\[tag\[([^\]]+)\]\]$")


def _reset_singletons() -> None:
    from tiddler_index.api import dependencies as deps
    from tiddler_index.core.config import get_settings

    if deps._STORE is not None:
        deps._STORE.close()
    get_settings.cache_clear()
    deps.get_app_settings.cache_clear()
    deps._WIKI = None
    deps._STORE = None
    deps._EMBEDDER = None
    deps._WORKER = None
    deps._SEARCH = None
    deps._EMBEDDINGS_ATTEMPTED = False


@pytest.fixture(autouse=True)
def reset_state(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Reset global singletons and environment between tests."""
    monkeypatch.setenv("TIDX_DB_PATH", str(tmp_path / "embeddings.db"))
    monkeypatch.setenv("TIDX_EMBEDDING_DIM", str(DIM))
    monkeypatch.setenv("TIDX_SYNC_ENABLED", "false")
    monkeypatch.delenv("TIDX_CONFIG", raising=False)
    _reset_singletons()
    yield
    _reset_singletons()


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class FakeWiki:
    """In-memory stand-in for the TiddlyWiki client."""

    def __init__(self) -> None:
        self.tiddlers: dict[str, Tiddler] = {}
        self.fetch_calls: list[str] = []
        self.list_calls = 0
        self.failing: set[str] = set()
        self.closed = False

    def add(self, title: str, text: str | None = "", **fields: object) -> Tiddler:
        tiddler = Tiddler(title=title, text=text, **fields)
        self.tiddlers[title] = tiddler
        return tiddler

    def _match(self, filter_expr: str) -> list[Tiddler]:
        ordered = [self.tiddlers[title] for title in sorted(self.tiddlers)]
        tag_match = _TAG_FILTER_RE.match(filter_expr)
        if tag_match:
            tag = tag_match.group(1)
            return [tiddler for tiddler in ordered if tag in (tiddler.tags or "").split()]
        return ordered

    async def query_tiddlers(
        self,
        filter_expr: str,
        include_text: bool = False,
        offset: int = 0,
        limit: int | None = None,
    ) -> list[Tiddler]:
        matches = self._match(filter_expr)
        end = offset + limit if limit is not None else None
        matches = matches[offset:end]
        if include_text:
            return [tiddler.model_copy() for tiddler in matches]
        return [tiddler.model_copy(update={"text": None}) for tiddler in matches]

    async def list_documents(self, filter_expr: str) -> list[Tiddler]:
        self.list_calls += 1
        return await self.query_tiddlers(filter_expr)

    async def get_tiddler(self, title: str) -> Tiddler | None:
        self.fetch_calls.append(title)
        if title in self.failing:
            raise WikiError(f'Failed to get tiddler "{title}": 500 Internal Server Error')
        tiddler = self.tiddlers.get(title)
        return tiddler.model_copy() if tiddler is not None else None

    async def put_tiddler(self, tiddler: Tiddler) -> None:
        self.tiddlers[tiddler.title] = tiddler.model_copy()

    async def delete_tiddler(self, title: str) -> None:
        self.tiddlers.pop(title, None)

    async def aclose(self) -> None:
        self.closed = True


class FakeEmbedder:
    """Deterministic embedder: letter-frequency vectors of fixed dimension."""

    def __init__(self, dim: int = DIM) -> None:
        self.dim = dim
        self.healthy = True
        self.calls: list[list[str]] = []
        self.query_calls: list[str] = []
        self.reject: set[str] = set()
        self.closed = False

    def vector(self, text: str) -> list[float]:
        values = [0.0] * self.dim
        for char in text.lower():
            if char.isalpha():
                values[ord(char) % self.dim] += 1.0
        if not any(values):
            values[0] = 1.0
        return values

    async def health_check(self) -> bool:
        return self.healthy

    async def embed_documents(self, texts: Sequence[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        for text in texts:
            if any(marker in text for marker in self.reject):
                raise EmbeddingError("the input length exceeds the context length")
        return [self.vector(text) for text in texts]

    async def embed_query(self, text: str) -> list[float]:
        self.query_calls.append(text)
        return self.vector(text)

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        db_path=tmp_path / "store.db",
        embedding_dim=DIM,
        sync_enabled=False,
        sync_interval_seconds=3600,
        chunk_max_tokens=50,
    )


@pytest.fixture
def store(settings: Settings, clock: FakeClock) -> Iterator[VectorStore]:
    vector_store = VectorStore(SQLiteDatabase(settings.db_path), dim=DIM, clock=clock)
    vector_store.ensure_schema()
    yield vector_store
    vector_store.close()


@pytest.fixture
def wiki() -> FakeWiki:
    return FakeWiki()


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture(scope="session")
def sample_text() -> str:
    return "Title\n\nParagraph one.\n\nParagraph two is here."
