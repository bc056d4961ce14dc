"""Shared FastAPI dependencies."""

from __future__ import annotations

import sqlite3
from functools import lru_cache

from tiddler_index.core.config import Settings, get_settings
from tiddler_index.core.logging import get_logger
from tiddler_index.db.sqlite import SQLiteDatabase
from tiddler_index.ingest.embeddings import OllamaEmbeddingClient
from tiddler_index.ingest.sync_worker import SyncWorker
from tiddler_index.retrieval import SearchService, VectorStore
from tiddler_index.wiki.client import TiddlyWikiClient

logger = get_logger(__name__)

_WIKI: TiddlyWikiClient | None = None
_STORE: VectorStore | None = None
_EMBEDDER: OllamaEmbeddingClient | None = None
_WORKER: SyncWorker | None = None
_SEARCH: SearchService | None = None
_EMBEDDINGS_ATTEMPTED = False


@lru_cache(maxsize=1)
def get_app_settings() -> Settings:
    return get_settings()


def get_wiki_client() -> TiddlyWikiClient:
    global _WIKI
    if _WIKI is None:
        settings = get_app_settings()
        _WIKI = TiddlyWikiClient(
            settings.wiki_url,
            auth_header=settings.auth_header,
            auth_user=settings.auth_user,
            recipe=settings.wiki_recipe,
            bag=settings.wiki_bag,
            timeout=settings.wiki_timeout_seconds,
        )
    return _WIKI


def _init_embeddings() -> None:
    global _STORE, _EMBEDDER, _EMBEDDINGS_ATTEMPTED
    if _EMBEDDINGS_ATTEMPTED or _STORE is not None:
        return
    _EMBEDDINGS_ATTEMPTED = True
    settings = get_app_settings()
    if not settings.embeddings_enabled:
        logger.info("Embeddings disabled, semantic search unavailable")
        return
    try:
        store = VectorStore(
            SQLiteDatabase(settings.db_path),
            dim=settings.embedding_dim,
            distance_metric=settings.distance_metric,
        )
        store.ensure_schema()
    except (sqlite3.Error, OSError, AttributeError) as exc:
        logger.error("Failed to initialize embeddings database at %s: %s", settings.db_path, exc)
        return
    _STORE = store
    _EMBEDDER = OllamaEmbeddingClient(
        settings.ollama_url,
        model=settings.embedding_model,
        timeout=settings.embed_timeout_seconds,
        health_timeout=settings.health_timeout_seconds,
    )
    logger.info("Embeddings database ready at %s (sqlite-vec %s)", settings.db_path, store.db.vec_version())


def get_vector_store() -> VectorStore | None:
    _init_embeddings()
    return _STORE


def get_embedding_client() -> OllamaEmbeddingClient | None:
    _init_embeddings()
    return _EMBEDDER


def get_sync_worker() -> SyncWorker | None:
    global _WORKER
    if _WORKER is None:
        store = get_vector_store()
        embedder = get_embedding_client()
        if store is None or embedder is None:
            return None
        _WORKER = SyncWorker(store, embedder, get_wiki_client(), get_app_settings())
    return _WORKER


def get_search_service() -> SearchService:
    global _SEARCH
    if _SEARCH is None:
        worker = get_sync_worker()
        _SEARCH = SearchService(
            wiki=get_wiki_client(),
            settings=get_app_settings(),
            store=get_vector_store(),
            embedder=get_embedding_client(),
            sync_status=worker.status if worker is not None else None,
        )
    return _SEARCH


async def shutdown_services() -> None:
    """Stop the worker and release clients and the database."""
    global _WIKI, _STORE, _EMBEDDER, _WORKER, _SEARCH, _EMBEDDINGS_ATTEMPTED
    if _WORKER is not None:
        await _WORKER.stop()
    if _EMBEDDER is not None:
        await _EMBEDDER.aclose()
    if _WIKI is not None:
        await _WIKI.aclose()
    if _STORE is not None:
        _STORE.close()
    _WIKI = _STORE = _EMBEDDER = _WORKER = _SEARCH = None
    _EMBEDDINGS_ATTEMPTED = False


__all__ = [
    "get_app_settings",
    "get_wiki_client",
    "get_vector_store",
    "get_embedding_client",
    "get_sync_worker",
    "get_search_service",
    "shutdown_services",
]
