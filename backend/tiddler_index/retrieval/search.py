"""Search orchestration."""

from __future__ import annotations

import asyncio
import time
from typing import Any, Callable, Sequence

from tiddler_index.core.config import Settings
from tiddler_index.core.logging import get_logger
from tiddler_index.core.metrics import SEARCH_COUNT, SEARCH_LATENCY
from tiddler_index.ingest.embeddings import EmbeddingError, OllamaEmbeddingClient
from tiddler_index.models.dto import SearchDiagnostic, SearchRequest, SearchResponse
from tiddler_index.models.entities import STATUS_INDEXED, NeighborHit
from tiddler_index.retrieval.budget import check_response_size
from tiddler_index.retrieval.hybrid import intersect_by_title, matched_titles
from tiddler_index.retrieval.vector_store import VectorStore
from tiddler_index.wiki.client import TiddlyWikiClient

logger = get_logger(__name__)


class SearchService:
    """Coordinates filter, semantic, and hybrid retrieval flows.

    ``store`` and ``embedder`` are None when the embedding subsystem is disabled
    or failed to start; filter search keeps working in that case.
    """

    def __init__(
        self,
        wiki: TiddlyWikiClient,
        settings: Settings,
        store: VectorStore | None = None,
        embedder: OllamaEmbeddingClient | None = None,
        sync_status: Callable[[], dict[str, Any]] | None = None,
    ) -> None:
        self.wiki = wiki
        self.settings = settings
        self.store = store
        self.embedder = embedder
        self._sync_status = sync_status

    async def search(self, request: SearchRequest) -> SearchResponse | SearchDiagnostic:
        mode = request.mode
        start_time = time.perf_counter()
        if request.limit is not None and request.limit > self.settings.max_limit:
            outcome = _limit_exceeded(request.limit, self.settings.max_limit)
        elif mode == "filter":
            outcome = await self._filter_search(request)
        else:
            outcome = await self._semantic_search(request)
        SEARCH_LATENCY.labels(mode=mode).observe(time.perf_counter() - start_time)
        label = outcome.kind if isinstance(outcome, SearchDiagnostic) else "ok"
        SEARCH_COUNT.labels(mode=mode, outcome=label).inc()
        return outcome

    async def _filter_search(self, request: SearchRequest) -> SearchResponse | SearchDiagnostic:
        tiddlers = await self.wiki.query_tiddlers(
            request.filter,
            include_text=request.include_text,
            offset=request.offset,
            limit=request.limit,
        )
        results = [tiddler.model_dump(exclude_none=True) for tiddler in tiddlers]
        diagnostic = check_response_size(
            results, self.settings.max_response_tokens, "filter", request.include_text
        )
        if diagnostic is not None:
            logger.warning("Filter search response too large: %s", diagnostic.reason)
            return diagnostic
        return SearchResponse(
            mode="filter",
            filter=request.filter,
            total_results=len(results),
            results=results,
        )

    async def _semantic_search(self, request: SearchRequest) -> SearchResponse | SearchDiagnostic:
        if self.store is None or self.embedder is None:
            return SearchDiagnostic(
                kind="unavailable",
                error="Semantic search is not available",
                reason="Embeddings database or embedding client not initialized",
                suggestion="Check server logs for initialization errors",
            )
        if self.store.count_chunks() == 0:
            return SearchDiagnostic(
                kind="not_indexed",
                error="No tiddlers have been indexed yet",
                suggestion="The sync worker is still indexing entries. Please wait a few minutes and try again.",
                sync_status=self._sync_status() if self._sync_status else None,
            )

        try:
            query_vector = await self.embedder.embed_query(request.semantic)
        except EmbeddingError as exc:
            logger.error("Failed to embed search query: %s", exc)
            return SearchDiagnostic(
                kind="unavailable",
                error="Semantic search is not available",
                reason=str(exc),
                suggestion="Check that the embedding service is running and retry",
            )

        limit = request.limit or self.settings.semantic_default_limit
        hits = self.store.nearest_neighbors(query_vector, request.offset + limit)[request.offset :]
        if request.filter is not None:
            titles = matched_titles(await self.wiki.query_tiddlers(request.filter))
            hits = intersect_by_title(hits, titles)

        results = [_format_hit(hit) for hit in hits]
        if request.include_text:
            await self._attach_text(results)

        diagnostic = check_response_size(
            results, self.settings.max_response_tokens, request.mode, request.include_text
        )
        if diagnostic is not None:
            logger.warning("Semantic search response too large: %s", diagnostic.reason)
            return diagnostic
        return SearchResponse(
            mode=request.mode,
            query=request.semantic,
            filter=request.filter,
            total_results=len(results),
            indexed_tiddlers=self.store.count_documents_with_status(STATUS_INDEXED),
            results=results,
        )

    async def _attach_text(self, results: Sequence[dict[str, Any]]) -> None:
        titles = list(dict.fromkeys(result["title"] for result in results))
        fetched = await asyncio.gather(*(self.wiki.get_tiddler(title) for title in titles))
        by_title = dict(zip(titles, fetched))
        for result in results:
            tiddler = by_title.get(result["title"])
            if tiddler is not None:
                result["text"] = tiddler.text
                result["type"] = tiddler.type


def _limit_exceeded(limit: int, max_limit: int) -> SearchDiagnostic:
    return SearchDiagnostic(
        kind="invalid",
        error="Limit too large",
        reason=f"limit={limit} exceeds the maximum of {max_limit} results per page",
        suggestion=f"Retry with limit={max_limit} and use offset to page through further results.",
    )


def _format_hit(hit: NeighborHit) -> dict[str, Any]:
    return {
        "title": hit.title,
        "chunk_id": hit.chunk_id,
        "similarity": round(hit.similarity, 4),
        "created": hit.metadata.created,
        "modified": hit.metadata.modified,
        "tags": hit.metadata.tags,
    }


__all__ = ["SearchService"]
