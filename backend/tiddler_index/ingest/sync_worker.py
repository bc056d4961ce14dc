"""Background reconciliation between the wiki and the vector store."""

from __future__ import annotations

import asyncio
import contextlib
import time
from datetime import datetime, timedelta
from typing import Any, Callable, Sequence

import httpx

from tiddler_index.core.config import Settings
from tiddler_index.core.logging import get_logger, log_context
from tiddler_index.core.metrics import DOCUMENTS_PROCESSED, INDEX_SIZE, SYNC_CYCLES, SYNC_DURATION
from tiddler_index.ingest.chunker import chunk_text
from tiddler_index.ingest.embeddings import EmbeddingError, OllamaEmbeddingClient
from tiddler_index.ingest.reconcile import is_filesystem_path, plan_sync, stale_titles
from tiddler_index.ingest.types import IndexOutcome, SyncAction, SyncReport
from tiddler_index.models.entities import (
    STATUS_EMPTY,
    STATUS_ERROR,
    STATUS_INDEXED,
    ChunkMetadata,
)
from tiddler_index.retrieval.vector_store import ChunkRow, VectorStore
from tiddler_index.utils.time import utc_now
from tiddler_index.wiki.client import TiddlyWikiClient, WikiError

logger = get_logger(__name__)


class SyncWorker:
    """Keep the vector store consistent with the wiki by periodic polling.

    At most one cycle runs at a time. Each cycle lists documents, diffs their
    modified tokens against the sync ledger, and reprocesses only the deltas in
    fixed-size concurrent batches.
    """

    def __init__(
        self,
        store: VectorStore,
        embedder: OllamaEmbeddingClient,
        wiki: TiddlyWikiClient,
        settings: Settings,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.embedder = embedder
        self.wiki = wiki
        self.settings = settings
        self._clock = clock
        self._running = False
        self._syncing = False
        self._task: asyncio.Task[None] | None = None
        self.last_report: SyncReport | None = None

    @property
    def running(self) -> bool:
        return self._running

    @property
    def syncing(self) -> bool:
        return self._syncing

    async def start(self) -> None:
        if not self.settings.sync_enabled:
            logger.info("Sync worker disabled, not starting")
            return
        if self._running:
            logger.info("Sync worker already running")
            return
        self._running = True
        self._task = asyncio.create_task(self._run_forever(), name="tiddler-sync")
        logger.info("Sync worker started with %ss interval", self.settings.sync_interval_seconds)

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        logger.info("Sync worker stopped")

    def status(self) -> dict[str, Any]:
        return {
            "running": self._running,
            "syncing": self._syncing,
            "enabled": self.settings.sync_enabled,
            "interval_seconds": self.settings.sync_interval_seconds,
            "indexed_count": self.store.count_documents_with_status(STATUS_INDEXED),
            "tracked_count": self.store.count_documents_with_status(),
            "chunk_count": self.store.count_chunks(),
            "last_report": self.last_report.to_dict() if self.last_report else None,
        }

    async def force_sync(self) -> SyncReport:
        """Run a cycle now; a no-op report is returned if one is already running."""
        return await self.run_cycle()

    async def run_cycle(self) -> SyncReport:
        started = self._clock()
        report = SyncReport(started_at=started.isoformat())
        if self._syncing:
            logger.info("Sync already in progress, skipping")
            SYNC_CYCLES.labels(outcome="skipped_busy").inc()
            report.skipped_reason = "busy"
            return report

        self._syncing = True
        timer = time.perf_counter()
        try:
            if not await self.embedder.health_check():
                logger.error("Embedding service is not available, skipping sync")
                SYNC_CYCLES.labels(outcome="skipped_unhealthy").inc()
                report.skipped_reason = "embedding_service_unavailable"
                return report

            listed = await self.wiki.list_documents(self.settings.sync_filter)
            tiddlers = [tiddler for tiddler in listed if not is_filesystem_path(tiddler.title)]
            report.listed = len(listed)
            report.filtered = len(listed) - len(tiddlers)
            logger.info(
                "Found %s tiddlers (%s filesystem paths filtered)",
                len(tiddlers),
                report.filtered,
            )

            statuses = self.store.all_statuses()
            if self.settings.prune_deleted:
                for title in stale_titles(tiddlers, statuses):
                    logger.info("Pruning %s: no longer in the wiki", title, extra=log_context(title=title))
                    self.store.delete_document(title)
                    report.pruned += 1

            retry_after = timedelta(hours=self.settings.error_retry_hours)
            actions = plan_sync(tiddlers, statuses, started, retry_after)
            report.planned = len(actions)
            for action in actions:
                report.reasons[action.reason] = report.reasons.get(action.reason, 0) + 1

            if actions:
                await self._process(actions, report)
            else:
                logger.info("No tiddlers need indexing")

            report.duration_seconds = round(time.perf_counter() - timer, 3)
            SYNC_CYCLES.labels(outcome="completed").inc()
            SYNC_DURATION.observe(report.duration_seconds)
            INDEX_SIZE.set(self.store.count_chunks())
            logger.info(
                "Sync cycle completed in %.1fs: indexed=%s empty=%s errors=%s pruned=%s",
                report.duration_seconds,
                report.indexed,
                report.empty,
                report.errors,
                report.pruned,
            )
            return report
        except Exception:
            SYNC_CYCLES.labels(outcome="failed").inc()
            raise
        finally:
            self._syncing = False
            self.last_report = report

    async def index_document(self, action: SyncAction) -> IndexOutcome:
        """Process one document: delete stale chunks, embed, insert, then record status."""
        title = action.title
        logger.info(
            "Indexing %s (%s)",
            title,
            action.reason,
            extra=log_context(title=title, reason=action.reason),
        )
        try:
            tiddler = await self.wiki.get_tiddler(title)
        except (WikiError, httpx.HTTPError) as exc:
            logger.warning("Could not fetch %s, will retry next cycle: %s", title, exc)
            return IndexOutcome(title=title, status=None, detail=str(exc))

        token = (tiddler or action.tiddler).modified_token
        if tiddler is None or not (tiddler.text or "").strip():
            self.store.delete_all_chunks(title)
            self.store.set_status(title, token, 0, STATUS_EMPTY)
            DOCUMENTS_PROCESSED.labels(outcome=STATUS_EMPTY).inc()
            logger.warning("Tiddler %s has no text, marked empty", title, extra=log_context(title=title))
            return IndexOutcome(title=title, status=STATUS_EMPTY)

        self.store.delete_all_chunks(title)
        chunks = chunk_text(tiddler.text or "", self.settings.chunk_max_tokens)
        try:
            vectors = await self.embedder.embed_documents(chunks)
        except EmbeddingError as exc:
            self.store.set_status(title, token, 0, STATUS_ERROR, str(exc))
            DOCUMENTS_PROCESSED.labels(outcome=STATUS_ERROR).inc()
            logger.error("Failed to embed %s: %s", title, exc, extra=log_context(title=title))
            return IndexOutcome(title=title, status=STATUS_ERROR, detail=str(exc))

        metadata = ChunkMetadata(
            created=tiddler.created or "",
            modified=tiddler.modified or "",
            tags=tiddler.tags or "",
        )
        self.store.insert_chunks(
            title,
            [ChunkRow(chunk_id=idx, vector=vector, chunk_text=chunk, metadata=metadata)
             for idx, (chunk, vector) in enumerate(zip(chunks, vectors))],
        )
        self.store.set_status(title, token, len(chunks), STATUS_INDEXED)
        DOCUMENTS_PROCESSED.labels(outcome=STATUS_INDEXED).inc()
        logger.info("Indexed %s (%s chunks)", title, len(chunks), extra=log_context(title=title))
        return IndexOutcome(title=title, status=STATUS_INDEXED, chunks=len(chunks))

    # Internal helpers -------------------------------------------------

    async def _process(self, actions: Sequence[SyncAction], report: SyncReport) -> None:
        batch_size = self.settings.sync_batch_size
        logger.info("Indexing %s tiddlers...", len(actions))
        for start in range(0, len(actions), batch_size):
            batch = actions[start : start + batch_size]
            results = await asyncio.gather(
                *(self.index_document(action) for action in batch),
                return_exceptions=True,
            )
            fatal: BaseException | None = None
            for result in results:
                if isinstance(result, BaseException):
                    fatal = fatal or result
                else:
                    report.record(result)
            if fatal is not None:
                raise fatal
            logger.info("Progress: %s/%s tiddlers processed", start + len(batch), len(actions))

    async def _run_forever(self) -> None:
        while self._running:
            try:
                await self.run_cycle()
            except Exception:
                logger.exception("Sync cycle failed")
            await asyncio.sleep(self.settings.sync_interval_seconds)


__all__ = ["SyncWorker"]
