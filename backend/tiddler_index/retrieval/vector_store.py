"""Persistent vector store and per-document sync ledger."""

from __future__ import annotations

import sqlite3
from array import array
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Sequence

from tiddler_index.core.logging import get_logger
from tiddler_index.db.sqlite import SQLiteDatabase
from tiddler_index.models.entities import (
    MISSING_TIMESTAMP,
    ChunkMetadata,
    NeighborHit,
    SyncState,
    SyncStatus,
)
from tiddler_index.utils.time import utc_now

logger = get_logger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS store_meta (
  key TEXT PRIMARY KEY,
  value TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS chunk_metadata (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  title TEXT NOT NULL,
  chunk_id INTEGER NOT NULL,
  chunk_text TEXT NOT NULL,
  created TEXT,
  modified TEXT,
  tags TEXT
);

CREATE INDEX IF NOT EXISTS idx_chunk_metadata_title ON chunk_metadata(title);

CREATE TABLE IF NOT EXISTS sync_status (
  title TEXT PRIMARY KEY,
  last_modified TEXT NOT NULL,
  last_indexed TEXT NOT NULL,
  total_chunks INTEGER NOT NULL DEFAULT 0,
  status TEXT NOT NULL DEFAULT 'indexed',
  error_message TEXT
);

CREATE INDEX IF NOT EXISTS idx_sync_status_modified ON sync_status(last_modified);
"""


_METRICS = ("cosine", "l2")

# sqlite-vec rejects KNN queries with k above this.
MAX_KNN_K = 4096


class DimensionMismatchError(ValueError):
    """Raised when a vector or an existing store does not match the configured shape."""


@dataclass(slots=True)
class ChunkRow:
    chunk_id: int
    vector: Sequence[float]
    chunk_text: str
    metadata: ChunkMetadata


class VectorStore:
    """Chunk vectors in a sqlite-vec ``vec0`` table plus the sync-status ledger.

    Every method commits before returning, so reads issued while a sync cycle is
    mid-flight see each completed write immediately.
    """

    def __init__(
        self,
        db: SQLiteDatabase,
        dim: int,
        distance_metric: str = "cosine",
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if distance_metric not in _METRICS:
            raise ValueError(f"Unsupported distance metric: {distance_metric}")
        self.db = db
        self.dim = dim
        self.distance_metric = distance_metric
        self._clock = clock

    def ensure_schema(self) -> None:
        self.db.executescript(SCHEMA_SQL)
        self._check_store_meta()
        self.db.execute(
            f"CREATE VIRTUAL TABLE IF NOT EXISTS chunk_vectors USING vec0("
            f"embedding float[{int(self.dim)}] distance_metric={self.distance_metric})"
        )
        self._migrate_missing_timestamps()
        self.db.commit()

    def close(self) -> None:
        self.db.close()

    # Chunk rows -------------------------------------------------------

    def insert(
        self,
        title: str,
        chunk_id: int,
        vector: Sequence[float],
        chunk_text: str,
        metadata: ChunkMetadata,
    ) -> None:
        self.insert_chunks(title, [ChunkRow(chunk_id, vector, chunk_text, metadata)])

    def insert_chunks(self, title: str, rows: Sequence[ChunkRow]) -> None:
        """Append chunk rows in one transaction; stale rows must be deleted first."""
        for row in rows:
            self._check_dim(row.vector)
        with self.db.transaction() as cursor:
            for row in rows:
                cursor.execute(
                    """
                    INSERT INTO chunk_metadata (title, chunk_id, chunk_text, created, modified, tags)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    [
                        title,
                        row.chunk_id,
                        row.chunk_text,
                        row.metadata.created,
                        row.metadata.modified,
                        row.metadata.tags,
                    ],
                )
                cursor.execute(
                    "INSERT INTO chunk_vectors (rowid, embedding) VALUES (?, ?)",
                    [cursor.lastrowid, _to_blob(row.vector)],
                )

    def delete_all_chunks(self, title: str) -> int:
        rowids = [row["id"] for row in self.db.query("SELECT id FROM chunk_metadata WHERE title = ?", [title])]
        if not rowids:
            return 0
        with self.db.transaction() as cursor:
            cursor.executemany("DELETE FROM chunk_vectors WHERE rowid = ?", [(rowid,) for rowid in rowids])
            cursor.execute("DELETE FROM chunk_metadata WHERE title = ?", [title])
        return len(rowids)

    def delete_document(self, title: str) -> None:
        """Remove a title's chunks and its sync status."""
        self.delete_all_chunks(title)
        with self.db.transaction() as cursor:
            cursor.execute("DELETE FROM sync_status WHERE title = ?", [title])

    def nearest_neighbors(self, query_vector: Sequence[float], k: int) -> list[NeighborHit]:
        """Closest chunks first; ``k`` is capped at ``MAX_KNN_K``."""
        self._check_dim(query_vector)
        k = min(int(k), MAX_KNN_K)
        if k <= 0 or self.count_chunks() == 0:
            return []
        rows = self.db.query(
            """
            WITH knn AS (
              SELECT rowid, distance
              FROM chunk_vectors
              WHERE embedding MATCH ? AND k = ?
            )
            SELECT m.title, m.chunk_id, m.chunk_text, m.created, m.modified, m.tags, knn.distance
            FROM knn
            JOIN chunk_metadata m ON m.id = knn.rowid
            ORDER BY knn.distance ASC
            """,
            [_to_blob(query_vector), k],
        )
        return [
            NeighborHit(
                title=row["title"],
                chunk_id=int(row["chunk_id"]),
                chunk_text=row["chunk_text"],
                metadata=ChunkMetadata(
                    created=row["created"] or "",
                    modified=row["modified"] or "",
                    tags=row["tags"] or "",
                ),
                distance=float(row["distance"]),
            )
            for row in rows
        ]

    # Sync ledger ------------------------------------------------------

    def get_status(self, title: str) -> SyncStatus | None:
        row = self.db.execute(
            """
            SELECT title, last_modified, last_indexed, total_chunks, status, error_message
            FROM sync_status WHERE title = ?
            """,
            [title],
        ).fetchone()
        return _row_to_status(row) if row else None

    def all_statuses(self) -> dict[str, SyncStatus]:
        rows = self.db.query(
            """
            SELECT title, last_modified, last_indexed, total_chunks, status, error_message
            FROM sync_status ORDER BY title
            """
        )
        return {row["title"]: _row_to_status(row) for row in rows}

    def set_status(
        self,
        title: str,
        modified_token: str | None,
        chunk_count: int,
        status: SyncState,
        error_message: str | None = None,
    ) -> None:
        """Upsert a status record, overwriting every field."""
        with self.db.transaction() as cursor:
            cursor.execute(
                """
                INSERT INTO sync_status (title, last_modified, last_indexed, total_chunks, status, error_message)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(title) DO UPDATE SET
                  last_modified = excluded.last_modified,
                  last_indexed = excluded.last_indexed,
                  total_chunks = excluded.total_chunks,
                  status = excluded.status,
                  error_message = excluded.error_message
                """,
                [
                    title,
                    modified_token or MISSING_TIMESTAMP,
                    self._clock().isoformat(),
                    int(chunk_count),
                    status,
                    error_message if status == "error" else None,
                ],
            )

    def count_documents_with_status(self, status: SyncState | None = None) -> int:
        if status is None:
            return int(self.db.scalar("SELECT COUNT(*) FROM sync_status"))
        return int(self.db.scalar("SELECT COUNT(*) FROM sync_status WHERE status = ?", [status]))

    def count_chunks(self, title: str | None = None) -> int:
        if title is None:
            return int(self.db.scalar("SELECT COUNT(*) FROM chunk_metadata"))
        return int(self.db.scalar("SELECT COUNT(*) FROM chunk_metadata WHERE title = ?", [title]))

    # Internal helpers -------------------------------------------------

    def _check_dim(self, vector: Sequence[float]) -> None:
        if len(vector) != self.dim:
            raise DimensionMismatchError(f"Vector dimension mismatch: expected {self.dim}, got {len(vector)}")

    def _check_store_meta(self) -> None:
        expected = {"dim": str(self.dim), "distance_metric": self.distance_metric}
        stored = {row["key"]: row["value"] for row in self.db.query("SELECT key, value FROM store_meta")}
        for key, value in expected.items():
            if key not in stored:
                self.db.execute("INSERT INTO store_meta (key, value) VALUES (?, ?)", [key, value])
            elif stored[key] != value:
                raise DimensionMismatchError(
                    f"Store at {self.db.db_path} was created with {key}={stored[key]}, configured {key}={value}"
                )

    def _migrate_missing_timestamps(self) -> None:
        cursor = self.db.execute(
            "UPDATE sync_status SET last_modified = ? WHERE last_modified = '' OR last_modified IS NULL",
            [MISSING_TIMESTAMP],
        )
        if cursor.rowcount > 0:
            logger.info("Normalized %s sync status rows with missing timestamps", cursor.rowcount)


def _to_blob(vector: Sequence[float]) -> bytes:
    return array("f", vector).tobytes()


def _row_to_status(row: sqlite3.Row) -> SyncStatus:
    return SyncStatus(
        title=row["title"],
        last_modified=row["last_modified"],
        last_indexed=row["last_indexed"],
        total_chunks=int(row["total_chunks"]),
        status=row["status"],
        error_message=row["error_message"],
    )


__all__ = ["VectorStore", "ChunkRow", "DimensionMismatchError", "MAX_KNN_K"]
