"""Tests for the sqlite-vec vector store and sync ledger."""

from __future__ import annotations

import pytest

from tiddler_index.db.sqlite import SQLiteDatabase
from tiddler_index.models.entities import MISSING_TIMESTAMP, ChunkMetadata
from tiddler_index.retrieval.vector_store import MAX_KNN_K, ChunkRow, DimensionMismatchError, VectorStore

META = ChunkMetadata(created="20240101000000000", modified="20240102000000000", tags="demo")


def _unit(index: int, dim: int = 8) -> list[float]:
    vector = [0.0] * dim
    vector[index] = 1.0
    return vector


def test_nearest_neighbors_ordered_by_distance(store: VectorStore) -> None:
    store.insert("Alpha", 0, _unit(0), "alpha text", META)
    store.insert("Beta", 0, [0.9, 0.1, 0, 0, 0, 0, 0, 0], "beta text", META)
    store.insert("Gamma", 0, _unit(3), "gamma text", META)

    hits = store.nearest_neighbors(_unit(0), k=3)

    assert [hit.title for hit in hits] == ["Alpha", "Beta", "Gamma"]
    distances = [hit.distance for hit in hits]
    assert distances == sorted(distances)
    assert hits[0].similarity == pytest.approx(1.0, abs=1e-6)
    assert hits[0].metadata.tags == "demo"


def test_nearest_neighbors_respects_k_and_empty_store(store: VectorStore) -> None:
    assert store.nearest_neighbors(_unit(0), k=5) == []
    for idx in range(4):
        store.insert(f"Doc {idx}", 0, _unit(idx), f"text {idx}", META)
    assert len(store.nearest_neighbors(_unit(0), k=2)) == 2
    assert store.nearest_neighbors(_unit(0), k=0) == []


def test_dimension_mismatch_is_rejected(store: VectorStore) -> None:
    with pytest.raises(DimensionMismatchError):
        store.insert("Short", 0, [1.0, 0.0], "short", META)
    with pytest.raises(DimensionMismatchError):
        store.nearest_neighbors([1.0, 0.0, 0.0], k=1)
    assert store.count_chunks() == 0


def test_reopening_with_other_dimension_fails(settings, store: VectorStore) -> None:
    other = VectorStore(SQLiteDatabase(settings.db_path), dim=16)
    with pytest.raises(DimensionMismatchError):
        other.ensure_schema()
    other.close()


def test_unknown_distance_metric_rejected(settings) -> None:
    with pytest.raises(ValueError):
        VectorStore(SQLiteDatabase(settings.db_path), dim=8, distance_metric="dot")


def test_insert_chunks_and_delete_all(store: VectorStore) -> None:
    rows = [ChunkRow(chunk_id=idx, vector=_unit(idx), chunk_text=f"part {idx}", metadata=META) for idx in range(3)]
    store.insert_chunks("Note-1", rows)
    store.insert("Other", 0, _unit(5), "other", META)

    assert store.count_chunks("Note-1") == 3
    assert store.delete_all_chunks("Note-1") == 3
    assert store.count_chunks("Note-1") == 0
    assert store.count_chunks() == 1
    assert [hit.title for hit in store.nearest_neighbors(_unit(0), k=10)] == ["Other"]
    assert store.delete_all_chunks("Missing") == 0


def test_set_status_upserts_every_field(store: VectorStore, clock) -> None:
    store.set_status("Note-1", "T1", 0, "error", "too long")
    first = store.get_status("Note-1")
    assert first is not None
    assert first.status == "error"
    assert first.error_message == "too long"

    clock.advance(hours=1)
    store.set_status("Note-1", "T2", 3, "indexed", "ignored for non-error status")
    second = store.get_status("Note-1")
    assert second is not None
    assert second.last_modified == "T2"
    assert second.total_chunks == 3
    assert second.status == "indexed"
    assert second.error_message is None
    assert second.last_indexed == clock().isoformat()
    assert store.count_documents_with_status() == 1


def test_missing_token_is_stored_as_sentinel(store: VectorStore) -> None:
    store.set_status("Untimed", None, 1, "indexed")
    store.set_status("Blank", "", 1, "indexed")
    assert store.get_status("Untimed").last_modified == MISSING_TIMESTAMP
    assert store.get_status("Blank").last_modified == MISSING_TIMESTAMP


def test_counts_by_status(store: VectorStore) -> None:
    store.set_status("A", "T", 2, "indexed")
    store.set_status("B", "T", 0, "empty")
    store.set_status("C", "T", 0, "error", "boom")
    assert store.count_documents_with_status("indexed") == 1
    assert store.count_documents_with_status("empty") == 1
    assert store.count_documents_with_status("error") == 1
    assert set(store.all_statuses()) == {"A", "B", "C"}
    assert store.get_status("Nope") is None


def test_delete_document_drops_chunks_and_status(store: VectorStore) -> None:
    store.insert("Gone", 0, _unit(1), "text", META)
    store.set_status("Gone", "T1", 1, "indexed")
    store.delete_document("Gone")
    assert store.get_status("Gone") is None
    assert store.count_chunks("Gone") == 0


def test_migration_normalizes_empty_timestamps(settings, store: VectorStore) -> None:
    store.db.execute(
        "INSERT INTO sync_status (title, last_modified, last_indexed, total_chunks, status) VALUES (?, ?, ?, ?, ?)",
        ["Legacy", "", "2024-01-01T00:00:00+00:00", 1, "indexed"],
    )
    store.db.commit()
    store.close()

    reopened = VectorStore(SQLiteDatabase(settings.db_path), dim=8)
    reopened.ensure_schema()
    assert reopened.get_status("Legacy").last_modified == MISSING_TIMESTAMP
    reopened.close()


def test_nearest_neighbors_caps_k_at_knn_maximum(store: VectorStore) -> None:
    store.insert("Alpha", 0, _unit(0), "alpha text", META)
    hits = store.nearest_neighbors(_unit(0), k=MAX_KNN_K + 1000)
    assert [hit.title for hit in hits] == ["Alpha"]
