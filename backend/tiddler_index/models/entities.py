"""Internal representations of documents, chunks, and sync state."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from pydantic import BaseModel, ConfigDict

SyncState = Literal["indexed", "empty", "error"]

STATUS_INDEXED: SyncState = "indexed"
STATUS_EMPTY: SyncState = "empty"
STATUS_ERROR: SyncState = "error"

# Stored instead of an absent modified token; sorts before any real timestamp.
MISSING_TIMESTAMP = "00000000000000000"


class Tiddler(BaseModel):
    """A document snapshot from the wiki: known fields plus arbitrary extra fields."""

    model_config = ConfigDict(extra="allow")

    title: str
    text: str | None = None
    type: str | None = None
    tags: str | None = None
    created: str | None = None
    creator: str | None = None
    modified: str | None = None
    modifier: str | None = None
    revision: int | str | None = None
    bag: str | None = None

    @property
    def modified_token(self) -> str:
        return self.modified or MISSING_TIMESTAMP

    @property
    def extra_fields(self) -> dict[str, object]:
        return dict(self.model_extra or {})


@dataclass(slots=True)
class ChunkMetadata:
    created: str
    modified: str
    tags: str


@dataclass(slots=True)
class SyncStatus:
    title: str
    last_modified: str
    last_indexed: str
    total_chunks: int
    status: SyncState
    error_message: str | None = None


@dataclass(slots=True)
class NeighborHit:
    title: str
    chunk_id: int
    chunk_text: str
    metadata: ChunkMetadata
    distance: float

    @property
    def similarity(self) -> float:
        return 1.0 - self.distance


__all__ = [
    "SyncState",
    "STATUS_INDEXED",
    "STATUS_EMPTY",
    "STATUS_ERROR",
    "MISSING_TIMESTAMP",
    "Tiddler",
    "ChunkMetadata",
    "SyncStatus",
    "NeighborHit",
]
