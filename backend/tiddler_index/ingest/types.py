"""Common sync data structures."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Literal

from tiddler_index.models.entities import SyncState, Tiddler

SyncReason = Literal["new", "changed", "retry"]


@dataclass(slots=True)
class SyncAction:
    """A document the reconciliation plan decided to (re)process."""

    tiddler: Tiddler
    reason: SyncReason

    @property
    def title(self) -> str:
        return self.tiddler.title


@dataclass(slots=True)
class IndexOutcome:
    """Result of processing one document."""

    title: str
    status: SyncState | None
    chunks: int = 0
    detail: str | None = None


@dataclass(slots=True)
class SyncReport:
    """Aggregated statistics for one reconciliation cycle."""

    started_at: str
    duration_seconds: float = 0.0
    listed: int = 0
    filtered: int = 0
    planned: int = 0
    indexed: int = 0
    empty: int = 0
    errors: int = 0
    deferred: int = 0
    pruned: int = 0
    skipped_reason: str | None = None
    reasons: dict[str, int] = field(default_factory=dict)

    def record(self, outcome: IndexOutcome) -> None:
        if outcome.status == "indexed":
            self.indexed += 1
        elif outcome.status == "empty":
            self.empty += 1
        elif outcome.status == "error":
            self.errors += 1
        else:
            self.deferred += 1

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


__all__ = ["SyncReason", "SyncAction", "IndexOutcome", "SyncReport"]
