"""Pydantic DTOs exposed via API."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

SearchMode = Literal["filter", "semantic", "hybrid"]
DiagnosticKind = Literal["unavailable", "not_indexed", "too_large", "invalid"]

_DIAGNOSTIC_STATUS: dict[str, int] = {
    "unavailable": 503,
    "not_indexed": 503,
    "too_large": 413,
    "invalid": 422,
}


class SearchRequest(BaseModel):
    semantic: str | None = Field(default=None, description="Natural-language query for similarity search")
    filter: str | None = Field(default=None, description="TiddlyWiki filter expression")
    limit: int | None = Field(default=None, ge=1)
    offset: int = Field(default=0, ge=0)
    include_text: bool = False

    @field_validator("semantic", "filter")
    @classmethod
    def _blank_to_none(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        return value

    @model_validator(mode="after")
    def _require_query(self) -> "SearchRequest":
        if self.semantic is None and self.filter is None:
            raise ValueError("Either semantic or filter must be provided")
        return self

    @property
    def mode(self) -> SearchMode:
        if self.semantic is None:
            return "filter"
        return "hybrid" if self.filter is not None else "semantic"


class SearchResponse(BaseModel):
    mode: SearchMode
    query: str | None = None
    filter: str | None = None
    total_results: int
    indexed_tiddlers: int | None = None
    results: list[dict[str, Any]]


class SearchDiagnostic(BaseModel):
    """A query-time condition the caller is expected to adapt to."""

    kind: DiagnosticKind
    error: str
    reason: str | None = None
    suggestion: str | None = None
    match_count: int | None = None
    token_count: int | None = None
    token_limit: int | None = None
    overage: int | None = None
    suggested_limit: int | None = None
    sync_status: dict[str, Any] | None = None

    @property
    def status_code(self) -> int:
        return _DIAGNOSTIC_STATUS[self.kind]


class SyncStatusResponse(BaseModel):
    running: bool
    syncing: bool
    enabled: bool
    interval_seconds: float
    indexed_count: int
    tracked_count: int
    chunk_count: int
    last_report: dict[str, Any] | None = None


class SyncReportResponse(BaseModel):
    started_at: str
    duration_seconds: float
    listed: int
    filtered: int
    planned: int
    indexed: int
    empty: int
    errors: int
    deferred: int
    pruned: int
    skipped_reason: str | None = None
    reasons: dict[str, int] = Field(default_factory=dict)


class TiddlerCreateRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    title: str = Field(min_length=1)
    text: str = ""
    tags: str = ""
    type: str = "text/markdown"


class TiddlerUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    text: str | None = None
    tags: str | None = None
    type: str | None = None


class TiddlerResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    title: str
    text: str | None = None
    type: str | None = None
    tags: str | None = None
    created: str | None = None
    creator: str | None = None
    modified: str | None = None
    modifier: str | None = None


class DeleteResponse(BaseModel):
    status: Literal["ok"]
    title: str
    chunks_removed: int = 0


__all__ = [
    "SearchMode",
    "SearchRequest",
    "SearchResponse",
    "SearchDiagnostic",
    "SyncStatusResponse",
    "SyncReportResponse",
    "TiddlerCreateRequest",
    "TiddlerUpdateRequest",
    "TiddlerResponse",
    "DeleteResponse",
]
