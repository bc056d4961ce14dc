"""Reconciliation planning: decide which documents need (re)processing."""

from __future__ import annotations

import re
from datetime import datetime, timedelta
from typing import Iterable, Mapping

from tiddler_index.ingest.types import SyncAction, SyncReason
from tiddler_index.models.entities import STATUS_ERROR, SyncStatus, Tiddler
from tiddler_index.utils.time import parse_iso

DEFAULT_RETRY_AFTER = timedelta(hours=24)

_WINDOWS_DRIVE_RE = re.compile(r"^[A-Za-z]:[\\/]")
_FILE_EXTENSION_RE = re.compile(r"\.(tid|tiddler|meta|multids)$", re.IGNORECASE)


def is_filesystem_path(title: str) -> bool:
    """True for titles that are import artifacts (raw file paths) rather than tiddlers."""
    return (
        title.startswith(("/", "\\"))
        or bool(_WINDOWS_DRIVE_RE.match(title))
        or bool(_FILE_EXTENSION_RE.search(title))
    )


def decide(
    tiddler: Tiddler,
    status: SyncStatus | None,
    now: datetime,
    retry_after: timedelta = DEFAULT_RETRY_AFTER,
) -> SyncReason | None:
    """Return why a document must be processed, or None to skip it."""
    if status is None:
        return "new"
    if status.last_modified != tiddler.modified_token:
        return "changed"
    if status.status == STATUS_ERROR and now - parse_iso(status.last_indexed) > retry_after:
        return "retry"
    return None


def plan_sync(
    tiddlers: Iterable[Tiddler],
    statuses: Mapping[str, SyncStatus],
    now: datetime,
    retry_after: timedelta = DEFAULT_RETRY_AFTER,
) -> list[SyncAction]:
    actions: list[SyncAction] = []
    for tiddler in tiddlers:
        reason = decide(tiddler, statuses.get(tiddler.title), now, retry_after)
        if reason is not None:
            actions.append(SyncAction(tiddler=tiddler, reason=reason))
    return actions


def stale_titles(tiddlers: Iterable[Tiddler], statuses: Mapping[str, SyncStatus]) -> list[str]:
    """Titles with a status record that no longer appear in the listing."""
    listed = {tiddler.title for tiddler in tiddlers}
    return sorted(title for title in statuses if title not in listed)


__all__ = [
    "DEFAULT_RETRY_AFTER",
    "is_filesystem_path",
    "decide",
    "plan_sync",
    "stale_titles",
]
