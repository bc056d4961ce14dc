"""Hybrid search utilities."""

from __future__ import annotations

from typing import Collection, Iterable, Sequence

from tiddler_index.models.entities import NeighborHit, Tiddler


def matched_titles(tiddlers: Iterable[Tiddler]) -> set[str]:
    return {tiddler.title for tiddler in tiddlers}


def intersect_by_title(hits: Sequence[NeighborHit], titles: Collection[str]) -> list[NeighborHit]:
    """Keep semantic hits whose title is in ``titles``, preserving their order."""
    return [hit for hit in hits if hit.title in titles]


__all__ = ["matched_titles", "intersect_by_title"]
