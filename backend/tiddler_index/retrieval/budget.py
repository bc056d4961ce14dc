"""Response-size governance for search results."""

from __future__ import annotations

import math
from typing import Any, Sequence

import orjson

from tiddler_index.models.dto import SearchDiagnostic, SearchMode
from tiddler_index.utils.text import count_tokens


def serialize_results(results: Sequence[Any]) -> str:
    return orjson.dumps(list(results), option=orjson.OPT_INDENT_2).decode("utf-8")


def suggest_limit(token_count: int, result_count: int, token_limit: int) -> int:
    """Largest limit expected to fit, never below one result."""
    if result_count <= 0 or token_count <= 0:
        return 1
    average = token_count / result_count
    return max(1, math.floor(token_limit / average))


def check_response_size(
    results: Sequence[Any],
    token_limit: int,
    mode: SearchMode,
    include_text: bool = False,
) -> SearchDiagnostic | None:
    """Return a diagnostic when the serialized results exceed ``token_limit``."""
    token_count = count_tokens(serialize_results(results))
    if token_count <= token_limit:
        return None

    match_count = len(results)
    limit = suggest_limit(token_count, match_count, token_limit)
    # BPE counts are not additive across the list envelope; shrink until the leading page fits.
    while limit > 1 and count_tokens(serialize_results(results[:limit])) > token_limit:
        limit -= 1
    if mode == "filter":
        suggestion = (
            f"Retry with limit={limit} and offset=0, then increase offset by {limit} "
            f"until all {match_count} matches are retrieved."
        )
    else:
        suggestion = (
            f"Retry with limit={limit}. Results are ordered by similarity, so a lower "
            "limit keeps the most relevant matches."
        )
    if include_text:
        suggestion += " Setting include_text=false also reduces the response size."

    return SearchDiagnostic(
        kind="too_large",
        error="Response too large",
        reason=(
            f"Query matched {match_count} results but the response would be {token_count:,} tokens "
            f"(exceeds the {token_limit:,} token limit)."
        ),
        suggestion=suggestion,
        match_count=match_count,
        token_count=token_count,
        token_limit=token_limit,
        overage=token_count - token_limit,
        suggested_limit=limit,
    )


__all__ = ["serialize_results", "suggest_limit", "check_response_size"]
