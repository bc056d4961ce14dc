"""Retrieval orchestration components."""

from .vector_store import VectorStore, DimensionMismatchError
from .search import SearchService
from .hybrid import intersect_by_title, matched_titles
from .budget import check_response_size

__all__ = [
    "VectorStore",
    "DimensionMismatchError",
    "SearchService",
    "intersect_by_title",
    "matched_titles",
    "check_response_size",
]
