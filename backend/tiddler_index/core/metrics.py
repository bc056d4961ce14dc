"""Prometheus metrics instrumentation."""

from __future__ import annotations

from fastapi import Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

REGISTRY = CollectorRegistry()

SYNC_CYCLES = Counter(
    "tidx_sync_cycles_total",
    "Reconciliation cycles by outcome",
    labelnames=("outcome",),
    registry=REGISTRY,
)

DOCUMENTS_PROCESSED = Counter(
    "tidx_documents_processed_total",
    "Documents processed by the sync worker, by resulting status",
    labelnames=("outcome",),
    registry=REGISTRY,
)

SYNC_DURATION = Histogram(
    "tidx_sync_duration_seconds",
    "Duration of completed reconciliation cycles",
    registry=REGISTRY,
)

INDEX_SIZE = Gauge(
    "tidx_index_chunks",
    "Number of chunks stored in the vector store",
    registry=REGISTRY,
)

SEARCH_COUNT = Counter(
    "tidx_search_requests_total",
    "Search requests by mode and outcome",
    labelnames=("mode", "outcome"),
    registry=REGISTRY,
)

SEARCH_LATENCY = Histogram(
    "tidx_search_latency_seconds",
    "Latency of search requests",
    labelnames=("mode",),
    registry=REGISTRY,
)


def metrics_response() -> Response:
    """Return Prometheus metrics as an HTTP response."""
    payload = generate_latest(REGISTRY)
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)


__all__ = [
    "REGISTRY",
    "SYNC_CYCLES",
    "DOCUMENTS_PROCESSED",
    "SYNC_DURATION",
    "INDEX_SIZE",
    "SEARCH_COUNT",
    "SEARCH_LATENCY",
    "metrics_response",
]
