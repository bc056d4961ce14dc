"""Administrative routes: sync control and metrics."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from tiddler_index.api.dependencies import get_sync_worker
from tiddler_index.core.metrics import metrics_response
from tiddler_index.ingest.sync_worker import SyncWorker
from tiddler_index.models.dto import SyncReportResponse, SyncStatusResponse

router = APIRouter()


def _require_worker(worker: SyncWorker | None = Depends(get_sync_worker)) -> SyncWorker:
    if worker is None:
        raise HTTPException(status_code=503, detail="Embeddings are not available; sync is disabled")
    return worker


@router.get("/sync/status", response_model=SyncStatusResponse, summary="Sync worker health")
async def sync_status(worker: SyncWorker = Depends(_require_worker)) -> SyncStatusResponse:
    return SyncStatusResponse(**worker.status())


@router.post("/sync", response_model=SyncReportResponse, summary="Run a reconciliation cycle now")
async def force_sync(worker: SyncWorker = Depends(_require_worker)) -> SyncReportResponse:
    report = await worker.force_sync()
    return SyncReportResponse(**report.to_dict())


@router.get("/metrics", summary="Prometheus metrics")
async def get_metrics():
    return metrics_response()


__all__ = ["router"]
