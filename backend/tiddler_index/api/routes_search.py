"""Search API routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from tiddler_index.api.dependencies import get_search_service
from tiddler_index.models.dto import SearchDiagnostic, SearchRequest, SearchResponse
from tiddler_index.retrieval.search import SearchService

router = APIRouter()


@router.post(
    "/search",
    response_model=SearchResponse,
    responses={
        413: {"model": SearchDiagnostic, "description": "Response would exceed the token budget"},
        503: {"model": SearchDiagnostic, "description": "Semantic search not available yet"},
    },
    summary="Filter, semantic, or hybrid search",
)
async def run_search(
    request: SearchRequest,
    service: SearchService = Depends(get_search_service),
):
    outcome = await service.search(request)
    if isinstance(outcome, SearchDiagnostic):
        return JSONResponse(status_code=outcome.status_code, content=outcome.model_dump(exclude_none=True))
    return outcome


__all__ = ["router"]
