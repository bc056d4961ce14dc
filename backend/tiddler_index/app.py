"""FastAPI application setup for the tiddler index."""

from __future__ import annotations

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from tiddler_index.api.dependencies import (
    get_app_settings,
    get_search_service,
    get_sync_worker,
    get_vector_store,
    get_wiki_client,
    shutdown_services,
)
from tiddler_index.api.routes_admin import router as admin_router
from tiddler_index.api.routes_search import router as search_router
from tiddler_index.api.routes_tiddlers import router as tiddlers_router
from tiddler_index.core.logging import configure_logging, get_logger
from tiddler_index.wiki.client import WikiError

configure_logging()
logger = get_logger(__name__)

app = FastAPI(
    title="Tiddler Index",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.include_router(search_router, prefix="", tags=["search"])
app.include_router(tiddlers_router, prefix="", tags=["tiddlers"])
app.include_router(admin_router, prefix="", tags=["admin"])


@app.exception_handler(WikiError)
async def wiki_error_handler(request: Request, exc: WikiError) -> JSONResponse:
    logger.error("Wiki request failed: %s", exc)
    return JSONResponse(status_code=502, content={"detail": str(exc)})


@app.exception_handler(httpx.HTTPError)
async def http_error_handler(request: Request, exc: httpx.HTTPError) -> JSONResponse:
    logger.error("Upstream request failed: %s", exc)
    return JSONResponse(status_code=502, content={"detail": f"Upstream request failed: {exc}"})


@app.on_event("startup")
async def startup() -> None:
    """Build core singletons and start the sync worker."""
    settings = get_app_settings()
    get_wiki_client()
    if get_vector_store() is None and settings.embeddings_enabled:
        logger.warning("Semantic search will be unavailable; filter search still works")
    get_search_service()
    worker = get_sync_worker()
    if worker is not None:
        await worker.start()


@app.on_event("shutdown")
async def shutdown() -> None:
    await shutdown_services()


@app.get("/health", tags=["admin"])
def health() -> dict[str, bool]:
    """Simple liveness check."""
    return {"ok": True}
