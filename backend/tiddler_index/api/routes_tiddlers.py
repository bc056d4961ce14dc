"""Tiddler read/write routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from tiddler_index.api.dependencies import get_app_settings, get_vector_store, get_wiki_client
from tiddler_index.core.config import Settings
from tiddler_index.core.logging import get_logger, log_context
from tiddler_index.models.dto import (
    DeleteResponse,
    TiddlerCreateRequest,
    TiddlerResponse,
    TiddlerUpdateRequest,
)
from tiddler_index.models.entities import Tiddler
from tiddler_index.retrieval.vector_store import VectorStore
from tiddler_index.wiki.client import TiddlyWikiClient, apply_update, new_tiddler

logger = get_logger(__name__)

router = APIRouter()


async def _existing(wiki: TiddlyWikiClient, title: str) -> Tiddler:
    tiddler = await wiki.get_tiddler(title)
    if tiddler is None:
        raise HTTPException(status_code=404, detail=f'Tiddler "{title}" not found')
    return tiddler


def _to_response(tiddler: Tiddler) -> TiddlerResponse:
    return TiddlerResponse(**tiddler.model_dump(exclude_none=True))


@router.get("/tiddlers/{title:path}", response_model=TiddlerResponse, summary="Fetch a tiddler")
async def read_tiddler(title: str, wiki: TiddlyWikiClient = Depends(get_wiki_client)) -> TiddlerResponse:
    return _to_response(await _existing(wiki, title))


@router.post("/tiddlers", response_model=TiddlerResponse, status_code=201, summary="Create a tiddler")
async def create_tiddler(
    request: TiddlerCreateRequest,
    wiki: TiddlyWikiClient = Depends(get_wiki_client),
    settings: Settings = Depends(get_app_settings),
) -> TiddlerResponse:
    if await wiki.get_tiddler(request.title) is not None:
        raise HTTPException(
            status_code=409,
            detail=f'Tiddler "{request.title}" already exists. Use PATCH /tiddlers/{{title}} to modify it.',
        )
    tiddler = new_tiddler(
        request.title,
        request.text,
        creator=settings.auth_user,
        tags=request.tags,
        type=request.type,
        extra=request.model_extra,
    )
    await wiki.put_tiddler(tiddler)
    return _to_response(tiddler)


@router.patch("/tiddlers/{title:path}", response_model=TiddlerResponse, summary="Update a tiddler")
async def update_tiddler(
    title: str,
    request: TiddlerUpdateRequest,
    wiki: TiddlyWikiClient = Depends(get_wiki_client),
    settings: Settings = Depends(get_app_settings),
) -> TiddlerResponse:
    current = await _existing(wiki, title)
    updated = apply_update(current, request.model_dump(exclude_none=True), modifier=settings.auth_user)
    await wiki.put_tiddler(updated)
    return _to_response(updated)


@router.delete("/tiddlers/{title:path}", response_model=DeleteResponse, summary="Delete a tiddler")
async def delete_tiddler(
    title: str,
    wiki: TiddlyWikiClient = Depends(get_wiki_client),
    store: VectorStore | None = Depends(get_vector_store),
) -> DeleteResponse:
    await _existing(wiki, title)
    await wiki.delete_tiddler(title)
    removed = 0
    if store is not None:
        removed = store.count_chunks(title)
        store.delete_document(title)
        logger.info("Dropped %s indexed chunks for %s", removed, title, extra=log_context(title=title))
    return DeleteResponse(status="ok", title=title, chunks_removed=removed)


__all__ = ["router"]
