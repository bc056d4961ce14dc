"""HTTP client for the TiddlyWiki server API."""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any, Mapping
from urllib.parse import quote

import httpx

from tiddler_index.core.logging import get_logger, log_context
from tiddler_index.models.entities import Tiddler
from tiddler_index.utils.time import utc_now

logger = get_logger(__name__)

SERVER_MANAGED_FIELDS = ("revision", "bag")


class WikiError(RuntimeError):
    """Raised when the wiki answers with an unexpected status."""


class TiddlyWikiClient:
    """Async access to tiddlers through the recipe/bag HTTP endpoints."""

    def __init__(
        self,
        base_url: str,
        auth_header: str = "X-Oidc-Username",
        auth_user: str = "mcp-user",
        recipe: str = "default",
        bag: str = "default",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.auth_user = auth_user
        self.recipe = recipe
        self.bag = bag
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={auth_header: auth_user},
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def query_tiddlers(
        self,
        filter_expr: str,
        include_text: bool = False,
        offset: int = 0,
        limit: int | None = None,
    ) -> list[Tiddler]:
        """Run a filter; offset/limit apply before any per-title text fetch."""
        response = await self._client.get(
            f"/recipes/{quote(self.recipe, safe='')}/tiddlers.json",
            params={"filter": filter_expr},
        )
        if response.is_error:
            raise WikiError(f"Failed to query tiddlers: {response.status_code} {response.reason_phrase}")
        tiddlers = [_to_tiddler(item) for item in response.json()]

        end = offset + limit if limit is not None else None
        tiddlers = tiddlers[offset:end]

        if include_text and tiddlers:
            full = await asyncio.gather(*(self.get_tiddler(tiddler.title) for tiddler in tiddlers))
            return [tiddler for tiddler in full if tiddler is not None]
        return tiddlers

    async def list_documents(self, filter_expr: str) -> list[Tiddler]:
        return await self.query_tiddlers(filter_expr, include_text=False)

    async def get_tiddler(self, title: str) -> Tiddler | None:
        response = await self._client.get(self._recipe_path(title))
        if response.status_code == 404:
            return None
        if response.is_error:
            raise WikiError(f'Failed to get tiddler "{title}": {response.status_code} {response.reason_phrase}')
        return _to_tiddler(response.json())

    async def put_tiddler(self, tiddler: Tiddler) -> None:
        payload = tiddler.model_dump(exclude_none=True, exclude=set(SERVER_MANAGED_FIELDS))
        response = await self._client.put(
            self._recipe_path(tiddler.title),
            json=payload,
            headers={"x-requested-with": "TiddlyWiki"},
        )
        if response.is_error:
            raise WikiError(
                f'Failed to put tiddler "{tiddler.title}": {response.status_code} {response.reason_phrase}'
            )
        logger.info("Saved tiddler %s", tiddler.title, extra=log_context(title=tiddler.title))

    async def delete_tiddler(self, title: str) -> None:
        response = await self._client.delete(
            f"/bags/{quote(self.bag, safe='')}/tiddlers/{quote(title, safe='')}",
            headers={"x-requested-with": "TiddlyWiki"},
        )
        if response.is_error:
            raise WikiError(f'Failed to delete tiddler "{title}": {response.status_code} {response.reason_phrase}')
        logger.info("Deleted tiddler %s", title, extra=log_context(title=title))

    def _recipe_path(self, title: str) -> str:
        return f"/recipes/{quote(self.recipe, safe='')}/tiddlers/{quote(title, safe='')}"


def generate_timestamp(moment: datetime | None = None) -> str:
    """Format a UTC datetime as a TiddlyWiki timestamp (YYYYMMDDhhmmssSSS)."""
    moment = moment or utc_now()
    return moment.strftime("%Y%m%d%H%M%S") + f"{moment.microsecond // 1000:03d}"


def new_tiddler(
    title: str,
    text: str,
    creator: str,
    tags: str = "",
    type: str = "text/markdown",
    extra: Mapping[str, Any] | None = None,
) -> Tiddler:
    fields = dict(extra or {})
    fields.update(
        title=title,
        text=text,
        tags=tags,
        type=type,
        created=generate_timestamp(),
        creator=creator,
    )
    return Tiddler(**fields)


def apply_update(current: Tiddler, updates: Mapping[str, Any], modifier: str) -> Tiddler:
    """Merge updates into a tiddler, keeping its identity and creation metadata."""
    merged = {**current.model_dump(exclude_none=True), **updates}
    for field in SERVER_MANAGED_FIELDS:
        merged.pop(field, None)
    merged.update(
        title=current.title,
        created=current.created,
        creator=current.creator,
        modified=generate_timestamp(),
        modifier=modifier,
    )
    return Tiddler(**merged)


def _to_tiddler(payload: Mapping[str, Any]) -> Tiddler:
    # The server nests non-standard fields under "fields"; pull them up.
    data = dict(payload)
    nested = data.pop("fields", None)
    if isinstance(nested, Mapping):
        for key, value in nested.items():
            data.setdefault(key, value)
    return Tiddler(**data)


__all__ = [
    "TiddlyWikiClient",
    "WikiError",
    "generate_timestamp",
    "new_tiddler",
    "apply_update",
]
