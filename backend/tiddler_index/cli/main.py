"""CLI entrypoint for the tiddler index."""

from __future__ import annotations

import json
import os
from typing import Optional

import requests
import typer

app = typer.Typer(name="tidx", help="Tiddler index command-line interface")

DEFAULT_HOST = "http://127.0.0.1:8765"


def _resolve_host(override: Optional[str]) -> str:
    if override:
        return override.rstrip('/')
    env_host = os.environ.get("TIDX_HOST")
    if env_host:
        return env_host.rstrip('/')
    return DEFAULT_HOST


def _request(method: str, path: str, host: Optional[str] = None, **kwargs) -> requests.Response:
    base = _resolve_host(host)
    url = f"{base}{path}"
    resp = requests.request(method, url, timeout=300, **kwargs)
    if not resp.ok:
        try:
            detail = resp.json()
        except ValueError:
            detail = resp.text
        typer.echo(f"Request failed ({resp.status_code}): {json.dumps(detail, indent=2)}", err=True)
        raise typer.Exit(code=1)
    return resp


@app.command()
def search(
    semantic: Optional[str] = typer.Option(None, "--semantic", "-s", help="Natural-language query"),
    filter_expr: Optional[str] = typer.Option(None, "--filter", "-f", help="TiddlyWiki filter expression"),
    limit: Optional[int] = typer.Option(None, "--limit", help="Maximum number of results"),
    offset: int = typer.Option(0, "--offset", help="Results to skip"),
    include_text: bool = typer.Option(False, "--include-text", help="Fetch full tiddler text"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Search by filter, by meaning, or both."""
    if semantic is None and filter_expr is None:
        typer.echo("Provide --semantic, --filter, or both.", err=True)
        raise typer.Exit(code=2)
    payload: dict[str, object] = {"offset": offset, "include_text": include_text}
    if semantic is not None:
        payload["semantic"] = semantic
    if filter_expr is not None:
        payload["filter"] = filter_expr
    if limit is not None:
        payload["limit"] = limit
    resp = _request("POST", "/search", host=host, json=payload)
    typer.echo(json.dumps(resp.json(), indent=2))


@app.command()
def sync(
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Run a reconciliation cycle now and print its report."""
    resp = _request("POST", "/sync", host=host)
    typer.echo(json.dumps(resp.json(), indent=2))


@app.command()
def status(
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Show sync worker health."""
    resp = _request("GET", "/sync/status", host=host)
    typer.echo(json.dumps(resp.json(), indent=2))


@app.command()
def serve(
    bind: str = typer.Option("127.0.0.1", "--bind", help="Interface to listen on"),
    port: int = typer.Option(8765, "--port", help="Port to listen on"),
) -> None:
    """Run the HTTP server."""
    import uvicorn

    uvicorn.run("tiddler_index.app:app", host=bind, port=port, log_config=None)


if __name__ == "__main__":
    app()
