"""CLI entrypoint for filerag."""

from __future__ import annotations

import json
import os
import signal
import threading
from pathlib import Path
from typing import Optional

import requests
import typer

app = typer.Typer(name="filerag", help="filerag command-line interface")
documents_app = typer.Typer(name="documents", help="Inspect and prune the index")
app.add_typer(documents_app, name="documents")

DEFAULT_HOST = "http://127.0.0.1:8000"


def _resolve_host(override: Optional[str]) -> str:
    if override:
        return override.rstrip("/")
    env_host = os.environ.get("FRAG_HOST")
    if env_host:
        return env_host.rstrip("/")
    return DEFAULT_HOST


def _request(method: str, path: str, host: Optional[str] = None, **kwargs) -> requests.Response:
    base = _resolve_host(host)
    url = f"{base}{path}"
    resp = requests.request(method, url, timeout=60, **kwargs)
    if not resp.ok:
        try:
            detail = resp.json()
        except ValueError:
            detail = resp.text
        typer.echo(f"Request failed ({resp.status_code}): {detail}", err=True)
        raise typer.Exit(code=1)
    return resp


@app.command()
def query(
    q: str = typer.Argument(..., help="Question to answer"),
    top_k: Optional[int] = typer.Option(None, "--top-k", help="Number of chunks to retrieve"),
    temperature: Optional[float] = typer.Option(None, "--temperature", help="Sampling temperature"),
    max_tokens: Optional[int] = typer.Option(None, "--max-tokens", help="Answer length limit"),
    path: list[str] = typer.Option([], "--path", help="Restrict to files under this path prefix"),
    conversation: Optional[str] = typer.Option(None, "--conversation", help="Conversation id to echo back"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Ask a question against the indexed documents."""
    payload: dict[str, object] = {"query": q}
    if top_k is not None:
        payload["top_k"] = top_k
    if temperature is not None:
        payload["temperature"] = temperature
    if max_tokens is not None:
        payload["max_tokens"] = max_tokens
    if path:
        payload["filters"] = {"file_paths": path}
    if conversation:
        payload["conversation_id"] = conversation
    resp = _request("POST", "/query", host=host, json=payload)
    typer.echo(json.dumps(resp.json(), indent=2))


@app.command()
def ingest(
    all: bool = typer.Option(False, "--all", help="Reconcile the whole watch directory"),
    path: list[Path] = typer.Option([], "--path", help="Index this file"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Trigger the ingest pipeline."""
    if not all and not path:
        typer.echo("Pass --path or --all", err=True)
        raise typer.Exit(code=2)
    body: dict[str, object] = {"all": all}
    if path:
        body["paths"] = [str(item.expanduser()) for item in path]
    resp = _request("POST", "/ingest", host=host, json=body)
    typer.echo(json.dumps(resp.json(), indent=2))


@documents_app.command("list")
def list_documents(
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """List indexed documents."""
    resp = _request("GET", "/documents", host=host)
    typer.echo(json.dumps(resp.json(), indent=2))


@documents_app.command("remove")
def remove_document(
    path: Path = typer.Argument(..., help="Path of the file to drop from the index"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Remove a file's chunks from the index."""
    resp = _request("DELETE", "/documents", host=host, params={"path": str(path.expanduser())})
    typer.echo(json.dumps(resp.json(), indent=2))


@app.command()
def watch() -> None:
    """Run the change watcher in the foreground using local configuration."""
    from filerag.core.config import get_settings
    from filerag.core.logging import configure_logging
    from filerag.ingest.embeddings import create_embedder
    from filerag.ingest.pipeline import IngestPipeline
    from filerag.ingest.watcher import ChangeWatcher
    from filerag.retrieval.vector_store import create_vector_store

    configure_logging()
    settings = get_settings()
    pipeline = IngestPipeline(settings, create_embedder(settings), create_vector_store(settings))
    watcher = ChangeWatcher(pipeline, settings)

    done = threading.Event()
    signal.signal(signal.SIGINT, lambda *_: done.set())
    signal.signal(signal.SIGTERM, lambda *_: done.set())
    typer.echo(f"Watching {settings.watch_path} (Ctrl+C to stop)")
    watcher.start()
    while not done.wait(0.5):
        pass
    watcher.stop()


if __name__ == "__main__":
    app()
