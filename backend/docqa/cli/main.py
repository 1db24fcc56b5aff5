"""CLI entrypoint for DocQA."""

from __future__ import annotations

import json
import os
import signal
import sys
import threading
from pathlib import Path
from typing import Optional

import requests
import typer

from docqa.core.config import Settings, get_settings
from docqa.core.errors import DocQAError
from docqa.core.logging import configure_logging
from docqa.db.sqlite import SQLiteDatabase
from docqa.events.publisher import build_status_publisher
from docqa.ingest.coordinator import IngestionCoordinator
from docqa.ingest.embeddings import EmbeddingClient, build_embedding_provider
from docqa.ingest.queue import SQSQueue
from docqa.ingest.worker import IngestionWorker
from docqa.storage.object_store import S3ObjectStore

app = typer.Typer(name="docqa", help="DocQA command-line interface")

DEFAULT_HOST = "http://127.0.0.1:8000"


def _resolve_host(override: Optional[str]) -> str:
    if override:
        return override.rstrip("/")
    env_host = os.environ.get("DOCQA_HOST")
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


def _open_database(settings: Settings) -> SQLiteDatabase:
    db = SQLiteDatabase(settings.db_path)
    db.ensure_schema()
    return db


def build_coordinator(settings: Settings, db: SQLiteDatabase) -> IngestionCoordinator:
    return IngestionCoordinator(
        db=db,
        settings=settings,
        object_store=S3ObjectStore.from_settings(settings),
        embedding_client=EmbeddingClient(build_embedding_provider(settings), batch_size=settings.embedding_batch_size),
        publisher=build_status_publisher(settings.redis_url),
    )


@app.command("init-db")
def init_db() -> None:
    """Create the database schema if it does not exist."""
    settings = get_settings()
    db = _open_database(settings)
    db.close()
    typer.echo(json.dumps({"status": "ok", "db_path": str(settings.db_path)}))


@app.command()
def worker(
    log_level: str = typer.Option("INFO", "--log-level", help="Logging level"),
) -> None:
    """Poll the ingestion queue until interrupted."""
    configure_logging(log_level)
    settings = get_settings()
    db = _open_database(settings)
    ingestion_worker = IngestionWorker(
        queue=SQSQueue.from_settings(settings),
        coordinator=build_coordinator(settings, db),
        max_receive_count=settings.max_receive_count,
    )
    stop = threading.Event()

    def _request_stop(signum, frame) -> None:
        stop.set()

    signal.signal(signal.SIGINT, _request_stop)
    signal.signal(signal.SIGTERM, _request_stop)
    try:
        ingestion_worker.run_forever(stop)
    finally:
        db.close()


@app.command()
def process(
    body: Optional[str] = typer.Argument(None, help='Message body, e.g. {"documentId": ..., "attemptId": ...}'),
    file: Optional[Path] = typer.Option(None, "--file", help="Read the message body from a file ('-' for stdin)"),
) -> None:
    """Run one ingestion message through the pipeline in this process."""
    if file is not None:
        body = sys.stdin.read() if str(file) == "-" else file.expanduser().read_text(encoding="utf-8")
    if not body:
        typer.echo("A message body or --file is required", err=True)
        raise typer.Exit(code=2)
    settings = get_settings()
    db = _open_database(settings)
    try:
        result = build_coordinator(settings, db).handle(body)
    except DocQAError as exc:
        typer.echo(json.dumps({"status": "failed", "code": exc.error_code, "error": str(exc)}), err=True)
        raise typer.Exit(code=1)
    finally:
        db.close()
    typer.echo(
        json.dumps(
            {
                "status": result.outcome.value,
                "document_id": result.document_id,
                "attempt_id": result.attempt_id,
                "chunks": result.chunk_count,
            },
            indent=2,
        )
    )


@app.command()
def ask(
    question: str = typer.Argument(..., help="Question text"),
    user: str = typer.Option(..., "--user", help="Owner whose documents are searched"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Ask a question against the running API."""
    resp = _request("POST", "/ask", host=host, json={"question": question, "user_id": user})
    typer.echo(json.dumps(resp.json(), indent=2))


@app.command()
def status(
    document_id: str = typer.Argument(..., help="Document identifier"),
    user: str = typer.Option(..., "--user", help="Document owner"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Show a document's status and latest ingestion attempt."""
    resp = _request("GET", f"/documents/{document_id}", host=host, params={"user_id": user})
    typer.echo(json.dumps(resp.json(), indent=2))


if __name__ == "__main__":
    app()
