"""docrag reindex: re-chunk and re-embed stored documents.

Use after changing chunking settings or switching embedding models. The new
chunk set replaces the old one in a single transaction; if embedding fails
the document keeps its previous chunks.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn

from docrag.cli.context import (
    DEFAULT_DB,
    build_embedder,
    load_cfg,
    open_db,
    open_repo,
    require_api_key,
    require_db,
)
from docrag.cli.errors import describe_error
from docrag.errors import DocragError
from docrag.ingest.chunker import ChunkingOptions
from docrag.ingest.pipeline import Ingestor

console = Console()


def reindex_cmd(
    document: Annotated[
        list[str] | None,
        typer.Option("--document", "-d", help="Document id to reindex (repeatable)."),
    ] = None,
    all_documents: Annotated[
        bool,
        typer.Option("--all", help="Reindex every document."),
    ] = False,
    owner: Annotated[
        str | None,
        typer.Option("--owner", "-o", help="With --all: only this owner's documents."),
    ] = None,
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to .docrag.db."),
    ] = DEFAULT_DB,
) -> None:
    """Rebuild the chunks and embeddings of stored documents."""
    if not document and not all_documents:
        console.print("[red]Error:[/] Pass --document ID or --all.")
        raise typer.Exit(1)

    require_db(db, console)
    cfg = load_cfg(console)
    require_api_key(cfg.embedding.model, console)

    conn = open_db(db)
    repo = open_repo(conn, cfg, console)
    ingestor = Ingestor(
        repo,
        build_embedder(cfg),
        chunking=ChunkingOptions.from_config(cfg.chunking),
        limits=cfg.limits,
    )

    ids = list(document or [])
    if all_documents:
        ids.extend(d.id for d in repo.list_documents(owner) if d.id not in ids)

    failures = 0
    try:
        for document_id in ids:
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                TaskProgressColumn(),
                transient=True,
                console=console,
            ) as prog:
                task = prog.add_task(f"Reindexing {document_id}…", total=None)

                def _on_batch(done: int, total: int) -> None:
                    prog.update(task, completed=done, total=total)

                try:
                    result = ingestor.reindex(document_id, on_batch=_on_batch)
                except DocragError as exc:
                    console.print(f"{describe_error(exc)}")
                    failures += 1
                    continue
            console.print(
                f"[green]✓[/] {escape(result.title)} ({document_id}): {result.chunk_count} chunks"
            )
    finally:
        conn.close()

    if failures:
        raise typer.Exit(1)
