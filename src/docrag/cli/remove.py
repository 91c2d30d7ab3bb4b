"""docrag remove: delete a document and everything derived from it.

Deleting the document row cascades to its chunks, their FTS5 entries and
their embeddings in one statement.

Usage:
  docrag remove --document 3f2a...
  docrag remove --document 3f2a... --yes
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape

from docrag.cli.context import DEFAULT_DB, build_embedder, load_cfg, open_db, open_repo, require_db
from docrag.cli.errors import err_document_not_found
from docrag.errors import DocumentNotFoundError
from docrag.ingest.pipeline import Ingestor

console = Console()


def remove_cmd(
    document: Annotated[
        str,
        typer.Option("--document", "-d", help="Id of the document to remove."),
    ],
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to .docrag.db."),
    ] = DEFAULT_DB,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt."),
    ] = False,
) -> None:
    """Remove a document and all its chunks from the knowledge base."""
    require_db(db, console)
    cfg = load_cfg(console)

    conn = open_db(db)
    repo = open_repo(conn, cfg, console)
    try:
        existing = repo.get_document(document)
        if existing is None:
            console.print(err_document_not_found(document))
            raise typer.Exit(0)

        chunk_count = repo.count_chunks(existing.id)
        console.print(f"\nRemove document: [bold]{escape(existing.title)}[/] ({existing.id})")
        console.print(f"  Owner: {escape(existing.owner_id)}  |  Chunks: {chunk_count}")

        if not yes and not typer.confirm("Confirm removal?", default=False):
            console.print("[dim]Cancelled.[/]")
            raise typer.Exit(0)

        try:
            Ingestor(repo, build_embedder(cfg)).delete(existing.id)
        except DocumentNotFoundError:
            console.print(err_document_not_found(document))
            raise typer.Exit(0)

        console.print(f"\n[green]✓[/] Removed: {escape(existing.title)}")
        console.print(f"  {chunk_count} chunks deleted")
    finally:
        conn.close()
