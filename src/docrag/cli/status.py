"""docrag status: knowledge base overview.

Shows database and model settings, document and chunk totals, and a table
of stored documents (optionally for one owner).
"""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from docrag.cli.context import DEFAULT_DB, load_cfg, open_db, open_repo
from docrag.config import DocragConfig
from docrag.db.repository import Repository
from docrag.db.vectors import list_vec_tables
from docrag.ingest.extract import format_file_size

console = Console()


def status_cmd(
    owner: Annotated[
        str | None,
        typer.Option("--owner", "-o", help="Only show this owner's documents."),
    ] = None,
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to .docrag.db."),
    ] = DEFAULT_DB,
) -> None:
    """Show knowledge base status."""
    cfg = load_cfg(console)
    _show_project_panel(db, cfg)

    if not db.exists():
        console.print(
            Panel(
                "[yellow]No database found.[/]\n"
                "  Run:  docrag init",
                title="[bold]Knowledge Base[/]",
                expand=False,
            )
        )
        return

    conn = open_db(db)
    try:
        repo = open_repo(conn, cfg, console)
        _show_knowledge_panel(conn, repo, owner)
        _show_documents_table(repo, owner)
    finally:
        conn.close()


# ---------------------------------------------------------------------------
# Panel renderers
# ---------------------------------------------------------------------------


def _show_project_panel(db: Path, cfg: DocragConfig) -> None:
    db_info = f"{db}"
    if db.exists():
        db_info = f"{db} ({format_file_size(db.stat().st_size)})"

    hybrid = "on" if cfg.hybrid.enabled else "off"
    lines = [
        f"Database:    {db_info}",
        f"Embedding:   {cfg.embedding.model} ({cfg.embedding.dimensions} dims)",
        f"Generation:  {cfg.generation.model}",
        f"Chunking:    {cfg.chunking.chunk_size} tokens, overlap {cfg.chunking.chunk_overlap}",
        f"Retrieval:   top {cfg.retrieval.top_k}, threshold {cfg.retrieval.similarity_threshold}, "
        f"hybrid {hybrid}",
    ]
    console.print(Panel("\n".join(lines), title="[bold]Project[/]", expand=False))


def _show_knowledge_panel(conn: sqlite3.Connection, repo: Repository, owner: str | None) -> None:
    stats = repo.document_stats(owner)
    vec_tables = [f"{name} ({dims} dims)" for name, dims in list_vec_tables(conn)]

    lines = [
        f"Documents: [bold]{stats.total_documents}[/]  |  "
        f"Chunks: [bold]{stats.total_chunks:,}[/]  |  "
        f"Size: [bold]{format_file_size(stats.total_bytes)}[/]",
        f"Avg chunks/document: {stats.avg_chunks_per_document:.1f}",
        f"Vec tables: {', '.join(vec_tables) or '(none)'}",
    ]
    if stats.latest:
        lines.append(f"Last ingest: [dim]{stats.latest}[/]")
    else:
        lines.append("[dim]No documents ingested yet.[/]")

    title = "[bold]Knowledge Base[/]" + (f" [dim]({escape(owner)})[/]" if owner else "")
    console.print(Panel("\n".join(lines), title=title, expand=False))


def _show_documents_table(repo: Repository, owner: str | None) -> None:
    documents = repo.list_documents(owner)
    if not documents:
        return

    table = Table(show_header=True, box=None, padding=(0, 1))
    table.add_column("Id", style="dim")
    table.add_column("Title", style="bold")
    table.add_column("Owner")
    table.add_column("Chunks", justify="right")
    table.add_column("Size", justify="right")
    table.add_column("Created", style="dim")

    for doc in documents:
        table.add_row(
            doc.id,
            escape(doc.title),
            escape(doc.owner_id),
            str(repo.count_chunks(doc.id)),
            format_file_size(doc.size_bytes),
            doc.created_at or "",
        )
    console.print(table)
