"""docrag search / similar: query the knowledge base without generation.

  docrag search "refund policy"                 semantic ranking
  docrag search "refund policy" --type hybrid   semantic + keyword ranking
  docrag search "refund policy" --type rag      assembled LLM context + sources
  docrag similar CHUNK_ID --window 1            chunks like CHUNK_ID, and its neighbours
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from docrag.cli.context import (
    DEFAULT_DB,
    build_retriever,
    load_cfg,
    open_db,
    open_repo,
    require_api_key,
    require_db,
)
from docrag.cli.errors import describe_error, err_document_not_found, err_hybrid_disabled
from docrag.errors import DocragError, DocumentNotFoundError, HybridSearchDisabledError
from docrag.rag.assembler import format_sources, retrieve_context
from docrag.rag.retriever import SearchOptions, SearchResult

console = Console()

_PREVIEW_CHARS = 120


class SearchType(str, Enum):
    semantic = "semantic"
    hybrid = "hybrid"
    rag = "rag"


def search_cmd(
    query: Annotated[str, typer.Argument(help="Search text.")],
    search_type: Annotated[
        SearchType,
        typer.Option("--type", help="semantic, hybrid, or rag (assembled context)."),
    ] = SearchType.semantic,
    top_k: Annotated[
        int | None,
        typer.Option("--top-k", "-k", min=1, help="Maximum results."),
    ] = None,
    threshold: Annotated[
        float | None,
        typer.Option("--threshold", min=0.0, max=1.0, help="Minimum similarity."),
    ] = None,
    owner: Annotated[
        str | None,
        typer.Option("--owner", "-o", help="Only search this owner's documents."),
    ] = None,
    document: Annotated[
        str | None,
        typer.Option("--document", "-d", help="Only search this document."),
    ] = None,
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to .docrag.db."),
    ] = DEFAULT_DB,
) -> None:
    """Search the knowledge base."""
    require_db(db, console)
    cfg = load_cfg(console)
    require_api_key(cfg.embedding.model, console)

    conn = open_db(db)
    repo = open_repo(conn, cfg, console)
    retriever = build_retriever(repo, cfg)
    options = SearchOptions(
        top_k=top_k,
        similarity_threshold=threshold,
        owner_id=owner,
        document_id=document,
    )

    try:
        if search_type is SearchType.rag:
            context = retrieve_context(query, retriever, options, cfg.retrieval)
            if not context.found:
                console.print("[yellow]No relevant context found.[/]")
                return
            console.print(
                Panel(Text(context.context_text), title="[bold]Context[/]", expand=False)
            )
            console.print(format_sources(context.sources).strip(), markup=False, highlight=False)
            return

        results = retriever.search(query, options, mode=search_type.value)
    except HybridSearchDisabledError:
        console.print(err_hybrid_disabled())
        raise typer.Exit(1)
    except DocragError as exc:
        console.print(describe_error(exc))
        raise typer.Exit(1)
    finally:
        conn.close()

    if not results:
        console.print("[yellow]No results above the similarity threshold.[/]")
        return
    console.print(_results_table(results, hybrid=search_type is SearchType.hybrid))


def similar_cmd(
    chunk_id: Annotated[str, typer.Argument(help="Chunk id to use as the query.")],
    window: Annotated[
        int,
        typer.Option("--window", "-w", min=0, help="Neighbouring chunks to show on each side."),
    ] = 0,
    top_k: Annotated[
        int | None,
        typer.Option("--top-k", "-k", min=1, help="Maximum results."),
    ] = None,
    threshold: Annotated[
        float | None,
        typer.Option("--threshold", min=0.0, max=1.0, help="Minimum similarity."),
    ] = None,
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to .docrag.db."),
    ] = DEFAULT_DB,
) -> None:
    """Find chunks similar to a stored chunk."""
    require_db(db, console)
    cfg = load_cfg(console)

    conn = open_db(db)
    repo = open_repo(conn, cfg, console)
    retriever = build_retriever(repo, cfg)
    try:
        if window:
            for item in retriever.get_chunk_with_context(chunk_id, window):
                marker = "[bold green]▶[/]" if item.is_source else " "
                preview = escape(_preview(item.chunk.content))
                console.print(f"{marker} #{item.chunk.chunk_index + 1} {preview}")
            console.print()
        results = retriever.find_similar_chunks(
            chunk_id, SearchOptions(top_k=top_k, similarity_threshold=threshold)
        )
    except DocumentNotFoundError:
        console.print(err_document_not_found(chunk_id))
        raise typer.Exit(1)
    except DocragError as exc:
        console.print(describe_error(exc))
        raise typer.Exit(1)
    finally:
        conn.close()

    if not results:
        console.print("[yellow]No similar chunks above the threshold.[/]")
        return
    console.print(_results_table(results, hybrid=False))


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def _preview(content: str) -> str:
    flat = " ".join(content.split())
    return flat if len(flat) <= _PREVIEW_CHARS else flat[: _PREVIEW_CHARS - 1] + "…"


def _results_table(results: list[SearchResult], hybrid: bool) -> Table:
    table = Table(show_lines=False)
    table.add_column("#", style="dim", justify="right")
    table.add_column("Score", justify="right")
    if hybrid:
        table.add_column("Sem", justify="right", style="dim")
        table.add_column("Kw", justify="right", style="dim")
    table.add_column("Document")
    table.add_column("Chunk", justify="right", style="dim")
    table.add_column("Text")

    for i, r in enumerate(results, start=1):
        row = [str(i), f"{r.similarity:.3f}"]
        if hybrid and r.mode == "hybrid":
            row += [f"{r.semantic_similarity:.3f}", f"{r.keyword_rank:.3f}"]
        row += [
            escape(r.document_title),
            f"{r.chunk_index + 1}/{r.total_chunks}",
            escape(_preview(r.content)),
        ]
        table.add_row(*row)
    return table
