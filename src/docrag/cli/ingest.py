"""docrag ingest: add documents to the knowledge base.

Accepted inputs:
  .pdf                     PDF via pypdf
  .docx                    Word document via python-docx
  .txt .text .md .markdown UTF-8 text
  directory                expanded to supported files (--recursive for subdirs)
  --text "..."             raw text submitted directly (requires --title)

Each document is validated, extracted, chunked and embedded before a single
transaction writes it. A failure on one document is reported and the rest
continue; the command exits 1 if any document failed.
"""

from __future__ import annotations

import fnmatch
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
)
from docrag.cli.errors import describe_error, err_unsupported_path
from docrag.errors import DocragError
from docrag.ingest.chunker import ChunkingOptions
from docrag.ingest.extract import format_file_size, mime_type_for
from docrag.ingest.pipeline import Ingestor
from docrag.tokens import estimate_embedding_cost

console = Console()

_MAX_DEPTH = 10


def ingest_cmd(
    paths: Annotated[
        list[Path] | None,
        typer.Argument(help="Files or directories to ingest."),
    ] = None,
    owner: Annotated[
        str,
        typer.Option("--owner", "-o", help="Owner id the documents belong to."),
    ] = "default",
    title: Annotated[
        str | None,
        typer.Option("--title", "-t", help="Document title (defaults to the file name)."),
    ] = None,
    text: Annotated[
        str | None,
        typer.Option("--text", help="Ingest this text directly instead of a file."),
    ] = None,
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to .docrag.db (created if missing)."),
    ] = DEFAULT_DB,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", help="Validate and chunk without embedding or writing."),
    ] = False,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompts."),
    ] = False,
    recursive: Annotated[
        bool,
        typer.Option("--recursive", help="Recurse into subdirectories (max 10 levels)."),
    ] = False,
    exclude: Annotated[
        list[str] | None,
        typer.Option("--exclude", help="Glob pattern to exclude (repeatable)."),
    ] = None,
) -> None:
    """Ingest documents into the docrag knowledge base."""
    if text is None and not paths:
        console.print("[red]Error:[/] Nothing to ingest. Pass file paths or --text.")
        raise typer.Exit(1)
    if text is not None and not title:
        console.print("[red]Error:[/] --text requires --title.")
        raise typer.Exit(1)

    files = _expand_paths(paths or [], recursive=recursive, exclude=exclude or [])
    if text is None and not files:
        console.print("[yellow]No supported files found to ingest.[/]")
        raise typer.Exit(0)

    cfg = load_cfg(console)
    if not dry_run:
        require_api_key(cfg.embedding.model, console)

    conn = open_db(db)
    repo = open_repo(conn, cfg, console)
    ingestor = Ingestor(
        repo,
        build_embedder(cfg),
        chunking=ChunkingOptions.from_config(cfg.chunking),
        limits=cfg.limits,
    )

    failures = 0
    try:
        if text is not None and title:
            if not _ingest_one(ingestor, title, owner, dry_run=dry_run, yes=yes, text=text):
                failures += 1
        for path in files:
            doc_title = title if title and len(files) == 1 else path.stem
            if not _ingest_one(
                ingestor, doc_title, owner, dry_run=dry_run, yes=yes, path=path
            ):
                failures += 1
    finally:
        conn.close()

    if failures:
        console.print(f"\n[red]{failures} document(s) failed.[/]")
        raise typer.Exit(1)


# ------------------------------------------------------------------
# Per-document pipeline
# ------------------------------------------------------------------


def _ingest_one(
    ingestor: Ingestor,
    title: str,
    owner: str,
    *,
    dry_run: bool,
    yes: bool,
    path: Path | None = None,
    text: str | None = None,
) -> bool:
    """Ingest one file or text blob. Returns False if it failed."""
    console.print(f"\n[bold]→ {escape(str(path) if path is not None else title)}[/]")

    try:
        if path is not None:
            content, metadata = ingestor.prepare_file(path)
            console.print(
                f"  [dim]{metadata['mime_type']} · {format_file_size(metadata['size'])} · "
                f"{metadata['word_count']:,} words[/]"
            )
        else:
            content, metadata = ingestor.prepare_text(text or "")
    except DocragError as exc:
        console.print(f"  {describe_error(exc)}")
        return False

    duplicate = ingestor.find_duplicate(content, owner)
    if duplicate is not None:
        console.print(
            f"  [dim]↷ Unchanged, already stored as {duplicate.document_id} "
            f"({duplicate.chunk_count} chunks)[/]"
        )
        return True

    drafts = ingestor.chunk(content)
    total_tokens = sum(d.token_count for d in drafts)
    console.print(f"  [green]✓[/] {len(drafts)} chunks · {total_tokens:,} tokens")

    if dry_run:
        console.print("  [dim]Dry run, nothing written to DB[/]")
        return True

    cost = estimate_embedding_cost(total_tokens)
    console.print(f"  [dim]Estimate: ~${cost:.4f} embedding cost[/]")
    if not yes and not typer.confirm("  Proceed with embedding?", default=True):
        console.print("  [dim]Skipped.[/]")
        return True

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        transient=True,
        console=console,
    ) as prog:
        task = prog.add_task("Embedding…", total=len(drafts))

        def _on_batch(done: int, total: int) -> None:
            prog.update(task, completed=done, total=total)

        try:
            result = ingestor.store_prepared(
                content, owner, title, metadata, drafts=drafts, on_batch=_on_batch
            )
        except DocragError as exc:
            console.print(f"  {describe_error(exc)}")
            return False

    console.print(
        f"  [green]✓[/] Stored as [bold]{result.document_id}[/] ({result.chunk_count} chunks)"
    )
    return True


# ------------------------------------------------------------------
# Directory expansion
# ------------------------------------------------------------------


def _expand_paths(paths: list[Path], recursive: bool, exclude: list[str]) -> list[Path]:
    """Expand directories to supported files; keep explicit files as given."""
    result: list[Path] = []
    for p in paths:
        if p.is_dir():
            files = _scan_dir(p, recursive=recursive, exclude=exclude, depth=0)
            if not files:
                console.print(
                    f"[yellow]No supported files found in directory:[/] {escape(str(p))}"
                )
            result.extend(files)
        elif mime_type_for(p) is None:
            console.print(err_unsupported_path(str(p)))
        else:
            result.append(p)
    return result


def _scan_dir(directory: Path, recursive: bool, exclude: list[str], depth: int) -> list[Path]:
    if depth > _MAX_DEPTH:
        return []
    files: list[Path] = []
    try:
        entries = sorted(directory.iterdir())
    except PermissionError:
        return []
    for entry in entries:
        if any(fnmatch.fnmatch(entry.name, pat) for pat in exclude):
            continue
        if entry.is_file() and mime_type_for(entry) is not None:
            files.append(entry)
        elif entry.is_dir() and recursive and depth < _MAX_DEPTH:
            files.extend(_scan_dir(entry, recursive=recursive, exclude=exclude, depth=depth + 1))
    return files
