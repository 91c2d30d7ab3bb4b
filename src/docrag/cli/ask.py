"""docrag ask: answer a question from the knowledge base.

Retrieves context, calls the generation model with the context embedded in
the system prompt, and prints the answer followed by numbered citations.
With ``--chat`` the command keeps asking for follow-up questions and sends
the conversation so far with each one.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape
from rich.markdown import Markdown

from docrag.cli.context import (
    DEFAULT_DB,
    build_retriever,
    load_cfg,
    open_db,
    open_repo,
    require_api_key,
    require_db,
)
from docrag.config import GenerationCfg
from docrag.rag.answer import answer
from docrag.rag.prompt import Message
from docrag.rag.retriever import Retriever, SearchOptions

console = Console()


def ask_cmd(
    question: Annotated[str, typer.Argument(help="Question to answer.")],
    owner: Annotated[
        str | None,
        typer.Option("--owner", "-o", help="Only use this owner's documents."),
    ] = None,
    top_k: Annotated[
        int | None,
        typer.Option("--top-k", "-k", min=1, help="Chunks to retrieve before the context budget."),
    ] = None,
    chat: Annotated[
        bool,
        typer.Option("--chat", help="Keep asking follow-up questions (empty line exits)."),
    ] = False,
    db: Annotated[
        Path,
        typer.Option("--db", help="Path to .docrag.db."),
    ] = DEFAULT_DB,
) -> None:
    """Answer QUESTION using the documents in the knowledge base."""
    require_db(db, console)
    cfg = load_cfg(console)
    require_api_key(cfg.embedding.model, console)
    require_api_key(cfg.generation.model, console)

    conn = open_db(db)
    repo = open_repo(conn, cfg, console)
    retriever = build_retriever(repo, cfg)
    options = SearchOptions(top_k=top_k, owner_id=owner)

    history: list[Message] = []
    try:
        while question:
            reply = _answer_once(question, retriever, cfg.generation, history, options)
            if not chat:
                break
            history += [
                {"role": "user", "content": question},
                {"role": "assistant", "content": reply},
            ]
            question = typer.prompt("\n?", default="", show_default=False).strip()
    finally:
        conn.close()


def _answer_once(
    question: str,
    retriever: Retriever,
    generation: GenerationCfg,
    history: list[Message],
    options: SearchOptions,
) -> str:
    try:
        with console.status("Thinking…"):
            result = answer(question, retriever, generation, history=history, options=options)
    except Exception as exc:
        console.print(f"[red]Generation failed:[/] {escape(str(exc))}")
        raise typer.Exit(1)

    console.print()
    console.print(Markdown(result.text))
    if result.grounded:
        console.print(f"[dim]{escape(result.citations.strip())}[/]")
    else:
        console.print("[dim]No matching documents.[/]")
    return result.text
