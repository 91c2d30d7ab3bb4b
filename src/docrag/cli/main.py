"""docrag CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from docrag.cli import context
from docrag.cli.ask import ask_cmd
from docrag.cli.ingest import ingest_cmd
from docrag.cli.init import init_cmd
from docrag.cli.reindex import reindex_cmd
from docrag.cli.remove import remove_cmd
from docrag.cli.search import search_cmd, similar_cmd
from docrag.cli.status import status_cmd


def _installed_version() -> str:
    try:
        return importlib.metadata.version("docrag")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"docrag {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="docrag",
    help=(
        "docrag: turn documents into grounded LLM context.\n\n"
        "  docrag ingest   Extract, chunk and embed documents.\n"
        "  docrag ask      Answer a question from the knowledge base."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log debug output to stderr."),
    ] = False,
) -> None:
    """docrag: turn documents into grounded LLM context."""
    context.verbose = verbose


app.command("init")(init_cmd)
app.command("ingest")(ingest_cmd)
app.command("reindex")(reindex_cmd)
app.command("remove")(remove_cmd)
app.command("search")(search_cmd)
app.command("similar")(similar_cmd)
app.command("ask")(ask_cmd)
app.command("status")(status_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed docrag version."""
    typer.echo(f"docrag {_installed_version()}")


if __name__ == "__main__":
    app()
