"""docrag init: create the knowledge base and a project config.

Creates:
  .docrag.db              empty knowledge base with schema
  docrag.yaml             project config with the default sections
  ~/.docrag/config.yaml   global model config (created once, mode 0o600)
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from docrag.config import ensure_global_config
from docrag.db.connection import DEFAULT_DB_NAME, Database
from docrag.db.schema import initialize

console = Console()

_PROJECT_YAML = """\
# docrag project configuration.
# API keys are read from the environment only (e.g. OPENAI_API_KEY).

embedding:
  model: openai/text-embedding-3-small
  dimensions: 1536
  batch_size: 100

chunking:
  chunk_size: 512
  chunk_overlap: 50
  min_chunk_size: 100
  max_chunk_size: 1000

retrieval:
  top_k: 5
  similarity_threshold: 0.7
  max_context_chunks: 3
  max_context_length: 2000
  enable_reranking: false

hybrid:
  enabled: false
  semantic_weight: 0.7
  keyword_weight: 0.3

generation:
  model: openai/gpt-4o-mini
  temperature: 0.7
  max_tokens: 2000
"""


def init_cmd(
    project_dir: Annotated[
        Path,
        typer.Argument(help="Directory to initialize. Defaults to current directory."),
    ] = Path("."),
    global_config: Annotated[
        Path | None,
        typer.Option("--global-config", hidden=True, help="Override ~/.docrag/config.yaml (for testing)."),
    ] = None,
) -> None:
    """Initialize a docrag knowledge base in PROJECT_DIR."""
    project_dir = project_dir.resolve()
    project_dir.mkdir(parents=True, exist_ok=True)

    db_path = project_dir / DEFAULT_DB_NAME
    if db_path.exists():
        console.print(f"[yellow]⚠[/]  {db_path} already exists.")
        if not typer.confirm("Re-initialize? Existing data is preserved.", default=False):
            console.print("[dim]Cancelled.[/]")
            raise typer.Exit(0)

    with Database(db_path) as conn:
        initialize(conn)
    console.print(f"  [green]✓[/] {DEFAULT_DB_NAME}")

    yaml_path = project_dir / "docrag.yaml"
    if yaml_path.exists():
        console.print("  [dim]↷ docrag.yaml exists, left unchanged[/]")
    else:
        yaml_path.write_text(_PROJECT_YAML, encoding="utf-8")
        console.print("  [green]✓[/] docrag.yaml")

    global_path = ensure_global_config(global_config)
    console.print(f"  [green]✓[/] {global_path}")

    console.print(
        "\n[bold green]Ready.[/] Next:\n"
        "  export OPENAI_API_KEY=sk-...\n"
        "  docrag ingest handbook.pdf --owner me"
    )
