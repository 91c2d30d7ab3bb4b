"""Shared wiring for CLI commands: config, database, clients."""

from __future__ import annotations

import sqlite3
from pathlib import Path

import typer
from rich.console import Console

from docrag.cli.errors import err_config, err_embedding_model_mismatch, err_no_api_key, err_no_db
from docrag.config import ConfigError, DocragConfig, load_config
from docrag.db.connection import DEFAULT_DB_NAME, Database
from docrag.db.repository import Repository
from docrag.db.schema import initialize
from docrag.logging_config import setup_logging
from docrag.rag.embeddings import EmbeddingClient
from docrag.rag.llm_client import validate_api_key
from docrag.rag.retriever import Retriever

DEFAULT_DB = Path(DEFAULT_DB_NAME)

# Set by the --verbose flag; overrides logging.level from config.
verbose = False


def load_cfg(console: Console) -> DocragConfig:
    """Load config from the working directory or exit with a readable error."""
    try:
        cfg = load_config()
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1) from exc
    setup_logging("DEBUG" if verbose else cfg.logging.level)
    return cfg


def open_db(db_path: Path) -> sqlite3.Connection:
    """Open (or create) the database and bring the schema up to date."""
    conn = Database(db_path).connect()
    initialize(conn)
    return conn


def require_db(db_path: Path, console: Console) -> None:
    if not db_path.exists():
        console.print(err_no_db(str(db_path)))
        raise typer.Exit(1)


def open_repo(conn: sqlite3.Connection, cfg: DocragConfig, console: Console) -> Repository:
    try:
        return Repository(
            conn,
            embedding_model=cfg.embedding.model,
            dimensions=cfg.embedding.dimensions,
        )
    except ValueError as exc:
        conn.close()
        console.print(err_embedding_model_mismatch(str(exc)))
        raise typer.Exit(1) from exc


def require_api_key(model: str, console: Console) -> None:
    try:
        validate_api_key(model)
    except EnvironmentError as exc:
        console.print(err_no_api_key(model))
        raise typer.Exit(1) from exc


def build_embedder(cfg: DocragConfig) -> EmbeddingClient:
    return EmbeddingClient.from_config(cfg.embedding)


def build_retriever(repo: Repository, cfg: DocragConfig) -> Retriever:
    return Retriever(build_embedder(cfg), repo, cfg.retrieval, cfg.hybrid)
