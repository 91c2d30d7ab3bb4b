"""Database initialization."""

from __future__ import annotations

import sqlite3

from docrag.db.migrations import MIGRATIONS, run_migrations
from docrag.db.vectors import ensure_vec_table, model_to_slug

CURRENT_VERSION = MIGRATIONS[-1][0]


def initialize(
    conn: sqlite3.Connection,
    embedding_model: str | None = None,
    dimensions: int | None = None,
) -> None:
    """Bring the schema up to date and, if a model is given, create its vec table."""
    run_migrations(conn)
    if embedding_model is not None and dimensions is not None:
        ensure_vec_table(conn, model_to_slug(embedding_model), dimensions)
