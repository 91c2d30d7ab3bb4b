"""Per-model embedding table management.

Each embedding model gets its own ``vec_chunks_<slug>`` table so vectors of
different dimensionality never mix. Vectors are stored as sqlite-vec float32
blobs and compared with ``vec_distance_cosine``; rows cascade away with their
chunk.
"""

from __future__ import annotations

import re
import sqlite3


def model_to_slug(model: str) -> str:
    """Convert a provider/model string to a valid table name suffix.

    Examples:
        "openai/text-embedding-3-small" -> "openai_text_embedding_3_small"
    """
    return re.sub(r"[^a-z0-9]", "_", model.lower())


def vec_table_name(model_slug: str) -> str:
    """Return the full vec table name for a model slug."""
    return f"vec_chunks_{model_slug}"


def _meta_table_exists(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS vec_tables (
            name        TEXT PRIMARY KEY,
            dimensions  INTEGER NOT NULL
        )
        """
    )


def ensure_vec_table(conn: sqlite3.Connection, model_slug: str, dimensions: int) -> str:
    """Create ``vec_chunks_{model_slug}`` if it doesn't already exist.

    Args:
        conn: Active database connection (sqlite-vec must be loaded).
        model_slug: Sanitized model identifier (use model_to_slug() to generate).
        dimensions: Embedding vector length (e.g. 1536 for text-embedding-3-small).

    Returns:
        The table name.

    Raises:
        ValueError: On an unsafe slug, a non-positive dimension, or when the
            table already exists with a different dimension.
    """
    if not re.fullmatch(r"[a-z0-9_]+", model_slug):
        raise ValueError(
            f"Invalid model_slug '{model_slug}'. Use model_to_slug() to sanitize."
        )
    if dimensions < 1:
        raise ValueError(f"dimensions must be >= 1, got {dimensions}")

    table = vec_table_name(model_slug)
    stored = vec_table_dimensions(conn, table)
    if stored is not None:
        if stored != dimensions:
            raise ValueError(
                f"Table '{table}' stores {stored}-dimensional vectors; "
                f"the configured model produces {dimensions}."
            )
        return table

    conn.execute(
        f"""
        CREATE TABLE IF NOT EXISTS {table} (
            chunk_seq   INTEGER PRIMARY KEY REFERENCES chunks(seq) ON DELETE CASCADE,
            embedding   BLOB NOT NULL
        )
        """
    )
    conn.execute(
        "INSERT INTO vec_tables (name, dimensions) VALUES (?, ?)", (table, dimensions)
    )
    conn.commit()
    return table


def vec_table_dimensions(conn: sqlite3.Connection, table: str) -> int | None:
    """Return the registered dimensionality of *table*, or None if unknown."""
    _meta_table_exists(conn)
    row = conn.execute(
        "SELECT dimensions FROM vec_tables WHERE name = ?", (table,)
    ).fetchone()
    return row[0] if row else None


def list_vec_tables(conn: sqlite3.Connection) -> list[tuple[str, int]]:
    """Return ``(table, dimensions)`` for every registered vec table, by name."""
    _meta_table_exists(conn)
    rows = conn.execute("SELECT name, dimensions FROM vec_tables ORDER BY name").fetchall()
    return [(r[0], r[1]) for r in rows]
