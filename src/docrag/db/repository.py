"""SQLite + sqlite-vec implementation of the VectorStore contract.

Single interface for documents, chunks, embeddings, FTS5 keyword ranking and
owner-filtered similarity search. The connection is owned by the caller and
must be closed after use.
"""

from __future__ import annotations

import json
import logging
import re
import sqlite3
import uuid
from collections.abc import Sequence
from typing import Any

from docrag.db.models import (
    ChunkRecord,
    Document,
    DocumentStats,
    HybridMatch,
    SemanticMatch,
)
from docrag.db.store import HybridWeights, Vector, VectorStore
from docrag.db.vectors import ensure_vec_table, model_to_slug
from docrag.errors import DocumentNotFoundError, VectorStoreError
from docrag.ingest.chunker import ChunkDraft

logger = logging.getLogger(__name__)

_WRITE_BATCH_SIZE = 50

_CHUNK_COLUMNS = (
    "c.seq, c.id, c.document_id, c.chunk_index, c.total_chunks, c.content, "
    "c.start_offset, c.end_offset, c.token_count, c.created_at"
)

_DOCUMENT_COLUMNS = (
    "id, owner_id, title, content, metadata, content_hash, size_bytes, "
    "embedding_model, created_at, updated_at"
)


def fts_match_expression(query: str) -> str:
    """Turn free text into an FTS5 MATCH expression of OR-ed quoted terms.

    FTS5 rejects punctuation as syntax, so only word characters survive.
    Returns an empty string when *query* has no words.
    """
    terms = re.findall(r"\w+", query.lower())
    unique = list(dict.fromkeys(terms))
    return " OR ".join(f'"{t}"' for t in unique)


class Repository(VectorStore):
    """Data access layer for documents, chunks and their embeddings.

    Args:
        conn: Open connection with sqlite-vec loaded and the schema initialised
            (see docrag.db.schema.initialize).
        embedding_model: Model whose vec table this repository reads and writes.
        dimensions: Vector length for that model.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        *,
        embedding_model: str = "openai/text-embedding-3-small",
        dimensions: int = 1536,
    ) -> None:
        self._conn = conn
        self.embedding_model = embedding_model
        self.dimensions = dimensions
        self.vec_table = ensure_vec_table(conn, model_to_slug(embedding_model), dimensions)

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def add_document(self, document: Document) -> None:
        """Insert a document row without chunks."""
        try:
            with self._conn:
                self._insert_document(document)
        except sqlite3.Error as exc:
            raise VectorStoreError(f"Failed to add document: {exc}") from exc

    def create_document(
        self, document: Document, chunks: Sequence[tuple[ChunkDraft, Vector]]
    ) -> list[str]:
        """Insert *document* and its chunks in one transaction.

        Either both the document and every chunk are written, or nothing is.
        """
        self._check_items(chunks)
        try:
            with self._conn:
                self._insert_document(document)
                ids = self._insert_chunks(document.id, chunks)
        except sqlite3.Error as exc:
            raise VectorStoreError(f"Failed to store document: {exc}") from exc
        logger.info("Stored document %s with %d chunks", document.id, len(ids))
        return ids

    def get_document(self, document_id: str) -> Document | None:
        row = self._conn.execute(
            f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE id = ?", (document_id,)
        ).fetchone()
        return _row_to_document(row) if row else None

    def find_document_by_hash(self, owner_id: str, content_hash: str) -> Document | None:
        """Return an existing document of *owner_id* with identical content."""
        row = self._conn.execute(
            f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE owner_id = ? AND content_hash = ?",
            (owner_id, content_hash),
        ).fetchone()
        return _row_to_document(row) if row else None

    def list_documents(self, owner_id: str | None = None) -> list[Document]:
        """Return documents (optionally of one owner), oldest first."""
        rows = self._conn.execute(
            f"""
            SELECT {_DOCUMENT_COLUMNS} FROM documents
            WHERE (:owner IS NULL OR owner_id = :owner)
            ORDER BY created_at, id
            """,
            {"owner": owner_id},
        ).fetchall()
        return [_row_to_document(r) for r in rows]

    def delete_document(self, document_id: str) -> bool:
        """Delete a document; chunks, FTS rows and embeddings cascade.

        Returns False when no such document exists.
        """
        try:
            with self._conn:
                cur = self._conn.execute(
                    "DELETE FROM documents WHERE id = ?", (document_id,)
                )
        except sqlite3.Error as exc:
            raise VectorStoreError(f"Failed to delete document: {exc}") from exc
        return cur.rowcount > 0

    def document_stats(self, owner_id: str | None = None) -> DocumentStats:
        """Aggregate counts for the status view."""
        params = {"owner": owner_id}
        doc_row = self._conn.execute(
            """
            SELECT COUNT(*) AS n, COALESCE(SUM(size_bytes), 0) AS bytes,
                   MIN(created_at) AS earliest, MAX(created_at) AS latest
            FROM documents WHERE (:owner IS NULL OR owner_id = :owner)
            """,
            params,
        ).fetchone()
        chunk_count = self._conn.execute(
            """
            SELECT COUNT(*) FROM chunks c JOIN documents d ON d.id = c.document_id
            WHERE (:owner IS NULL OR d.owner_id = :owner)
            """,
            params,
        ).fetchone()[0]
        n_docs = doc_row["n"]
        return DocumentStats(
            total_documents=n_docs,
            total_chunks=chunk_count,
            total_bytes=doc_row["bytes"],
            avg_chunks_per_document=round(chunk_count / n_docs, 2) if n_docs else 0.0,
            earliest=doc_row["earliest"],
            latest=doc_row["latest"],
        )

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    def upsert_chunks(
        self, document_id: str, chunks: Sequence[tuple[ChunkDraft, Vector]]
    ) -> list[str]:
        """Replace every chunk of *document_id* with *chunks* in one transaction.

        On any failure the previous chunk set is left untouched.
        """
        if self.get_document(document_id) is None:
            raise DocumentNotFoundError(document_id)
        self._check_items(chunks)
        try:
            with self._conn:
                removed = self._conn.execute(
                    "DELETE FROM chunks WHERE document_id = ?", (document_id,)
                ).rowcount
                ids = self._insert_chunks(document_id, chunks)
                self._conn.execute(
                    "UPDATE documents SET updated_at = datetime('now') WHERE id = ?",
                    (document_id,),
                )
        except sqlite3.Error as exc:
            raise VectorStoreError(f"Failed to replace chunks: {exc}") from exc
        logger.info(
            "Replaced %d chunks of document %s with %d", removed, document_id, len(ids)
        )
        return ids

    def delete_chunks(self, document_id: str) -> int:
        try:
            with self._conn:
                cur = self._conn.execute(
                    "DELETE FROM chunks WHERE document_id = ?", (document_id,)
                )
        except sqlite3.Error as exc:
            raise VectorStoreError(f"Failed to delete chunks: {exc}") from exc
        return cur.rowcount

    def get_chunks(self, document_id: str) -> list[ChunkRecord]:
        rows = self._conn.execute(
            f"SELECT {_CHUNK_COLUMNS} FROM chunks c WHERE c.document_id = ? ORDER BY c.chunk_index",
            (document_id,),
        ).fetchall()
        return [_row_to_chunk(r) for r in rows]

    def get_chunk(self, chunk_id: str) -> ChunkRecord | None:
        row = self._conn.execute(
            f"SELECT {_CHUNK_COLUMNS} FROM chunks c WHERE c.id = ?", (chunk_id,)
        ).fetchone()
        return _row_to_chunk(row) if row else None

    def count_chunks(self, document_id: str) -> int:
        return self._conn.execute(
            "SELECT COUNT(*) FROM chunks WHERE document_id = ?", (document_id,)
        ).fetchone()[0]

    def get_related_chunks(self, chunk_id: str, window: int = 2) -> list[ChunkRecord]:
        rows = self._conn.execute(
            f"""
            SELECT {_CHUNK_COLUMNS}
            FROM chunks s
            JOIN chunks c ON c.document_id = s.document_id
            WHERE s.id = ?
              AND c.chunk_index BETWEEN s.chunk_index - ? AND s.chunk_index + ?
            ORDER BY c.chunk_index
            """,
            (chunk_id, window, window),
        ).fetchall()
        return [_row_to_chunk(r) for r in rows]

    # ------------------------------------------------------------------
    # Embeddings
    # ------------------------------------------------------------------

    def get_chunk_embedding(self, chunk_id: str) -> list[float] | None:
        row = self._conn.execute(
            f"""
            SELECT vec_to_json(v.embedding) AS embedding
            FROM {self.vec_table} v JOIN chunks c ON c.seq = v.chunk_seq
            WHERE c.id = ?
            """,
            (chunk_id,),
        ).fetchone()
        return json.loads(row["embedding"]) if row else None

    def nearest_neighbors(
        self,
        query_vector: Vector,
        *,
        similarity_threshold: float,
        top_k: int,
        owner_id: str | None = None,
        document_id: str | None = None,
        exclude_chunk_id: str | None = None,
    ) -> list[SemanticMatch]:
        """Exact cosine search over the model's vec table."""
        params = self._search_params(
            query_vector, owner_id, document_id, exclude_chunk_id
        )
        params.update({"threshold": similarity_threshold, "top_k": top_k})
        sql = f"""
            SELECT * FROM ({self._semantic_sql()})
            WHERE similarity > :threshold
            ORDER BY similarity DESC, document_id, chunk_index
            LIMIT :top_k
        """
        try:
            rows = self._conn.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise VectorStoreError(f"Similarity search failed: {exc}") from exc
        return [
            SemanticMatch(
                chunk=_row_to_chunk(r),
                document_title=r["document_title"],
                document_metadata=_load_metadata(r["document_metadata"]),
                similarity=float(r["similarity"]),
            )
            for r in rows
        ]

    def hybrid_neighbors(
        self,
        query_vector: Vector,
        query_text: str,
        *,
        weights: HybridWeights,
        similarity_threshold: float,
        top_k: int,
        owner_id: str | None = None,
        document_id: str | None = None,
    ) -> list[HybridMatch]:
        """Blend cosine similarity with an FTS5 BM25 keyword rank.

        The keyword rank maps BM25 (``s = -bm25() > 0``) into [0, 1) as
        ``s / (1 + s)``; chunks without a lexical hit get 0.
        """
        params = self._search_params(query_vector, owner_id, document_id, None)
        params.update(
            {
                "threshold": similarity_threshold,
                "top_k": top_k,
                "ws": weights.semantic,
                "wk": weights.keyword,
            }
        )
        match = fts_match_expression(query_text)
        if match:
            params["match"] = match
            kw_sql = (
                "SELECT rowid AS seq, -bm25(chunks_fts) AS s "
                "FROM chunks_fts WHERE chunks_fts MATCH :match"
            )
        else:
            kw_sql = "SELECT NULL AS seq, NULL AS s WHERE 0"

        sql = f"""
            WITH sem AS ({self._semantic_sql()}),
            kw AS ({kw_sql}),
            scored AS (
                SELECT sem.*,
                       COALESCE(MAX(kw.s, 0.0) / (1.0 + MAX(kw.s, 0.0)), 0.0) AS keyword_rank
                FROM sem LEFT JOIN kw ON kw.seq = sem.seq
            )
            SELECT scored.*, :ws * similarity + :wk * keyword_rank AS hybrid_score
            FROM scored
            WHERE :ws * similarity + :wk * keyword_rank > :threshold
            ORDER BY hybrid_score DESC, document_id, chunk_index
            LIMIT :top_k
        """
        try:
            rows = self._conn.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise VectorStoreError(f"Hybrid search failed: {exc}") from exc
        return [
            HybridMatch(
                chunk=_row_to_chunk(r),
                document_title=r["document_title"],
                document_metadata=_load_metadata(r["document_metadata"]),
                similarity=float(r["similarity"]),
                keyword_rank=float(r["keyword_rank"]),
                hybrid_score=float(r["hybrid_score"]),
            )
            for r in rows
        ]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _semantic_sql(self) -> str:
        return f"""
            SELECT {_CHUNK_COLUMNS},
                   d.title AS document_title,
                   d.metadata AS document_metadata,
                   1.0 - vec_distance_cosine(v.embedding, vec_f32(:query)) AS similarity
            FROM {self.vec_table} v
            JOIN chunks c ON c.seq = v.chunk_seq
            JOIN documents d ON d.id = c.document_id
            WHERE (:owner IS NULL OR d.owner_id = :owner)
              AND (:document IS NULL OR c.document_id = :document)
              AND (:exclude IS NULL OR c.id != :exclude)
        """

    def _search_params(
        self,
        query_vector: Vector,
        owner_id: str | None,
        document_id: str | None,
        exclude_chunk_id: str | None,
    ) -> dict[str, Any]:
        if len(query_vector) != self.dimensions:
            raise VectorStoreError(
                f"Query vector has {len(query_vector)} dimensions; "
                f"{self.vec_table} stores {self.dimensions}."
            )
        return {
            "query": json.dumps(list(query_vector)),
            "owner": owner_id,
            "document": document_id,
            "exclude": exclude_chunk_id,
        }

    def _check_items(self, chunks: Sequence[tuple[ChunkDraft, Vector]]) -> None:
        """Reject malformed chunk sets before a transaction is opened."""
        for i, (draft, vector) in enumerate(chunks):
            if draft.chunk_index != i or draft.total_chunks != len(chunks):
                raise VectorStoreError(
                    f"Chunk {i} has index {draft.chunk_index}/{draft.total_chunks}; "
                    f"expected {i}/{len(chunks)}"
                )
            if len(vector) != self.dimensions:
                raise VectorStoreError(
                    f"Chunk {i} embedding has {len(vector)} dimensions, "
                    f"expected {self.dimensions}"
                )

    def _insert_document(self, document: Document) -> None:
        self._conn.execute(
            """
            INSERT INTO documents
                (id, owner_id, title, content, metadata, content_hash,
                 size_bytes, embedding_model)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                document.id,
                document.owner_id,
                document.title,
                document.content,
                document.metadata_json,
                document.content_hash,
                document.size_bytes,
                document.embedding_model,
            ),
        )

    def _insert_chunks(
        self, document_id: str, chunks: Sequence[tuple[ChunkDraft, Vector]]
    ) -> list[str]:
        """Batch-insert chunks and their vectors. Caller owns the transaction."""
        ids = [str(uuid.uuid4()) for _ in chunks]
        for start in range(0, len(chunks), _WRITE_BATCH_SIZE):
            batch = list(zip(ids[start:], chunks[start : start + _WRITE_BATCH_SIZE]))
            self._conn.executemany(
                """
                INSERT INTO chunks
                    (id, document_id, chunk_index, total_chunks, content,
                     start_offset, end_offset, token_count)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        chunk_id,
                        document_id,
                        draft.chunk_index,
                        draft.total_chunks,
                        draft.content,
                        draft.start_offset,
                        draft.end_offset,
                        draft.token_count,
                    )
                    for chunk_id, (draft, _) in batch
                ],
            )
            self._conn.executemany(
                f"""
                INSERT INTO {self.vec_table} (chunk_seq, embedding)
                SELECT seq, vec_f32(?) FROM chunks WHERE id = ?
                """,
                [(json.dumps(list(vector)), chunk_id) for chunk_id, (_, vector) in batch],
            )
        return ids


# ------------------------------------------------------------------
# Row -> model helpers
# ------------------------------------------------------------------


def _load_metadata(raw: str | None) -> dict[str, Any]:
    return json.loads(raw) if raw else {}


def _row_to_document(row: sqlite3.Row) -> Document:
    return Document(
        id=row["id"],
        owner_id=row["owner_id"],
        title=row["title"],
        content=row["content"],
        metadata=_load_metadata(row["metadata"]),
        content_hash=row["content_hash"],
        size_bytes=row["size_bytes"],
        embedding_model=row["embedding_model"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_chunk(row: sqlite3.Row) -> ChunkRecord:
    return ChunkRecord(
        id=row["id"],
        document_id=row["document_id"],
        chunk_index=row["chunk_index"],
        total_chunks=row["total_chunks"],
        content=row["content"],
        start_offset=row["start_offset"],
        end_offset=row["end_offset"],
        token_count=row["token_count"],
        created_at=row["created_at"],
    )
