"""Embedding writer: embed chunk drafts, then persist them in one transaction.

Every embedding is computed before the first row is written, so a provider
failure or an invalid vector leaves the store exactly as it was.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence

from docrag.db.models import Document
from docrag.db.repository import Repository
from docrag.ingest.chunker import ChunkDraft
from docrag.rag.embeddings import EmbeddingClient

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


class EmbeddingWriter:
    """Write chunk drafts to the store together with their embeddings.

    Args:
        repo: Open Repository for the configured embedding model.
        embedder: Client producing vectors of the repository's dimensionality.
    """

    def __init__(self, repo: Repository, embedder: EmbeddingClient) -> None:
        if embedder.dimensions != repo.dimensions:
            raise ValueError(
                f"Embedder produces {embedder.dimensions}-dim vectors but "
                f"{repo.vec_table} stores {repo.dimensions}"
            )
        self._repo = repo
        self._embedder = embedder

    def embed(
        self,
        drafts: Sequence[ChunkDraft],
        on_batch: ProgressCallback | None = None,
    ) -> list[tuple[ChunkDraft, list[float]]]:
        """Embed *drafts* in chunk order and pair each with its vector."""
        started = time.monotonic()
        vectors = self._embedder.embed_batch([d.content for d in drafts], on_batch=on_batch)
        logger.info(
            "Embedded %d chunks in %.2fs", len(vectors), time.monotonic() - started
        )
        return list(zip(drafts, vectors))

    def write_new(
        self,
        document: Document,
        drafts: Sequence[ChunkDraft],
        on_batch: ProgressCallback | None = None,
    ) -> list[str]:
        """Store a new document and its chunks. Returns the chunk ids."""
        items = self.embed(drafts, on_batch)
        return self._repo.create_document(document, items)

    def replace(
        self,
        document_id: str,
        drafts: Sequence[ChunkDraft],
        on_batch: ProgressCallback | None = None,
    ) -> list[str]:
        """Swap the document's chunk set for *drafts*. Returns the new chunk ids."""
        items = self.embed(drafts, on_batch)
        return self._repo.upsert_chunks(document_id, items)
