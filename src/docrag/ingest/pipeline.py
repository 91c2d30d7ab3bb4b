"""Document ingestion: validate, extract, clean, chunk, embed, store.

Each operation works on a single document and is all-or-nothing: input and
parse errors are raised before any work, and embeddings are computed before
the one transaction that writes the document and its chunks.
"""

from __future__ import annotations

import hashlib
import logging
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from docrag.config import LimitsCfg
from docrag.db.models import Document
from docrag.db.repository import Repository
from docrag.errors import (
    ContentTooLongError,
    DocumentNotFoundError,
    EmptyDocumentError,
    UnsupportedFileTypeError,
)
from docrag.ingest.chunker import ChunkDraft, ChunkingOptions, TextChunker
from docrag.ingest.embedding_writer import EmbeddingWriter, ProgressCallback
from docrag.ingest.extract import clean_text, extract, mime_type_for, validate_file
from docrag.rag.embeddings import EmbeddingClient

logger = logging.getLogger(__name__)


@dataclass
class IngestResult:
    document_id: str
    title: str
    chunk_count: int
    token_count: int
    metadata: dict[str, Any] = field(default_factory=dict)
    skipped: bool = False


def compute_hash(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class Ingestor:
    """Runs the write path for one store and one embedding model.

    Args:
        repo: Open Repository.
        embedder: Embedding client matching the repository's dimensions.
        chunking: Chunk sizing options.
        limits: Upload size and content length limits.
    """

    def __init__(
        self,
        repo: Repository,
        embedder: EmbeddingClient,
        chunking: ChunkingOptions | None = None,
        limits: LimitsCfg | None = None,
    ) -> None:
        self._repo = repo
        self._writer = EmbeddingWriter(repo, embedder)
        self.chunking = chunking or ChunkingOptions()
        self.limits = limits or LimitsCfg()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def prepare_file(self, path: Path) -> tuple[str, dict[str, Any]]:
        """Validate and extract *path*. Returns ``(clean_text, metadata)``.

        Raises:
            UnsupportedFileTypeError, FileTooLargeError, ParseError,
            EmptyDocumentError, ContentTooLongError.
        """
        mime_type = mime_type_for(path)
        if mime_type is None:
            raise UnsupportedFileTypeError(path.suffix or "unknown")
        data = path.read_bytes()
        file_type = validate_file(mime_type, len(data), self.limits.max_file_size)
        result = extract(data, file_type)
        text = self._check_text(clean_text(result.text))
        metadata: dict[str, Any] = {
            "filename": path.name,
            "mime_type": mime_type,
            "size": len(data),
            "word_count": result.word_count,
            "char_count": len(text),
        }
        if result.page_count is not None:
            metadata["page_count"] = result.page_count
        return text, metadata

    def prepare_text(
        self, text: str, metadata: dict[str, Any] | None = None
    ) -> tuple[str, dict[str, Any]]:
        """Clean and check submitted text. Returns ``(clean_text, metadata)``.

        Raises:
            EmptyDocumentError, ContentTooLongError.
        """
        cleaned = self._check_text(clean_text(text))
        meta = dict(metadata or {})
        meta.setdefault("mime_type", "text/plain")
        meta.setdefault("word_count", len(cleaned.split()))
        meta.setdefault("char_count", len(cleaned))
        return cleaned, meta

    def chunk(self, text: str, options: ChunkingOptions | None = None) -> list[ChunkDraft]:
        return TextChunker(options or self.chunking).chunk(text)

    def find_duplicate(self, text: str, owner_id: str) -> IngestResult | None:
        """Return a skipped result if *owner_id* already stored this exact clean text."""
        existing = self._repo.find_document_by_hash(owner_id, compute_hash(text))
        return self._skipped(existing) if existing is not None else None

    def ingest_file(
        self,
        path: Path,
        owner_id: str,
        title: str | None = None,
        *,
        on_batch: ProgressCallback | None = None,
    ) -> IngestResult:
        """Ingest one file from disk."""
        text, metadata = self.prepare_file(path)
        return self.store_prepared(
            text, owner_id, title or path.stem, metadata, on_batch=on_batch
        )

    def ingest_text(
        self,
        text: str,
        owner_id: str,
        title: str,
        metadata: dict[str, Any] | None = None,
        *,
        on_batch: ProgressCallback | None = None,
    ) -> IngestResult:
        """Ingest directly submitted text."""
        cleaned, meta = self.prepare_text(text, metadata)
        return self.store_prepared(cleaned, owner_id, title, meta, on_batch=on_batch)

    def store_prepared(
        self,
        text: str,
        owner_id: str,
        title: str,
        metadata: dict[str, Any],
        *,
        drafts: list[ChunkDraft] | None = None,
        on_batch: ProgressCallback | None = None,
    ) -> IngestResult:
        """Embed and store text already returned by ``prepare_file``/``prepare_text``.

        *drafts* reuses chunks computed for a preview; they must come from
        ``chunk(text)``.
        """
        content_hash = compute_hash(text)
        existing = self._repo.find_document_by_hash(owner_id, content_hash)
        if existing is not None:
            logger.info("Skipping '%s': identical to document %s", title, existing.id)
            return self._skipped(existing)

        if drafts is None:
            drafts = self.chunk(text)
        document = Document(
            id=str(uuid.uuid4()),
            owner_id=owner_id,
            title=title,
            content=text,
            content_hash=content_hash,
            embedding_model=self._repo.embedding_model,
            metadata=metadata,
            size_bytes=metadata.get("size") or len(text.encode("utf-8")),
        )
        self._writer.write_new(document, drafts, on_batch)
        logger.info("Ingested '%s' as %s (%d chunks)", title, document.id, len(drafts))
        return IngestResult(
            document_id=document.id,
            title=title,
            chunk_count=len(drafts),
            token_count=sum(d.token_count for d in drafts),
            metadata=metadata,
        )

    def reindex(
        self,
        document_id: str,
        chunking: ChunkingOptions | None = None,
        *,
        on_batch: ProgressCallback | None = None,
    ) -> IngestResult:
        """Re-chunk and re-embed a stored document, replacing its chunks.

        Running it twice yields the same chunk count with no duplicates. If
        embedding or the write fails, the previous chunks remain.
        """
        document = self._repo.get_document(document_id)
        if document is None:
            raise DocumentNotFoundError(document_id)
        drafts = self.chunk(document.content, chunking)
        self._writer.replace(document_id, drafts, on_batch)
        logger.info("Reindexed document %s into %d chunks", document_id, len(drafts))
        return IngestResult(
            document_id=document_id,
            title=document.title,
            chunk_count=len(drafts),
            token_count=sum(d.token_count for d in drafts),
            metadata=document.metadata,
        )

    def delete(self, document_id: str) -> None:
        """Delete a document and all of its chunks."""
        if not self._repo.delete_document(document_id):
            raise DocumentNotFoundError(document_id)
        logger.info("Deleted document %s", document_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _check_text(self, text: str) -> str:
        if not text:
            raise EmptyDocumentError()
        if len(text) > self.limits.max_content_length:
            raise ContentTooLongError(len(text), self.limits.max_content_length)
        return text

    def _skipped(self, existing: Document) -> IngestResult:
        return IngestResult(
            document_id=existing.id,
            title=existing.title,
            chunk_count=self._repo.count_chunks(existing.id),
            token_count=0,
            metadata=existing.metadata,
            skipped=True,
        )
