"""Domain models for the docrag database layer."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any


@dataclass
class Document:
    id: str
    owner_id: str
    title: str
    content: str
    content_hash: str
    embedding_model: str
    metadata: dict[str, Any] = field(default_factory=dict)
    size_bytes: int = 0
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def metadata_json(self) -> str:
        return json.dumps(self.metadata, sort_keys=True)


@dataclass
class ChunkRecord:
    """A persisted chunk. Its embedding lives in the model's vec table."""

    id: str
    document_id: str
    chunk_index: int
    total_chunks: int
    content: str
    start_offset: int
    end_offset: int
    token_count: int
    created_at: str | None = None


@dataclass
class SemanticMatch:
    """Raw nearest-neighbour row returned by a VectorStore."""

    chunk: ChunkRecord
    document_title: str
    document_metadata: dict[str, Any]
    similarity: float


@dataclass
class HybridMatch:
    """Raw hybrid row: semantic similarity blended with a keyword rank."""

    chunk: ChunkRecord
    document_title: str
    document_metadata: dict[str, Any]
    similarity: float
    keyword_rank: float
    hybrid_score: float


@dataclass
class DocumentStats:
    total_documents: int = 0
    total_chunks: int = 0
    total_bytes: int = 0
    avg_chunks_per_document: float = 0.0
    earliest: str | None = None
    latest: str | None = None
