"""Vector store contract consumed by the ingestion pipeline and the retriever."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass

from docrag.db.models import ChunkRecord, HybridMatch, SemanticMatch
from docrag.ingest.chunker import ChunkDraft

Vector = Sequence[float]


@dataclass(frozen=True)
class HybridWeights:
    semantic: float = 0.7
    keyword: float = 0.3


class VectorStore(ABC):
    """Persists chunk vectors and answers nearest-neighbour queries.

    Similarity is cosine similarity expressed as ``1 - cosine_distance``.
    Every search keeps only rows with ``similarity > similarity_threshold``
    (or ``hybrid_score >`` for hybrid), orders them best first and returns
    at most ``top_k``. ``owner_id`` restricts results to documents owned by
    that user; ``None`` means unfiltered.
    """

    @abstractmethod
    def upsert_chunks(
        self, document_id: str, chunks: Sequence[tuple[ChunkDraft, Vector]]
    ) -> list[str]:
        """Replace the document's chunk set with *chunks*, all or nothing.

        Returns the new chunk ids in chunk order.
        """

    @abstractmethod
    def delete_chunks(self, document_id: str) -> int:
        """Remove every chunk of *document_id*; return how many were removed."""

    @abstractmethod
    def get_chunks(self, document_id: str) -> list[ChunkRecord]:
        """Return the document's chunks ordered by ``chunk_index``."""

    @abstractmethod
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
        """Return chunks ranked by cosine similarity to *query_vector*."""

    @abstractmethod
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
        """Return chunks ranked by ``weights.semantic * similarity + weights.keyword * keyword_rank``."""

    @abstractmethod
    def get_chunk(self, chunk_id: str) -> ChunkRecord | None: ...

    @abstractmethod
    def get_chunk_embedding(self, chunk_id: str) -> list[float] | None: ...

    @abstractmethod
    def get_related_chunks(self, chunk_id: str, window: int = 2) -> list[ChunkRecord]:
        """Return chunks of the same document within *window* positions, by index."""
