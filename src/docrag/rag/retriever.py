"""Semantic and hybrid retrieval over the vector store.

Semantic search embeds the query and asks the store for chunks whose cosine
similarity clears the threshold. Hybrid search additionally blends in an
FTS5 keyword rank:

    hybrid_score = semantic_weight * similarity + keyword_weight * keyword_rank

Hybrid search is only available when ``hybrid.enabled`` is set; asking for it
otherwise raises HybridSearchDisabledError instead of silently falling back.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Literal, Union

from docrag.config import HybridCfg, RetrievalCfg
from docrag.db.models import ChunkRecord, HybridMatch, SemanticMatch
from docrag.db.store import HybridWeights, VectorStore
from docrag.errors import (
    DocumentNotFoundError,
    EmptyInputError,
    HybridSearchDisabledError,
)
from docrag.rag.embeddings import EmbeddingClient

logger = logging.getLogger(__name__)

SearchMode = Literal["semantic", "hybrid"]


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


@dataclass
class SearchOptions:
    """Per-call overrides. ``None`` falls back to the configured default."""

    top_k: int | None = None
    similarity_threshold: float | None = None
    owner_id: str | None = None
    document_id: str | None = None


@dataclass
class SemanticResult:
    chunk_id: str
    document_id: str
    content: str
    similarity: float
    chunk_index: int
    total_chunks: int
    start_offset: int
    end_offset: int
    document_title: str
    document_metadata: dict[str, Any] = field(default_factory=dict)
    mode: Literal["semantic"] = "semantic"


@dataclass
class HybridResult:
    """Hybrid hit. ``similarity`` mirrors ``hybrid_score`` so both variants rank alike."""

    chunk_id: str
    document_id: str
    content: str
    similarity: float
    chunk_index: int
    total_chunks: int
    start_offset: int
    end_offset: int
    document_title: str
    semantic_similarity: float
    keyword_rank: float
    hybrid_score: float
    document_metadata: dict[str, Any] = field(default_factory=dict)
    mode: Literal["hybrid"] = "hybrid"


SearchResult = Union[SemanticResult, HybridResult]


@dataclass
class ContextChunk:
    """A neighbouring chunk returned by get_chunk_with_context()."""

    chunk: ChunkRecord
    is_source: bool
    similarity: float


def _semantic_result(match: SemanticMatch) -> SemanticResult:
    c = match.chunk
    return SemanticResult(
        chunk_id=c.id,
        document_id=c.document_id,
        content=c.content,
        similarity=match.similarity,
        chunk_index=c.chunk_index,
        total_chunks=c.total_chunks,
        start_offset=c.start_offset,
        end_offset=c.end_offset,
        document_title=match.document_title,
        document_metadata=match.document_metadata,
    )


def _hybrid_result(match: HybridMatch) -> HybridResult:
    c = match.chunk
    return HybridResult(
        chunk_id=c.id,
        document_id=c.document_id,
        content=c.content,
        similarity=match.hybrid_score,
        chunk_index=c.chunk_index,
        total_chunks=c.total_chunks,
        start_offset=c.start_offset,
        end_offset=c.end_offset,
        document_title=match.document_title,
        semantic_similarity=match.similarity,
        keyword_rank=match.keyword_rank,
        hybrid_score=match.hybrid_score,
        document_metadata=match.document_metadata,
    )


# ---------------------------------------------------------------------------
# Retriever
# ---------------------------------------------------------------------------


class Retriever:
    """Stateless query-side orchestration of embedder and store.

    Args:
        embedder: Client used to embed query text.
        store: Vector store to search.
        retrieval: Defaults for top_k and similarity threshold.
        hybrid: Hybrid switch and score weights.
    """

    def __init__(
        self,
        embedder: EmbeddingClient,
        store: VectorStore,
        retrieval: RetrievalCfg | None = None,
        hybrid: HybridCfg | None = None,
    ) -> None:
        self._embedder = embedder
        self._store = store
        self.retrieval = retrieval or RetrievalCfg()
        self.hybrid = hybrid or HybridCfg()

    def semantic_search(
        self, query: str, options: SearchOptions | None = None
    ) -> list[SemanticResult]:
        """Return chunks ranked by cosine similarity; ``[]`` when none clear the threshold."""
        opts = options or SearchOptions()
        vector = self._embed_query(query)
        matches = self._store.nearest_neighbors(
            vector,
            similarity_threshold=self._threshold(opts),
            top_k=self._top_k(opts),
            owner_id=opts.owner_id,
            document_id=opts.document_id,
        )
        logger.debug("Semantic search returned %d results", len(matches))
        return [_semantic_result(m) for m in matches]

    def hybrid_search(
        self, query: str, options: SearchOptions | None = None
    ) -> list[HybridResult]:
        """Return chunks ranked by the blended semantic + keyword score.

        Raises:
            HybridSearchDisabledError: If hybrid search is not enabled.
        """
        if not self.hybrid.enabled:
            raise HybridSearchDisabledError()
        opts = options or SearchOptions()
        vector = self._embed_query(query)
        matches = self._store.hybrid_neighbors(
            vector,
            query,
            weights=HybridWeights(
                semantic=self.hybrid.semantic_weight,
                keyword=self.hybrid.keyword_weight,
            ),
            similarity_threshold=self._threshold(opts),
            top_k=self._top_k(opts),
            owner_id=opts.owner_id,
            document_id=opts.document_id,
        )
        logger.debug("Hybrid search returned %d results", len(matches))
        return [_hybrid_result(m) for m in matches]

    def search(
        self,
        query: str,
        options: SearchOptions | None = None,
        mode: SearchMode = "semantic",
    ) -> list[SearchResult]:
        if mode == "semantic":
            return list(self.semantic_search(query, options))
        if mode == "hybrid":
            return list(self.hybrid_search(query, options))
        raise ValueError(f"Unknown search mode '{mode}'; expected 'semantic' or 'hybrid'")

    def find_similar_chunks(
        self, chunk_id: str, options: SearchOptions | None = None
    ) -> list[SemanticResult]:
        """Use a stored chunk's embedding as the query; the chunk itself is excluded."""
        opts = options or SearchOptions()
        vector = self._store.get_chunk_embedding(chunk_id)
        if vector is None:
            raise DocumentNotFoundError(chunk_id)
        matches = self._store.nearest_neighbors(
            vector,
            similarity_threshold=self._threshold(opts),
            top_k=self._top_k(opts),
            owner_id=opts.owner_id,
            document_id=opts.document_id,
            exclude_chunk_id=chunk_id,
        )
        return [_semantic_result(m) for m in matches]

    def get_chunk_with_context(self, chunk_id: str, window: int = 2) -> list[ContextChunk]:
        """Return the chunk plus up to *window* neighbours on each side, by index."""
        if window < 0:
            raise ValueError("window must be >= 0")
        related = self._store.get_related_chunks(chunk_id, window)
        if not related:
            raise DocumentNotFoundError(chunk_id)
        return [
            ContextChunk(
                chunk=c,
                is_source=c.id == chunk_id,
                similarity=1.0 if c.id == chunk_id else 0.0,
            )
            for c in related
        ]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _embed_query(self, query: str) -> list[float]:
        if not query or not query.strip():
            raise EmptyInputError("Search query must not be empty")
        return self._embedder.embed(query)

    def _top_k(self, opts: SearchOptions) -> int:
        top_k = opts.top_k if opts.top_k is not None else self.retrieval.top_k
        if top_k < 1:
            raise ValueError(f"top_k must be >= 1, got {top_k}")
        return top_k

    def _threshold(self, opts: SearchOptions) -> float:
        if opts.similarity_threshold is not None:
            threshold = opts.similarity_threshold
        else:
            threshold = self.retrieval.similarity_threshold
        if not 0.0 <= threshold <= 1.0:
            raise ValueError(f"similarity_threshold must be in [0, 1], got {threshold}")
        return threshold
