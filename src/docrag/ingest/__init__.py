"""docrag ingest pipeline: extraction, chunking, embedding and storage."""

from docrag.ingest.chunker import (
    ChunkDraft,
    ChunkingOptions,
    TextChunker,
    chunk_text,
    combine_small_chunks,
    validate_chunks,
)

__all__ = [
    "ChunkDraft",
    "ChunkingOptions",
    "TextChunker",
    "chunk_text",
    "combine_small_chunks",
    "validate_chunks",
]
