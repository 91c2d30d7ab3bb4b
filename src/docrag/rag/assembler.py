"""Context assembler: ranked search results to a budgeted, source-tagged block.

Pipeline:
  1. Search (hybrid when ``retrieval.enable_reranking`` is set, else semantic).
  2. Keep at most ``max_context_chunks`` results, best first.
  3. Greedily append ``[Source: <title> - Chunk <n>]`` blocks joined by a
     horizontal rule, stopping before the first block that would push the
     joined text past ``max_context_length`` characters.
  4. Return the text with a parallel list of sources for citation.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from docrag.config import RetrievalCfg
from docrag.rag.retriever import Retriever, SearchOptions, SearchResult

logger = logging.getLogger(__name__)

CHUNK_SEPARATOR = "\n\n---\n\n"


@dataclass
class Source:
    """Citation for one chunk included in the context."""

    chunk_id: str
    document_id: str
    document_title: str
    content: str
    similarity: float
    chunk_index: int
    total_chunks: int
    start_offset: int
    end_offset: int


@dataclass
class RetrievedContext:
    context_text: str = ""
    sources: list[Source] = field(default_factory=list)
    total_chunks_considered: int = 0

    @property
    def found(self) -> bool:
        return bool(self.sources)


def format_chunk(result: SearchResult) -> str:
    return f"[Source: {result.document_title} - Chunk {result.chunk_index + 1}]\n{result.content}"


def _to_source(result: SearchResult) -> Source:
    return Source(
        chunk_id=result.chunk_id,
        document_id=result.document_id,
        document_title=result.document_title,
        content=result.content,
        similarity=result.similarity,
        chunk_index=result.chunk_index,
        total_chunks=result.total_chunks,
        start_offset=result.start_offset,
        end_offset=result.end_offset,
    )


def assemble_context(
    results: Sequence[SearchResult],
    max_context_chunks: int,
    max_context_length: int,
) -> RetrievedContext:
    """Apply the chunk-count and character budgets to ranked *results*."""
    if not results:
        return RetrievedContext()

    blocks: list[str] = []
    sources: list[Source] = []
    length = 0
    for result in results[:max_context_chunks]:
        block = format_chunk(result)
        added = len(block) + (len(CHUNK_SEPARATOR) if blocks else 0)
        if length + added > max_context_length:
            break
        blocks.append(block)
        sources.append(_to_source(result))
        length += added

    if len(sources) < min(len(results), max_context_chunks):
        logger.debug(
            "Context budget of %d chars kept %d of %d results",
            max_context_length,
            len(sources),
            len(results),
        )

    return RetrievedContext(
        context_text=CHUNK_SEPARATOR.join(blocks),
        sources=sources,
        total_chunks_considered=len(results),
    )


def retrieve_context(
    query: str,
    retriever: Retriever,
    options: SearchOptions | None = None,
    config: RetrievalCfg | None = None,
) -> RetrievedContext:
    """Search for *query* and assemble the grounding context.

    An empty search result is not an error: it yields an empty
    :class:`RetrievedContext` so callers can answer "not found".

    Raises:
        HybridSearchDisabledError: If reranking is on but hybrid search is off.
    """
    cfg = config or retriever.retrieval
    mode = "hybrid" if cfg.enable_reranking else "semantic"
    results = retriever.search(query, options, mode=mode)
    context = assemble_context(results, cfg.max_context_chunks, cfg.max_context_length)
    logger.info(
        "Retrieved %d/%d chunks (%d chars) via %s search",
        len(context.sources),
        context.total_chunks_considered,
        len(context.context_text),
        mode,
    )
    return context


def format_sources(sources: Sequence[Source]) -> str:
    """Render a numbered citation block, or ``""`` when there are no sources."""
    if not sources:
        return ""
    lines = [
        f'{i}. "{s.document_title}" (Chunk {s.chunk_index + 1}, '
        f"Relevance: {s.similarity * 100:.1f}%)"
        for i, s in enumerate(sources, start=1)
    ]
    return "\n\nSources:\n" + "\n".join(lines)
