"""Token-aware text chunker with overlap and natural-boundary seeking.

Windows are sized in tokens but located in characters: each window starts
from a ``chunk_size * 4`` character estimate, is re-measured with the real
tokenizer, then snapped back to the strongest separator it contains.
Consecutive windows overlap by roughly ``chunk_overlap`` tokens, with the
seam also placed on a separator.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from docrag.config import ChunkingCfg
from docrag.errors import EmptyDocumentError
from docrag.tokens import count_tokens

logger = logging.getLogger(__name__)

TokenCounter = Callable[[str], int]

_CHARS_PER_TOKEN = 4
_RESIZE_STEP = 100  # characters added/removed per window refinement step


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class ChunkingOptions:
    """Sizing options for :func:`chunk_text`. All sizes are in tokens."""

    chunk_size: int = 512
    chunk_overlap: int = 50
    separators: Sequence[str] = ("\n\n", "\n", ". ", " ")
    min_chunk_size: int = 100
    max_chunk_size: int = 1_000

    def __post_init__(self) -> None:
        if self.chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")
        if not 0 <= self.chunk_overlap < self.chunk_size:
            raise ValueError("chunk_overlap must be in [0, chunk_size)")
        if self.min_chunk_size < 0:
            raise ValueError("min_chunk_size must be >= 0")
        if self.max_chunk_size < 1:
            raise ValueError("max_chunk_size must be >= 1")
        self.separators = tuple(s for s in self.separators if s)

    @classmethod
    def from_config(cls, cfg: ChunkingCfg) -> ChunkingOptions:
        return cls(
            chunk_size=cfg.chunk_size,
            chunk_overlap=cfg.chunk_overlap,
            separators=cfg.separators,
            min_chunk_size=cfg.min_chunk_size,
            max_chunk_size=cfg.max_chunk_size,
        )

    @property
    def target_size(self) -> int:
        return min(self.chunk_size, self.max_chunk_size)

    @property
    def min_size(self) -> int:
        return min(self.min_chunk_size, self.target_size)


@dataclass
class ChunkDraft:
    """A chunk produced by the chunker, before it has an id or an embedding.

    ``start_offset``/``end_offset`` delimit the untrimmed window in the
    source text; ``content`` is that window with surrounding whitespace
    removed.
    """

    content: str
    chunk_index: int
    start_offset: int
    end_offset: int
    token_count: int
    total_chunks: int = field(default=0)


# ---------------------------------------------------------------------------
# Boundary helpers
# ---------------------------------------------------------------------------


def find_best_split_point(
    text: str,
    start: int,
    end: int,
    separators: Sequence[str],
    *,
    accept: Callable[[int], bool] | None = None,
) -> int:
    """Return the offset just after the last separator in ``text[start:end]``.

    Separators are tried in priority order; the first one present wins.
    *accept*, when given, can veto a candidate (e.g. one that would leave the
    window too small), in which case the next separator is tried. Returns
    *end* when nothing matches.
    """
    for sep in separators:
        idx = text.rfind(sep, start, end)
        if idx == -1:
            continue
        candidate = idx + len(sep)
        if candidate <= start:
            continue
        if accept is None or accept(candidate):
            return candidate
    return end


def _find_overlap_start(
    text: str, overlap_start: int, end: int, separators: Sequence[str]
) -> int:
    """Return the first separator boundary in ``[overlap_start, end)``.

    Unlike the window cut, the seam takes the *earliest* boundary so the
    overlap stays close to the requested size.
    """
    for sep in separators:
        idx = text.find(sep, overlap_start, end - 1)
        if idx != -1:
            return idx + len(sep)
    return overlap_start


def _largest_fitting_end(
    text: str, pos: int, fits: int, overflows: int, size: int, count: TokenCounter
) -> tuple[int, int]:
    """Return the largest end in ``[fits, overflows)`` holding at most *size* tokens.

    ``text[pos:fits]`` must fit and ``text[pos:overflows]`` must not.
    """
    while overflows - fits > 1:
        mid = (fits + overflows) // 2
        if count(text[pos:mid]) <= size:
            fits = mid
        else:
            overflows = mid
    return fits, count(text[pos:fits])


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def chunk_text(
    text: str,
    options: ChunkingOptions | None = None,
    *,
    token_counter: TokenCounter | None = None,
) -> list[ChunkDraft]:
    """Split *text* into ordered, overlapping :class:`ChunkDraft` objects.

    Args:
        text: Cleaned document text.
        options: Sizing options; defaults to :class:`ChunkingOptions()`.
        token_counter: Override for the tokenizer (tests use a fixed ratio).

    Raises:
        EmptyDocumentError: If *text* is empty or whitespace only.
    """
    if not text or not text.strip():
        raise EmptyDocumentError()

    opts = options or ChunkingOptions()
    count = token_counter or count_tokens
    size = opts.target_size
    min_size = opts.min_size
    n = len(text)

    total_tokens = count(text)
    if total_tokens <= size:
        content = text.strip()
        return [
            ChunkDraft(
                content=content,
                chunk_index=0,
                start_offset=0,
                end_offset=n,
                token_count=count(content),
                total_chunks=1,
            )
        ]

    chunks: list[ChunkDraft] = []
    pos = 0

    while pos < n:
        end = min(pos + size * _CHARS_PER_TOKEN, n)
        tokens = count(text[pos:end])

        while tokens > size and end > pos + 1:
            end = max(pos + 1, end - _RESIZE_STEP)
            tokens = count(text[pos:end])

        while tokens < min_size and end < n:
            grown = min(end + _RESIZE_STEP, n)
            grown_tokens = count(text[pos:grown])
            if grown_tokens > size:
                end, tokens = _largest_fitting_end(text, pos, end, grown, size, count)
                break
            end, tokens = grown, grown_tokens

        if end < n:
            window_start = pos
            end = find_best_split_point(
                text,
                pos,
                end,
                opts.separators,
                accept=lambda cut: count(text[window_start:cut]) >= min_size,
            )
            tokens = count(text[pos:end])

        is_last = end >= n
        content = text[pos:end].strip()
        if content and (tokens >= min_size or is_last):
            chunks.append(
                ChunkDraft(
                    content=content,
                    chunk_index=len(chunks),
                    start_offset=pos,
                    end_offset=end,
                    token_count=count(content),
                )
            )
        elif is_last and chunks:
            # Trailing whitespace only: let the previous chunk reach the end.
            chunks[-1].end_offset = n

        if is_last:
            break

        overlap_chars = min(opts.chunk_overlap * _CHARS_PER_TOKEN, end - pos)
        overlap_start = max(pos, end - overlap_chars)
        next_pos = _find_overlap_start(text, overlap_start, end, opts.separators)
        if next_pos <= pos:
            next_pos = end
        pos = next_pos

    for chunk in chunks:
        chunk.total_chunks = len(chunks)

    logger.debug(
        "Chunked %d chars (%d tokens) into %d chunks", n, total_tokens, len(chunks)
    )
    return chunks


def combine_small_chunks(
    chunks: Sequence[ChunkDraft],
    min_size: int = 100,
    *,
    token_counter: TokenCounter | None = None,
) -> list[ChunkDraft]:
    """Merge runs of consecutive chunks until each run holds *min_size* tokens.

    The final run is emitted even when it stays below *min_size*. Merged
    contents are joined with a newline; offsets come from the first and last
    member of each run.
    """
    count = token_counter or count_tokens
    combined: list[ChunkDraft] = []
    buffer: list[ChunkDraft] = []

    for i, chunk in enumerate(chunks):
        buffer.append(chunk)
        buffered_tokens = sum(c.token_count for c in buffer)
        if buffered_tokens >= min_size or i == len(chunks) - 1:
            content = "\n".join(c.content for c in buffer)
            combined.append(
                ChunkDraft(
                    content=content,
                    chunk_index=len(combined),
                    start_offset=buffer[0].start_offset,
                    end_offset=buffer[-1].end_offset,
                    token_count=count(content),
                )
            )
            buffer = []

    for chunk in combined:
        chunk.total_chunks = len(combined)
    return combined


def validate_chunks(chunks: Sequence[ChunkDraft]) -> bool:
    """Return True when *chunks* is non-empty and every index/total/content is well formed."""
    if not chunks:
        return False
    for i, chunk in enumerate(chunks):
        if chunk.chunk_index != i:
            return False
        if chunk.total_chunks != len(chunks):
            return False
        if not chunk.content.strip():
            return False
        if chunk.token_count <= 0:
            return False
    return True


class TextChunker:
    """Configured chunker used by the ingestion pipeline.

    Args:
        options: Sizing options.
        combine_small: Run :func:`combine_small_chunks` after splitting.
        token_counter: Tokenizer override.
    """

    def __init__(
        self,
        options: ChunkingOptions | None = None,
        *,
        combine_small: bool = False,
        token_counter: TokenCounter | None = None,
    ) -> None:
        self.options = options or ChunkingOptions()
        self.combine_small = combine_small
        self._count = token_counter

    def chunk(self, text: str) -> list[ChunkDraft]:
        drafts = chunk_text(text, self.options, token_counter=self._count)
        if self.combine_small and len(drafts) > 1:
            drafts = combine_small_chunks(
                drafts, self.options.min_size, token_counter=self._count
            )
        if not validate_chunks(drafts):
            raise ValueError("Chunker produced malformed chunk metadata")
        return drafts
