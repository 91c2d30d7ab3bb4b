"""Token counting and truncation shared by the chunker, embedder and assembler.

All sizing decisions go through LiteLLM's provider-aware tokenizer so that
chunk sizes and truncation agree with each other. The tokenizer is a
best-effort utility: when it fails, a 4-characters-per-token heuristic is
used instead of raising.
"""

from __future__ import annotations

import logging
import math

import litellm

logger = logging.getLogger(__name__)

DEFAULT_TOKENIZER_MODEL = "openai/text-embedding-3-small"

# USD per 1M tokens for text-embedding-3-small
_EMBEDDING_PRICE_PER_M = 0.02


def _heuristic_count(text: str) -> int:
    return math.ceil(len(text) / 4)


def _encode(text: str, model: str) -> list[int]:
    encoded = litellm.encode(model=model, text=text)
    # HuggingFace tokenizers return an Encoding object, tiktoken a plain list.
    ids = getattr(encoded, "ids", encoded)
    return list(ids)


def count_tokens(text: str, model: str = DEFAULT_TOKENIZER_MODEL) -> int:
    """Return the number of tokens in *text* (0 for an empty string)."""
    if not text:
        return 0
    try:
        return len(_encode(text, model))
    except Exception as exc:  # tokenizer backends raise assorted errors
        logger.debug("Tokenizer failed for %s (%s); using heuristic", model, exc)
        return _heuristic_count(text)


def truncate_to_token_limit(
    text: str,
    max_tokens: int,
    model: str = DEFAULT_TOKENIZER_MODEL,
) -> str:
    """Return the longest prefix of *text* that fits in *max_tokens* tokens.

    The prefix is decoded back to text; a replacement character left by a
    token boundary inside a multi-byte code point is dropped.
    """
    if max_tokens <= 0 or not text:
        return ""
    try:
        ids = _encode(text, model)
        if len(ids) <= max_tokens:
            return text
        decoded = litellm.decode(model=model, tokens=ids[:max_tokens])
    except Exception as exc:
        logger.debug("Tokenizer failed for %s (%s); using heuristic", model, exc)
        return text[: max_tokens * 4]
    return decoded.rstrip("�")


def estimate_embedding_cost(token_count: int) -> float:
    """Rough USD cost of embedding *token_count* tokens."""
    return token_count / 1_000_000 * _EMBEDDING_PRICE_PER_M
