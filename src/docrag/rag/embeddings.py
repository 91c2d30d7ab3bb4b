"""Embedding client: batching, retry and vector validation.

The client is constructed explicitly and passed to the ingestion pipeline
and the retriever. Provider access goes through an injectable *embed_fn*
(``litellm.embedding`` by default) so tests can substitute a fake.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Sequence
from typing import Any

import litellm

from docrag.config import EmbeddingCfg
from docrag.errors import (
    EmbeddingProviderError,
    EmbeddingValidationError,
    EmptyInputError,
)
from docrag.retry import call_with_retry

logger = logging.getLogger(__name__)

litellm.suppress_debug_info = True

Vector = list[float]
EmbedFn = Callable[..., Any]

_TRANSIENT_STATUS: frozenset[int] = frozenset({408, 409, 429})
_TRANSIENT_TYPES: tuple[type[BaseException], ...] = (
    TimeoutError,
    ConnectionError,
    litellm.Timeout,
    litellm.APIConnectionError,
    litellm.RateLimitError,
    litellm.InternalServerError,
    litellm.ServiceUnavailableError,
)


# ---------------------------------------------------------------------------
# Vector helpers
# ---------------------------------------------------------------------------


def validate_embedding(vector: Sequence[float], dimensions: int) -> None:
    """Raise EmbeddingValidationError unless *vector* is a usable embedding.

    A usable embedding has exactly *dimensions* finite components and at
    least one of them is non-zero.
    """
    if vector is None or len(vector) == 0:
        raise EmbeddingValidationError("Embedding must be a non-empty list of floats")
    if len(vector) != dimensions:
        raise EmbeddingValidationError(
            f"Invalid embedding dimension: expected {dimensions}, got {len(vector)}"
        )
    if not all(math.isfinite(v) for v in vector):
        raise EmbeddingValidationError("Embedding contains NaN or infinite values")
    if not any(vector):
        raise EmbeddingValidationError("Embedding is an all-zero vector")


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity in [-1, 1]; 0.0 when either vector has zero magnitude."""
    if len(a) != len(b):
        raise ValueError("Embeddings must have the same dimensions")
    dot = sum(x * y for x, y in zip(a, b))
    mag_a = math.sqrt(sum(x * x for x in a))
    mag_b = math.sqrt(sum(y * y for y in b))
    if mag_a == 0 or mag_b == 0:
        return 0.0
    return dot / (mag_a * mag_b)


def normalize_embedding(vector: Sequence[float]) -> Vector:
    """Scale *vector* to unit length."""
    magnitude = math.sqrt(sum(v * v for v in vector))
    if magnitude == 0:
        raise EmbeddingValidationError("Cannot normalize a zero-magnitude embedding")
    return [v / magnitude for v in vector]


# ---------------------------------------------------------------------------
# Provider error handling
# ---------------------------------------------------------------------------


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, EmbeddingProviderError):
        return exc.transient
    return False


def _wrap_provider_error(operation: str, exc: Exception) -> EmbeddingProviderError:
    status = getattr(exc, "status_code", None)
    if not isinstance(status, int):
        status = None
    transient = isinstance(exc, _TRANSIENT_TYPES) or (
        status is not None and (status in _TRANSIENT_STATUS or status >= 500)
    )
    return EmbeddingProviderError(
        operation, str(exc) or type(exc).__name__, status_code=status, transient=transient
    )


def _field(item: Any, name: str) -> Any:
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class EmbeddingClient:
    """Turns text into fixed-length vectors.

    Args:
        model: LiteLLM embedding model string.
        dimensions: Expected vector length; every vector is validated against it.
        batch_size: Maximum inputs per provider call.
        max_input_chars: Each input is cut to this many characters.
        timeout: Seconds allowed per provider call.
        max_retries: Retries per call (or per sub-batch) on transient errors.
        retry_delay: First backoff delay in seconds.
        embed_fn: Provider function with the ``litellm.embedding`` signature.
    """

    def __init__(
        self,
        model: str,
        dimensions: int,
        *,
        batch_size: int = 100,
        max_input_chars: int = 8_000,
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        embed_fn: EmbedFn | None = None,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.model = model
        self.dimensions = dimensions
        self.batch_size = batch_size
        self.max_input_chars = max_input_chars
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._embed_fn = embed_fn or litellm.embedding

    @classmethod
    def from_config(cls, cfg: EmbeddingCfg, *, embed_fn: EmbedFn | None = None) -> EmbeddingClient:
        return cls(
            cfg.model,
            cfg.dimensions,
            batch_size=cfg.batch_size,
            max_input_chars=cfg.max_input_chars,
            timeout=cfg.timeout,
            max_retries=cfg.max_retries,
            retry_delay=cfg.retry_delay,
            embed_fn=embed_fn,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def embed(self, text: str) -> Vector:
        """Embed a single text (a query or one chunk)."""
        if not text or not text.strip():
            raise EmptyInputError("Cannot generate an embedding for empty text")
        vectors = self._call_with_retry([text[: self.max_input_chars]], "embed")
        return vectors[0]

    def embed_batch(
        self,
        texts: Sequence[str],
        *,
        on_batch: Callable[[int, int], None] | None = None,
    ) -> list[Vector]:
        """Embed *texts*, returning one vector per input in input order.

        Inputs are sent in sub-batches of at most ``batch_size``; each
        sub-batch is retried on its own so finished sub-batches are never
        re-embedded.

        Args:
            texts: Non-empty list of non-blank strings.
            on_batch: Optional callback ``(done, total)`` after each sub-batch.
        """
        if not texts:
            raise EmptyInputError("Cannot generate embeddings for an empty list")
        for i, text in enumerate(texts):
            if not text or not text.strip():
                raise EmptyInputError(f"Input {i} is empty; cannot generate an embedding")

        truncated = [t[: self.max_input_chars] for t in texts]
        vectors: list[Vector] = []
        for start in range(0, len(truncated), self.batch_size):
            batch = truncated[start : start + self.batch_size]
            vectors.extend(self._call_with_retry(batch, "embed_batch"))
            if on_batch is not None:
                on_batch(len(vectors), len(truncated))

        logger.debug("Embedded %d texts with %s", len(vectors), self.model)
        return vectors

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _call_with_retry(self, inputs: list[str], operation: str) -> list[Vector]:
        return call_with_retry(
            lambda: self._request(inputs, operation),
            should_retry=_is_transient,
            max_retries=self.max_retries,
            base_delay=self.retry_delay,
            label=f"{operation} ({self.model})",
        )

    def _request(self, inputs: list[str], operation: str) -> list[Vector]:
        """One provider round trip: call, re-order by index, validate."""
        try:
            response = self._embed_fn(
                model=self.model,
                input=inputs,
                timeout=self.timeout,
            )
        except Exception as exc:
            raise _wrap_provider_error(operation, exc) from exc

        data = list(_field(response, "data") or [])
        if len(data) != len(inputs):
            raise EmbeddingProviderError(
                operation,
                f"provider returned {len(data)} embeddings for {len(inputs)} inputs",
            )

        indexed = [
            (_field(item, "index") if _field(item, "index") is not None else pos, item)
            for pos, item in enumerate(data)
        ]
        indexed.sort(key=lambda pair: pair[0])

        vectors: list[Vector] = []
        for _, item in indexed:
            vector = [float(v) for v in _field(item, "embedding") or []]
            validate_embedding(vector, self.dimensions)
            vectors.append(vector)
        return vectors
