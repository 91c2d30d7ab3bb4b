"""Exception hierarchy shared by the ingestion and query paths."""

from __future__ import annotations


class DocragError(Exception):
    """Base class for all errors raised by docrag."""


# ---------------------------------------------------------------------------
# Input errors: rejected before any chunking or embedding work
# ---------------------------------------------------------------------------


class InputError(DocragError):
    """Invalid caller input. The message is meant to be shown to the user."""


class EmptyDocumentError(InputError):
    def __init__(self, message: str = "Document contains no text after cleaning.") -> None:
        super().__init__(message)


class EmptyInputError(InputError):
    """Blank text passed to an embedding or search call."""


class UnsupportedFileTypeError(InputError):
    def __init__(self, mime_type: str) -> None:
        self.mime_type = mime_type
        super().__init__(
            f"Unsupported file type '{mime_type}'. "
            "Supported types: PDF, DOCX, plain text and Markdown."
        )


class FileTooLargeError(InputError):
    def __init__(self, size: int, max_size: int) -> None:
        self.size = size
        self.max_size = max_size
        super().__init__(
            f"File size {size:,} bytes is outside the allowed range "
            f"(1 to {max_size:,} bytes)."
        )


class ContentTooLongError(InputError):
    def __init__(self, length: int, max_length: int) -> None:
        self.length = length
        self.max_length = max_length
        super().__init__(
            f"Document text is {length:,} characters; the limit is {max_length:,}."
        )


# ---------------------------------------------------------------------------
# Parse errors
# ---------------------------------------------------------------------------


class ParseError(DocragError):
    """Raised when the extractor cannot produce usable text.

    Attributes:
        file_type: The declared type extraction was attempted for.
    """

    def __init__(self, message: str, file_type: str) -> None:
        self.file_type = file_type
        super().__init__(f"{message} (file type: {file_type})")


# ---------------------------------------------------------------------------
# Embedding errors
# ---------------------------------------------------------------------------


class EmbeddingError(DocragError):
    """Base class for embedding failures."""


class EmbeddingValidationError(EmbeddingError):
    """A returned vector has the wrong length, non-finite values, or is all zeros."""


class EmbeddingProviderError(EmbeddingError):
    """Wraps a provider exception with enough context to decide on retries.

    Attributes:
        operation: ``"embed"`` or ``"embed_batch"``.
        status_code: HTTP status reported by the provider, when known.
        transient: True for timeouts, connection errors, rate limits and 5xx.
    """

    def __init__(
        self,
        operation: str,
        message: str,
        *,
        status_code: int | None = None,
        transient: bool = False,
    ) -> None:
        self.operation = operation
        self.status_code = status_code
        self.transient = transient
        status = f" [status {status_code}]" if status_code is not None else ""
        super().__init__(f"{operation} failed{status}: {message}")


# ---------------------------------------------------------------------------
# Store and retrieval errors
# ---------------------------------------------------------------------------


class VectorStoreError(DocragError):
    """Storage failure. The underlying message is preserved."""


class DocumentNotFoundError(DocragError):
    def __init__(self, document_id: str) -> None:
        self.document_id = document_id
        super().__init__(f"Document '{document_id}' not found.")


class HybridSearchDisabledError(DocragError):
    def __init__(self) -> None:
        super().__init__(
            "Hybrid search is disabled. Set hybrid.enabled: true in docrag.yaml "
            "or use semantic search."
        )
