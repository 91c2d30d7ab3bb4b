"""Raw text extraction, cleaning and upload validation.

``extract(data, file_type)`` turns file bytes into plain text for the four
supported types: PDF via pypdf, DOCX via python-docx, plain text and Markdown
as UTF-8. Extraction that yields no usable text raises ParseError carrying
the declared file type.
"""

from __future__ import annotations

import io
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

import docx
import pypdf

from docrag.errors import FileTooLargeError, ParseError, UnsupportedFileTypeError

FileType = Literal["pdf", "docx", "text", "markdown"]

SUPPORTED_MIME_TYPES: dict[str, FileType] = {
    "application/pdf": "pdf",
    "text/plain": "text",
    "text/markdown": "markdown",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "docx",
}

_EXTENSION_MIME: dict[str, str] = {
    ".pdf": "application/pdf",
    ".txt": "text/plain",
    ".text": "text/plain",
    ".md": "text/markdown",
    ".markdown": "text/markdown",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}

_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


@dataclass
class ExtractResult:
    text: str
    word_count: int
    char_count: int
    page_count: int | None = None


# ---------------------------------------------------------------------------
# Type detection + validation
# ---------------------------------------------------------------------------


def mime_type_for(filename: str | Path) -> str | None:
    """Return the MIME type implied by *filename*'s extension, if supported."""
    return _EXTENSION_MIME.get(Path(filename).suffix.lower())


def detect_file_type(filename: str | Path) -> FileType | None:
    mime = mime_type_for(filename)
    return SUPPORTED_MIME_TYPES.get(mime) if mime else None


def validate_file(mime_type: str, size: int, max_size: int) -> FileType:
    """Check an upload before any parsing work.

    Raises:
        UnsupportedFileTypeError: For MIME types other than PDF, DOCX, text, Markdown.
        FileTooLargeError: When *size* is 0 or above *max_size*.
    """
    file_type = SUPPORTED_MIME_TYPES.get(mime_type)
    if file_type is None:
        raise UnsupportedFileTypeError(mime_type)
    if not 0 < size <= max_size:
        raise FileTooLargeError(size, max_size)
    return file_type


def format_file_size(size: int) -> str:
    """Human-readable byte count, e.g. ``1.5 MB``."""
    if size == 0:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    value = float(size)
    unit = 0
    while value >= 1024 and unit < len(units) - 1:
        value /= 1024
        unit += 1
    return f"{value:.2f}".rstrip("0").rstrip(".") + f" {units[unit]}"


# ---------------------------------------------------------------------------
# Cleaning
# ---------------------------------------------------------------------------


def clean_text(text: str) -> str:
    """Collapse space runs, cap blank lines at one, drop control chars, trim."""
    text = re.sub(r" +", " ", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    text = _CONTROL_CHARS_RE.sub("", text)
    return text.strip()


def word_count(text: str) -> int:
    return len(text.split())


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------


def _extract_pdf(data: bytes) -> tuple[str, int]:
    reader = pypdf.PdfReader(io.BytesIO(data))
    parts: list[str] = []
    for page in reader.pages:
        page_text = (page.extract_text() or "").strip()
        if page_text:
            parts.append(page_text)
    return "\n\n".join(parts), len(reader.pages)


def _extract_docx(data: bytes) -> str:
    document = docx.Document(io.BytesIO(data))
    parts = [p.text for p in document.paragraphs if p.text.strip()]
    for table in document.tables:
        for row in table.rows:
            cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
            if cells:
                parts.append(" | ".join(cells))
    return "\n".join(parts)


_LABELS: dict[str, str] = {
    "pdf": "PDF",
    "docx": "DOCX",
    "text": "text file",
    "markdown": "Markdown file",
}


def extract(data: bytes, file_type: str) -> ExtractResult:
    """Extract plain text from *data* of the declared *file_type*.

    Raises:
        ParseError: On an unknown type, an unreadable file, or no usable text.
    """
    if file_type not in _LABELS:
        raise ParseError(f"Unsupported file type: {file_type}", file_type)

    label = _LABELS[file_type]
    page_count: int | None = None
    try:
        if file_type == "pdf":
            text, page_count = _extract_pdf(data)
        elif file_type == "docx":
            text = _extract_docx(data)
        else:
            text = data.decode("utf-8")
    except Exception as exc:  # parser libraries raise many unrelated types
        raise ParseError(f"Failed to parse {label}: {exc}", file_type) from exc

    if not text.strip():
        raise ParseError(
            f"{label} appears to be empty or contains no extractable text", file_type
        )

    return ExtractResult(
        text=text,
        word_count=word_count(text),
        char_count=len(text),
        page_count=page_count,
    )
