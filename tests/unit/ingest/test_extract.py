"""Tests for text extraction, cleaning and upload validation."""

from __future__ import annotations

import io
from unittest.mock import MagicMock, patch

import docx
import pytest

from docrag.errors import FileTooLargeError, ParseError, UnsupportedFileTypeError
from docrag.ingest.extract import (
    SUPPORTED_MIME_TYPES,
    clean_text,
    detect_file_type,
    extract,
    format_file_size,
    mime_type_for,
    validate_file,
    word_count,
)

_DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _mock_reader(page_texts: list[str]):
    """Return a mock PdfReader with pages that yield the given texts."""
    pages = []
    for text in page_texts:
        page = MagicMock()
        page.extract_text.return_value = text
        pages.append(page)
    reader = MagicMock()
    reader.pages = pages
    return reader


def _docx_bytes(paragraphs: list[str], table: list[list[str]] | None = None) -> bytes:
    document = docx.Document()
    for p in paragraphs:
        document.add_paragraph(p)
    if table:
        t = document.add_table(rows=len(table), cols=len(table[0]))
        for r, row in enumerate(table):
            for c, value in enumerate(row):
                t.cell(r, c).text = value
    buf = io.BytesIO()
    document.save(buf)
    return buf.getvalue()


# ------------------------------------------------------------------
# Type detection + validation
# ------------------------------------------------------------------


@pytest.mark.parametrize("name,mime", [
    ("report.pdf", "application/pdf"),
    ("NOTES.TXT", "text/plain"),
    ("readme.md", "text/markdown"),
    ("guide.markdown", "text/markdown"),
    ("letter.docx", _DOCX_MIME),
    ("image.png", None),
    ("noext", None),
])
def test_mime_type_for(name, mime):
    assert mime_type_for(name) == mime


def test_detect_file_type():
    assert detect_file_type("a.pdf") == "pdf"
    assert detect_file_type("a.docx") == "docx"
    assert detect_file_type("a.md") == "markdown"
    assert detect_file_type("a.exe") is None


def test_supported_mime_types_cover_four_kinds():
    assert set(SUPPORTED_MIME_TYPES.values()) == {"pdf", "docx", "text", "markdown"}


def test_validate_file_ok():
    assert validate_file("application/pdf", 1024, 5 * 1024 * 1024) == "pdf"


def test_validate_file_unsupported():
    with pytest.raises(UnsupportedFileTypeError, match="image/png"):
        validate_file("image/png", 10, 100)


@pytest.mark.parametrize("size", [0, 101])
def test_validate_file_size_bounds(size):
    with pytest.raises(FileTooLargeError):
        validate_file("text/plain", size, 100)


@pytest.mark.parametrize("size,expected", [
    (0, "0 Bytes"),
    (512, "512 Bytes"),
    (1536, "1.5 KB"),
    (5 * 1024 * 1024, "5 MB"),
])
def test_format_file_size(size, expected):
    assert format_file_size(size) == expected


# ------------------------------------------------------------------
# Cleaning
# ------------------------------------------------------------------


def test_clean_text_collapses_spaces_and_blank_lines():
    raw = "  Hello    world\n\n\n\nNext\x00 para\x07  "
    assert clean_text(raw) == "Hello world\n\nNext para"


def test_clean_text_keeps_single_newlines_and_tabs():
    assert clean_text("a\nb\tc") == "a\nb\tc"


def test_word_count():
    assert word_count("one two\nthree") == 3


# ------------------------------------------------------------------
# Extraction
# ------------------------------------------------------------------


def test_extract_text_utf8():
    result = extract("Grüße aus Köln".encode("utf-8"), "text")
    assert result.text == "Grüße aus Köln"
    assert result.word_count == 3
    assert result.char_count == len("Grüße aus Köln")
    assert result.page_count is None


def test_extract_markdown():
    result = extract(b"# Title\n\nBody", "markdown")
    assert result.text.startswith("# Title")


def test_extract_invalid_utf8_raises_parse_error():
    with pytest.raises(ParseError) as exc_info:
        extract(b"\xff\xfe\xfa", "text")
    assert exc_info.value.file_type == "text"


def test_extract_blank_text_raises_parse_error():
    with pytest.raises(ParseError, match="empty"):
        extract(b"   \n ", "markdown")


def test_extract_unknown_type():
    with pytest.raises(ParseError, match="Unsupported"):
        extract(b"data", "xlsx")


def test_extract_pdf_joins_non_empty_pages():
    with patch("docrag.ingest.extract.pypdf") as mock_pypdf:
        mock_pypdf.PdfReader.return_value = _mock_reader(["Page one.", "  ", "Page three."])
        result = extract(b"%PDF-fake", "pdf")
    assert result.text == "Page one.\n\nPage three."
    assert result.page_count == 3


def test_extract_pdf_without_text_layer():
    with patch("docrag.ingest.extract.pypdf") as mock_pypdf:
        mock_pypdf.PdfReader.return_value = _mock_reader(["", None])
        with pytest.raises(ParseError) as exc_info:
            extract(b"%PDF-fake", "pdf")
    assert exc_info.value.file_type == "pdf"


def test_extract_corrupt_pdf():
    with pytest.raises(ParseError, match="Failed to parse PDF"):
        extract(b"definitely not a pdf", "pdf")


def test_extract_docx_paragraphs_and_tables():
    data = _docx_bytes(
        ["Refund policy", "", "Refunds take five days."],
        table=[["Plan", "Days"], ["Basic", "5"]],
    )
    result = extract(data, "docx")
    assert result.text.splitlines() == [
        "Refund policy",
        "Refunds take five days.",
        "Plan | Days",
        "Basic | 5",
    ]


def test_extract_corrupt_docx():
    with pytest.raises(ParseError) as exc_info:
        extract(b"PK-not-a-zip", "docx")
    assert exc_info.value.file_type == "docx"
