"""Tests for CLI error messages."""

from __future__ import annotations

import io

from rich.console import Console

from docrag.cli.errors import (
    describe_error,
    err_config,
    err_document_not_found,
    err_embedding_model_mismatch,
    err_hybrid_disabled,
    err_no_api_key,
    err_no_db,
    err_unsupported_path,
)
from docrag.errors import ContentTooLongError, ParseError, VectorStoreError


def test_err_no_api_key_known_provider():
    msg = err_no_api_key("anthropic/claude-3-5-haiku-20241022")
    assert "ANTHROPIC_API_KEY" in msg
    assert "export" in msg


def test_err_no_api_key_unknown_provider():
    assert "ACME_API_KEY" in err_no_api_key("acme/model-1")


def test_err_no_db_suggests_init():
    msg = err_no_db("kb/.docrag.db")
    assert "kb/.docrag.db" in msg
    assert "docrag init" in msg


def test_err_config_includes_message():
    assert "top_k must be >= 1" in err_config("retrieval.top_k must be >= 1")


def test_err_embedding_model_mismatch():
    msg = err_embedding_model_mismatch("stores 1536-dimensional vectors")
    assert "mismatch" in msg
    assert "1536" in msg


def test_err_document_not_found():
    msg = err_document_not_found("abc")
    assert "'abc'" in msg
    assert "docrag status" in msg


def test_err_hybrid_disabled():
    msg = err_hybrid_disabled()
    assert "enabled: true" in msg
    assert "--type semantic" in msg


def test_err_unsupported_path():
    assert "photo.png" in err_unsupported_path("photo.png")


def test_describe_error_input():
    assert "Rejected" in describe_error(ContentTooLongError(20, 10))


def test_describe_error_parse():
    msg = describe_error(ParseError("Failed to parse PDF: EOF", "pdf"))
    assert "Could not read pdf file" in msg


def test_describe_error_other():
    assert describe_error(VectorStoreError("disk full")).startswith("[red]✗ Error:[/]")


def test_err_no_api_key_bare_model_is_openai():
    assert "OPENAI_API_KEY" in err_no_api_key("gpt-4o-mini")


def _render(markup: str) -> str:
    console = Console(file=io.StringIO(), width=200, color_system=None)
    console.print(markup)
    return console.file.getvalue()


def test_describe_error_prints_brackets_literally():
    msg = describe_error(VectorStoreError("no such table: chunks[/tmp] [bold]x"))
    assert "no such table: chunks[/tmp] [bold]x" in _render(msg)


def test_err_unsupported_path_prints_brackets_literally():
    assert "notes[draft].odt" in _render(err_unsupported_path("notes[draft].odt"))
