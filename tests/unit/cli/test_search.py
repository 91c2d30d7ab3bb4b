"""Tests for docrag search and docrag similar."""

from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from docrag.cli.main import app
from docrag.errors import VectorStoreError
from docrag.rag.retriever import Retriever
from helpers import stored_documents, write_project_config

runner = CliRunner()


@pytest.fixture
def kb(project: Path) -> Path:
    for title, text in (
        ("Handbook", "Refunds are processed within 5 business days."),
        ("Shipping", "Orders ship with our courier within two days."),
    ):
        result = runner.invoke(app, ["ingest", "--text", text, "--title", title, "-y"])
        assert result.exit_code == 0, result.output
    return project


# ---------------------------------------------------------------------------
# search
# ---------------------------------------------------------------------------


def test_search_without_database(project: Path) -> None:
    result = runner.invoke(app, ["search", "refunds"])
    assert result.exit_code == 1
    assert "No database found" in result.output


def test_search_semantic(kb: Path) -> None:
    result = runner.invoke(app, ["search", "How long do refunds take?"])
    assert result.exit_code == 0, result.output
    assert "Handbook" in result.output
    assert "Shipping" not in result.output


def test_search_no_results(kb: Path) -> None:
    result = runner.invoke(app, ["search", "Where is the office?"])
    assert result.exit_code == 0
    assert "No results above the similarity threshold" in result.output


def test_search_threshold_option(kb: Path) -> None:
    result = runner.invoke(app, ["search", "Where is the office?", "--threshold", "0.1"])
    assert result.exit_code == 0
    assert "Handbook" in result.output
    assert "Shipping" in result.output


def test_search_hybrid_disabled(kb: Path) -> None:
    result = runner.invoke(app, ["search", "refunds", "--type", "hybrid"])
    assert result.exit_code == 1
    assert "Hybrid search is disabled" in result.output


def test_search_hybrid_enabled(kb: Path) -> None:
    write_project_config(kb, hybrid={"enabled": True})
    result = runner.invoke(app, ["search", "refunds", "--type", "hybrid", "--threshold", "0.5"])
    assert result.exit_code == 0, result.output
    assert "Handbook" in result.output
    assert "Kw" in result.output


def test_search_rag_context(kb: Path) -> None:
    result = runner.invoke(app, ["search", "How long do refunds take?", "--type", "rag"])
    assert result.exit_code == 0, result.output
    assert "[Source: Handbook - Chunk 1]" in result.output
    assert "Sources:" in result.output


def test_search_rag_nothing_found(kb: Path) -> None:
    result = runner.invoke(app, ["search", "Where is the office?", "--type", "rag"])
    assert result.exit_code == 0
    assert "No relevant context found" in result.output


def test_search_owner_filter(kb: Path) -> None:
    result = runner.invoke(app, ["search", "refunds", "--owner", "someone-else"])
    assert result.exit_code == 0
    assert "No results" in result.output


def test_search_dimension_mismatch(kb: Path) -> None:
    write_project_config(kb, embedding={"dimensions": 16})
    result = runner.invoke(app, ["search", "refunds"])
    assert result.exit_code == 1
    assert "mismatch" in result.output


# ---------------------------------------------------------------------------
# similar
# ---------------------------------------------------------------------------


def test_similar_unknown_chunk(kb: Path) -> None:
    result = runner.invoke(app, ["similar", "missing-chunk"])
    assert result.exit_code == 1
    assert "not found" in result.output


def test_similar_excludes_itself(kb: Path) -> None:
    runner.invoke(
        app,
        ["ingest", "--text", "Refunds go back to the original card.", "--title", "Payments", "-y"],
    )
    handbook = next(chunks for doc, chunks in stored_documents(kb) if doc.title == "Handbook")
    result = runner.invoke(app, ["similar", handbook[0].id])
    assert result.exit_code == 0, result.output
    assert "Payments" in result.output
    assert "Handbook" not in result.output


def test_similar_with_window(kb: Path) -> None:
    handbook = next(chunks for doc, chunks in stored_documents(kb) if doc.title == "Handbook")
    result = runner.invoke(app, ["similar", handbook[0].id, "--window", "1"])
    assert result.exit_code == 0, result.output
    assert "#1 Refunds are processed" in result.output


def test_similar_store_error_is_reported(kb: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    def _fail(self, chunk_id, options=None):
        raise VectorStoreError("database is locked")

    monkeypatch.setattr(Retriever, "find_similar_chunks", _fail)
    handbook = next(chunks for doc, chunks in stored_documents(kb) if doc.title == "Handbook")
    result = runner.invoke(app, ["similar", handbook[0].id])
    assert result.exit_code == 1
    assert "database is locked" in result.output


# ---------------------------------------------------------------------------
# Bracketed document text
# ---------------------------------------------------------------------------

_BRACKETED = "Refunds: see the config[/etc] entry and [bold]terms[/bold] for return money."


@pytest.fixture
def bracketed_kb(project: Path) -> Path:
    write_project_config(project, hybrid={"enabled": True})
    result = runner.invoke(app, ["ingest", "--text", _BRACKETED, "--title", "Policy [v2]", "-y"])
    assert result.exit_code == 0, result.output
    return project


@pytest.mark.parametrize("search_type", ["semantic", "hybrid", "rag"])
def test_search_prints_brackets_literally(bracketed_kb: Path, search_type: str) -> None:
    result = runner.invoke(
        app,
        ["search", "How long do refunds take?", "--type", search_type, "--threshold", "0.5"],
    )
    assert result.exit_code == 0, result.output
    assert "config[/etc]" in result.output
    assert "[bold]terms[/bold]" in result.output
    assert "Policy [v2]" in result.output


def test_similar_window_prints_brackets_literally(bracketed_kb: Path) -> None:
    chunks = stored_documents(bracketed_kb)[0][1]
    result = runner.invoke(app, ["similar", chunks[0].id, "--window", "1"])
    assert result.exit_code == 0, result.output
    assert "config[/etc]" in result.output
