"""Fixtures for CLI tests: an isolated project directory with a fake provider."""

from __future__ import annotations

from pathlib import Path

import pytest

from helpers import FakeEmbedding, char_tokens, write_project_config


@pytest.fixture
def project(tmp_path: Path, monkeypatch) -> Path:
    """Working directory with docrag.yaml; no database yet."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr("docrag.config._GLOBAL_CONFIG_PATH", tmp_path / "global" / "config.yaml")
    monkeypatch.setattr("docrag.cli.context.verbose", False)
    for var in ("DOCRAG_EMBEDDING_MODEL", "DOCRAG_GENERATION_MODEL", "DOCRAG_LOG_LEVEL"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setattr("docrag.rag.embeddings.litellm.embedding", FakeEmbedding())
    monkeypatch.setattr("docrag.ingest.chunker.count_tokens", char_tokens)
    write_project_config(tmp_path)
    return tmp_path
