"""Shared pytest fixtures."""

from __future__ import annotations

import pytest

from docrag.db.connection import Database
from docrag.db.repository import Repository
from docrag.db.schema import initialize
from docrag.rag.embeddings import EmbeddingClient
from helpers import FAKE_DIMS, FAKE_MODEL, FakeEmbedding


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    db = Database(tmp_path / ".docrag.db")
    conn = db.connect()
    initialize(conn)
    yield conn
    conn.close()


@pytest.fixture
def fake_embed():
    return FakeEmbedding()


@pytest.fixture
def embedder(fake_embed):
    return EmbeddingClient(FAKE_MODEL, FAKE_DIMS, embed_fn=fake_embed, retry_delay=0)


@pytest.fixture
def repo(tmp_db):
    return Repository(tmp_db, embedding_model=FAKE_MODEL, dimensions=FAKE_DIMS)
