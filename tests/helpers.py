"""Test doubles and deterministic helpers shared across test modules."""

from __future__ import annotations

import math
import re
from pathlib import Path

import yaml

from docrag.db.connection import Database
from docrag.db.repository import Repository

FAKE_MODEL = "test/fake-embed"
FAKE_DIMS = 8

# Each topic owns one vector component; texts sharing a topic point the same way.
_TOPICS: tuple[frozenset[str], ...] = (
    frozenset({"refund", "refunds", "return", "returns", "money"}),
    frozenset({"ship", "shipping", "shipped", "delivery", "courier"}),
    frozenset({"password", "login", "account"}),
    frozenset({"warranty", "repair", "broken"}),
)


def topic_vector(text: str) -> list[float]:
    """Deterministic 8-dim embedding: a small baseline plus 1.0 per matched topic."""
    words = set(re.findall(r"\w+", text.lower()))
    vector = [0.05] * FAKE_DIMS
    for i, topic in enumerate(_TOPICS):
        if words & topic:
            vector[i] = 1.0
    return vector


def char_tokens(text: str) -> int:
    """Fixed 4-characters-per-token counter for deterministic chunking."""
    return math.ceil(len(text) / 4)


class FakeEmbedding:
    """Stand-in for litellm.embedding that records every call.

    Args:
        reverse: Return items in reverse order (indices stay correct).
        fail_times: Raise *error* on this many leading calls.
        error: Exception raised while failing.
    """

    def __init__(self, *, reverse: bool = False, fail_times: int = 0, error: Exception | None = None):
        self.calls: list[list[str]] = []
        self.reverse = reverse
        self.fail_times = fail_times
        self.error = error or TimeoutError("provider timed out")

    def __call__(self, *, model: str, input: list[str], timeout: float):
        self.calls.append(list(input))
        if self.fail_times > 0:
            self.fail_times -= 1
            raise self.error
        data = [{"index": i, "embedding": topic_vector(t)} for i, t in enumerate(input)]
        if self.reverse:
            data.reverse()
        return {"data": data}


def stored_documents(project_dir: Path):
    """Documents in the project's .docrag.db, read through a fresh connection."""
    with Database(project_dir / ".docrag.db") as conn:
        repo = Repository(conn, embedding_model=FAKE_MODEL, dimensions=FAKE_DIMS)
        return [(doc, repo.get_chunks(doc.id)) for doc in repo.list_documents()]


PROJECT_CONFIG = {
    "embedding": {"model": FAKE_MODEL, "dimensions": FAKE_DIMS, "retry_delay": 0},
    "chunking": {"chunk_size": 50, "chunk_overlap": 10, "min_chunk_size": 10},
    "retrieval": {"similarity_threshold": 0.7},
    "generation": {"model": "test/fake-chat"},
}


def write_project_config(project_dir: Path, **overrides: dict) -> None:
    """Write docrag.yaml for the fake provider, with per-section overrides."""
    data = {section: dict(values) for section, values in PROJECT_CONFIG.items()}
    for section, values in overrides.items():
        data.setdefault(section, {}).update(values)
    (project_dir / "docrag.yaml").write_text(yaml.dump(data), encoding="utf-8")
