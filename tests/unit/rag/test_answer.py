"""Tests for grounded question answering."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from docrag.config import GenerationCfg, RetrievalCfg
from docrag.ingest.pipeline import Ingestor
from docrag.rag.answer import answer
from docrag.rag.prompt import NO_CONTEXT_ANSWER
from docrag.rag.retriever import Retriever, SearchOptions
from helpers import char_tokens


@pytest.fixture
def retriever(repo, embedder):
    with patch("docrag.ingest.chunker.count_tokens", char_tokens):
        Ingestor(repo, embedder).ingest_text(
            "Refunds are processed within 5 business days.", "u1", "Handbook"
        )
    return Retriever(embedder, repo, RetrievalCfg(similarity_threshold=0.7))


def test_answer_is_grounded(retriever):
    complete_fn = MagicMock(return_value="Refunds take five business days.")
    gen = GenerationCfg(model="openai/gpt-4o-mini", temperature=0.2, max_tokens=300)

    result = answer("How long do refunds take?", retriever, gen, complete_fn=complete_fn)

    assert result.grounded
    assert result.text == "Refunds take five business days."
    assert [s.document_title for s in result.sources] == ["Handbook"]
    assert '1. "Handbook" (Chunk 1' in result.citations
    kwargs = complete_fn.call_args.kwargs
    assert kwargs["model"] == "openai/gpt-4o-mini"
    assert kwargs["temperature"] == 0.2
    assert kwargs["max_tokens"] == 300
    messages = kwargs["messages"]
    assert messages[0]["role"] == "system"
    assert "[Source: Handbook - Chunk 1]" in messages[0]["content"]
    assert messages[-1] == {"role": "user", "content": "How long do refunds take?"}


def test_answer_without_context_skips_model(retriever):
    complete_fn = MagicMock()
    result = answer("Where is the office?", retriever, complete_fn=complete_fn)
    assert result.text == NO_CONTEXT_ANSWER
    assert not result.grounded
    assert result.sources == []
    assert result.citations == ""
    complete_fn.assert_not_called()


def test_answer_retrieval_error_degrades(repo, embedder):
    retriever = Retriever(embedder, repo, RetrievalCfg(enable_reranking=True))
    complete_fn = MagicMock()
    result = answer("refunds", retriever, complete_fn=complete_fn)
    assert result.text == NO_CONTEXT_ANSWER
    complete_fn.assert_not_called()


def test_answer_keeps_history(retriever):
    complete_fn = MagicMock(return_value="Yes.")
    history = [
        {"role": "user", "content": "Do you offer refunds?"},
        {"role": "assistant", "content": "Yes, within 5 business days."},
    ]
    answer("Are refunds really that fast?", retriever, history=history, complete_fn=complete_fn)
    messages = complete_fn.call_args.kwargs["messages"]
    assert [m["role"] for m in messages] == ["system", "user", "assistant", "user"]


def test_answer_owner_filter(retriever):
    complete_fn = MagicMock()
    result = answer(
        "How long do refunds take?",
        retriever,
        options=SearchOptions(owner_id="someone-else"),
        complete_fn=complete_fn,
    )
    assert result.text == NO_CONTEXT_ANSWER
    complete_fn.assert_not_called()


def test_answer_propagates_generation_errors(retriever):
    complete_fn = MagicMock(side_effect=RuntimeError("provider down"))
    with pytest.raises(RuntimeError):
        answer("How long do refunds take?", retriever, complete_fn=complete_fn)
