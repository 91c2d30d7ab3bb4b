"""Tests for semantic and hybrid retrieval."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from docrag.config import HybridCfg, RetrievalCfg
from docrag.errors import DocumentNotFoundError, EmptyInputError, HybridSearchDisabledError
from docrag.ingest.chunker import ChunkingOptions
from docrag.ingest.pipeline import Ingestor
from docrag.rag.retriever import HybridResult, Retriever, SearchOptions, SemanticResult
from helpers import char_tokens

MANUAL = "\n\n".join(
    f"Section {i}. The warranty covers repair of broken parts for one year." for i in range(8)
)


@pytest.fixture
def kb(repo, embedder):
    """Knowledge base with three single-chunk documents and one multi-chunk manual."""
    with patch("docrag.ingest.chunker.count_tokens", char_tokens):
        ingestor = Ingestor(repo, embedder)
        ids = {
            "handbook": ingestor.ingest_text(
                "Refunds are processed within 5 business days.", "u1", "Handbook"
            ).document_id,
            "shipping": ingestor.ingest_text(
                "Orders ship with our courier within two days.", "u1", "Shipping"
            ).document_id,
            "accounts": ingestor.ingest_text(
                "Reset your password from the login page.", "u2", "Accounts"
            ).document_id,
        }
        small = ChunkingOptions(chunk_size=50, chunk_overlap=10, min_chunk_size=10)
        ids["manual"] = Ingestor(repo, embedder, chunking=small).ingest_text(
            MANUAL, "u1", "Warranty manual"
        ).document_id
    return ids


@pytest.fixture
def retriever(embedder, repo):
    return Retriever(embedder, repo, RetrievalCfg(similarity_threshold=0.7))


@pytest.fixture
def hybrid_retriever(embedder, repo):
    return Retriever(embedder, repo, RetrievalCfg(similarity_threshold=0.5), HybridCfg(enabled=True))


# ------------------------------------------------------------------
# Semantic search
# ------------------------------------------------------------------


def test_semantic_search_finds_refund_policy(kb, retriever):
    results = retriever.semantic_search("How long do refunds take?")
    assert len(results) == 1
    hit = results[0]
    assert isinstance(hit, SemanticResult)
    assert hit.document_title == "Handbook"
    assert hit.document_id == kb["handbook"]
    assert hit.content == "Refunds are processed within 5 business days."
    assert hit.similarity == pytest.approx(1.0, abs=1e-4)
    assert hit.chunk_index == 0
    assert hit.total_chunks == 1


def test_semantic_search_nothing_relevant(kb, retriever):
    assert retriever.semantic_search("What is the office address?") == []


def test_semantic_search_sorted_by_similarity(kb, retriever):
    results = retriever.semantic_search("refund or shipping", SearchOptions(similarity_threshold=0.1))
    sims = [r.similarity for r in results]
    assert sims == sorted(sims, reverse=True)
    assert all(s > 0.1 for s in sims)


def test_semantic_search_top_k(kb, retriever):
    results = retriever.semantic_search("refund or shipping", SearchOptions(top_k=1))
    assert len(results) == 1


def test_raising_threshold_never_adds_results(kb, retriever):
    previous = None
    for threshold in (0.0, 0.3, 0.5, 0.7, 0.9, 1.0):
        ids = {
            r.chunk_id
            for r in retriever.semantic_search(
                "refund or shipping", SearchOptions(top_k=50, similarity_threshold=threshold)
            )
        }
        if previous is not None:
            assert ids <= previous
        previous = ids


def test_semantic_search_owner_filter(kb, retriever):
    assert retriever.semantic_search("forgot my password", SearchOptions(owner_id="u1")) == []
    results = retriever.semantic_search("forgot my password", SearchOptions(owner_id="u2"))
    assert [r.document_title for r in results] == ["Accounts"]


def test_semantic_search_document_filter(kb, retriever):
    results = retriever.semantic_search(
        "warranty repair", SearchOptions(top_k=50, document_id=kb["manual"])
    )
    assert results
    assert {r.document_id for r in results} == {kb["manual"]}


@pytest.mark.parametrize("query", ["", "   "])
def test_empty_query(kb, retriever, query):
    with pytest.raises(EmptyInputError):
        retriever.semantic_search(query)


def test_invalid_options(kb, retriever):
    with pytest.raises(ValueError):
        retriever.semantic_search("refunds", SearchOptions(top_k=0))
    with pytest.raises(ValueError):
        retriever.semantic_search("refunds", SearchOptions(similarity_threshold=1.5))


# ------------------------------------------------------------------
# Hybrid search
# ------------------------------------------------------------------


def test_hybrid_disabled_raises(kb, retriever):
    with pytest.raises(HybridSearchDisabledError):
        retriever.hybrid_search("refunds")
    with pytest.raises(HybridSearchDisabledError):
        retriever.search("refunds", mode="hybrid")


def test_hybrid_search_blends_scores(kb, hybrid_retriever):
    results = hybrid_retriever.hybrid_search("refunds")
    assert results
    top = results[0]
    assert isinstance(top, HybridResult)
    assert top.document_title == "Handbook"
    assert 0 < top.keyword_rank < 1
    assert top.hybrid_score == pytest.approx(0.7 * top.semantic_similarity + 0.3 * top.keyword_rank)
    assert top.similarity == top.hybrid_score


def test_hybrid_search_without_keyword_hit(kb, hybrid_retriever):
    results = hybrid_retriever.hybrid_search("money back")
    assert results
    assert results[0].document_title == "Handbook"
    assert results[0].keyword_rank == 0.0


def test_search_dispatch(kb, hybrid_retriever):
    assert all(r.mode == "semantic" for r in hybrid_retriever.search("refunds"))
    assert all(r.mode == "hybrid" for r in hybrid_retriever.search("refunds", mode="hybrid"))
    with pytest.raises(ValueError):
        hybrid_retriever.search("refunds", mode="fuzzy")


# ------------------------------------------------------------------
# Similar chunks / context window
# ------------------------------------------------------------------


def test_find_similar_chunks_excludes_source(kb, retriever, repo):
    chunks = repo.get_chunks(kb["manual"])
    assert len(chunks) >= 3
    results = retriever.find_similar_chunks(chunks[0].id, SearchOptions(top_k=50))
    ids = {r.chunk_id for r in results}
    assert chunks[0].id not in ids
    assert {c.id for c in chunks[1:]} <= ids
    assert kb["handbook"] not in {r.document_id for r in results}


def test_find_similar_chunks_unknown_chunk(kb, retriever):
    with pytest.raises(DocumentNotFoundError):
        retriever.find_similar_chunks("missing")


def test_get_chunk_with_context(kb, retriever, repo):
    chunks = repo.get_chunks(kb["manual"])
    middle = chunks[1]
    context = retriever.get_chunk_with_context(middle.id, window=1)
    assert [c.chunk.chunk_index for c in context] == [0, 1, 2]
    assert [c.is_source for c in context] == [False, True, False]
    assert [c.similarity for c in context] == [0.0, 1.0, 0.0]


def test_get_chunk_with_context_clipped_at_start(kb, retriever, repo):
    first = repo.get_chunks(kb["manual"])[0]
    context = retriever.get_chunk_with_context(first.id, window=2)
    assert [c.chunk.chunk_index for c in context] == [0, 1, 2]


def test_get_chunk_with_context_zero_window(kb, retriever, repo):
    first = repo.get_chunks(kb["manual"])[0]
    assert len(retriever.get_chunk_with_context(first.id, window=0)) == 1


def test_get_chunk_with_context_errors(kb, retriever):
    with pytest.raises(DocumentNotFoundError):
        retriever.get_chunk_with_context("missing")
    with pytest.raises(ValueError):
        retriever.get_chunk_with_context("missing", window=-1)
