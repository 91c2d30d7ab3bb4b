"""Grounded question answering: retrieve context, then complete.

Retrieval failures and empty results both degrade to NO_CONTEXT_ANSWER; the
completion model is never asked to answer without grounding.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from docrag.config import GenerationCfg
from docrag.errors import DocragError
from docrag.rag.assembler import RetrievedContext, Source, format_sources, retrieve_context
from docrag.rag.llm_client import complete
from docrag.rag.prompt import NO_CONTEXT_ANSWER, Message, build_conversation
from docrag.rag.retriever import Retriever, SearchOptions

logger = logging.getLogger(__name__)


@dataclass
class Answer:
    text: str
    sources: list[Source] = field(default_factory=list)
    citations: str = ""
    grounded: bool = False
    total_chunks_considered: int = 0


def answer(
    query: str,
    retriever: Retriever,
    generation: GenerationCfg | None = None,
    *,
    history: Sequence[Message] = (),
    options: SearchOptions | None = None,
    complete_fn: Callable[..., str] = complete,
) -> Answer:
    """Answer *query* from the knowledge base.

    Args:
        query: The user's question.
        retriever: Configured retriever (its retrieval config drives the budget).
        generation: Completion model settings.
        history: Prior conversation turns in OpenAI message format.
        options: Search overrides such as owner filter or top_k.
        complete_fn: Completion function with the llm_client.complete signature.
    """
    gen = generation or GenerationCfg()
    try:
        context = retrieve_context(query, retriever, options)
    except DocragError as exc:
        logger.warning("Retrieval failed, answering without context: %s", exc)
        context = RetrievedContext()

    if not context.found:
        return Answer(
            text=NO_CONTEXT_ANSWER,
            total_chunks_considered=context.total_chunks_considered,
        )

    messages = build_conversation(history, context.context_text, query)
    text = complete_fn(
        model=gen.model,
        messages=messages,
        max_tokens=gen.max_tokens,
        temperature=gen.temperature,
    )
    return Answer(
        text=text,
        sources=context.sources,
        citations=format_sources(context.sources),
        grounded=True,
        total_chunks_considered=context.total_chunks_considered,
    )
