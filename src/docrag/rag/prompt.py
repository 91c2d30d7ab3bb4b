"""Prompt construction for grounded answers."""

from __future__ import annotations

from collections.abc import Sequence

Message = dict[str, str]

SYSTEM_PROMPT = """\
You are a helpful AI assistant with access to a knowledge base.
When answering questions, use the provided context from the knowledge base when relevant.
Always cite your sources when using information from the knowledge base.
If you don't know the answer or if the knowledge base doesn't contain relevant information, say so clearly.
Be concise, accurate, and helpful."""

NO_CONTEXT_ANSWER = "I don't have information about that in the knowledge base."


def build_system_prompt(context: str) -> str:
    """Return the system prompt, with *context* embedded when it is non-blank."""
    if not context or not context.strip():
        return SYSTEM_PROMPT
    return (
        f"{SYSTEM_PROMPT}\n\n"
        "You have access to the following relevant information from the knowledge base:\n\n"
        f"<context>\n{context}\n</context>\n\n"
        "Use this context to provide accurate and relevant answers. "
        "Always cite your sources when using information from the context."
    )


def build_conversation(
    history: Sequence[Message],
    context: str,
    query: str,
) -> list[Message]:
    """Return *history* with a context-bearing system message and *query* appended.

    An existing leading system message is replaced; otherwise one is inserted.
    """
    messages = [dict(m) for m in history]
    system = {"role": "system", "content": build_system_prompt(context)}
    if messages and messages[0].get("role") == "system":
        messages[0] = system
    else:
        messages.insert(0, system)
    messages.append({"role": "user", "content": query})
    return messages
