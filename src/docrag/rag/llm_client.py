"""LiteLLM completion wrapper and provider API key checks.

Completion calls rely on LiteLLM's own retry (``num_retries``); embedding
calls go through docrag.rag.embeddings, which retries per sub-batch.
"""

from __future__ import annotations

import os

import litellm

litellm.suppress_debug_info = True

# Provider prefix -> env var holding its key. None means no key is needed.
_PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "groq": "GROQ_API_KEY",
    "together_ai": "TOGETHERAI_API_KEY",
    "voyage": "VOYAGE_API_KEY",
    "ollama": None,
    "ollama_chat": None,
}


def provider_for(model: str) -> str:
    """Return the LiteLLM provider prefix of *model*; bare names are OpenAI models."""
    return model.split("/", 1)[0].lower() if "/" in model else "openai"


def api_key_env(model: str) -> str | None:
    """Name of the env var *model* needs, or None for local and unknown providers."""
    return _PROVIDER_ENV.get(provider_for(model))


def validate_api_key(model: str) -> None:
    """Raise EnvironmentError if the key required by *model* is not set."""
    env_var = api_key_env(model)
    if env_var is not None and not os.getenv(env_var):
        raise EnvironmentError(
            f"API key not found for provider '{provider_for(model)}'. "
            f"Set the {env_var} environment variable."
        )


def complete(
    model: str,
    messages: list[dict],
    max_tokens: int = 2000,
    temperature: float = 0.7,
    num_retries: int = 3,
    timeout: float | None = None,
) -> str:
    """Run one chat completion and return the first choice's text ("" if empty)."""
    response = litellm.completion(
        model=model,
        messages=messages,
        max_tokens=max_tokens,
        temperature=temperature,
        num_retries=num_retries,
        timeout=timeout,
    )
    return response.choices[0].message.content or ""
