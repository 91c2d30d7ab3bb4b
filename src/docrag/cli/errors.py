"""docrag rich error messages.

Every error shown to the user says what went wrong and the exact action
that fixes it. Values interpolated from paths, ids or documents are escaped
so Rich prints them literally.

Usage:
    from docrag.cli.errors import err_no_db
    console.print(err_no_db(".docrag.db"))
    raise typer.Exit(1)
"""

from __future__ import annotations

from rich.markup import escape

from docrag.errors import DocragError, InputError, ParseError
from docrag.rag.llm_client import api_key_env, provider_for


def err_no_api_key(model: str) -> str:
    """No API key for the provider behind *model*."""
    provider = provider_for(model)
    env_var = api_key_env(model) or f"{provider.upper()}_API_KEY"
    return (
        f"[red]Error:[/] No API key for '{escape(provider)}'.\n"
        f"  Set:  export {escape(env_var)}=sk-..."
    )


def err_no_db(db_path: str = ".docrag.db") -> str:
    return (
        f"[red]Error:[/] No database found at '{escape(db_path)}'.\n"
        "  Run:  docrag init"
    )


def err_config(message: str) -> str:
    return f"[red]Config error:[/] {escape(message)}\n  Fix docrag.yaml and retry."


def err_embedding_model_mismatch(detail: str) -> str:
    return (
        "[red]Error:[/] Embedding model mismatch.\n"
        f"  {escape(detail)}\n"
        "  Set embedding.dimensions to match the stored vectors, or use a new database."
    )


def err_document_not_found(document_id: str) -> str:
    return (
        f"[yellow]Document not found:[/] '{escape(document_id)}' is not in the knowledge base.\n"
        "  Run:  docrag status  to list document ids."
    )


def err_hybrid_disabled() -> str:
    return (
        "[red]Error:[/] Hybrid search is disabled.\n"
        "  Enable it in docrag.yaml:\n"
        "    hybrid:\n"
        "      enabled: true\n"
        "  or run:  docrag search --type semantic <query>"
    )


def err_unsupported_path(path: str) -> str:
    return (
        f"[red]Error:[/] Unsupported file type: '{escape(path)}'\n"
        "  Supported: .pdf, .docx, .txt, .md"
    )


def describe_error(exc: DocragError) -> str:
    """Map a pipeline error to a one-line console message."""
    message = escape(str(exc))
    if isinstance(exc, InputError):
        return f"[red]✗ Rejected:[/] {message}"
    if isinstance(exc, ParseError):
        return f"[red]✗ Could not read {escape(exc.file_type)} file:[/] {message}"
    return f"[red]✗ Error:[/] {message}"
