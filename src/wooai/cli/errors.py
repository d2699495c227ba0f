"""wooai rich error messages: actionable feedback for the CLI.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from wooai.cli.errors import err_no_db
    console.print(err_no_db(str(db)))
    raise typer.Exit(1)
"""

from __future__ import annotations

from wooai.rag.llm_client import _PROVIDER_ENV


def err_no_api_key(model: str) -> str:
    """No API key for the provider of *model*.

    Example:
        No API key for 'openrouter'. Set:  export OPENROUTER_API_KEY=sk-...
    """
    provider = model.split("/")[0].lower() if "/" in model else "openai"
    env_var = _PROVIDER_ENV.get(provider) or f"{provider.upper()}_API_KEY"
    return (
        f"[red]Error:[/] No API key for '{provider}'.\n"
        f"  Set:  export {env_var}=sk-...\n"
        "  Or run offline:  --offline"
    )


def err_no_db(db_path: str = ".wooai.db") -> str:
    """No knowledge base database at *db_path*."""
    return (
        f"[red]Error:[/] No database found at '{db_path}'.\n"
        "  Run:  wooai init"
    )


def err_config(exc: Exception) -> str:
    """A config file could not be loaded."""
    return (
        f"[red]Error:[/] Invalid configuration: {exc}\n"
        "  Fix wooai.yaml or ~/.wooai/config.yaml and try again."
    )


def err_source_not_found(path: str) -> str:
    """Content export file does not exist."""
    return (
        f"[red]Error:[/] Content file not found: '{path}'\n"
        "  Export your store content to JSON or YAML and pass it with --source."
    )


def err_bad_source(path: str, reason: str) -> str:
    """Content export file could not be parsed."""
    return (
        f"[red]Error:[/] Could not read content file '{path}': {reason}\n"
        "  Expected a list of items or a mapping of content type to items."
    )


def err_index_failed(reason: str) -> str:
    """A batch could not be written; progress up to the last batch is saved."""
    return (
        f"[red]Error:[/] Indexing stopped: {reason}\n"
        "  Fix the database file (disk space, permissions), then\n"
        "  Run:  wooai index --source <export> again to resume from the last batch."
    )


def err_unknown_template(content_type: str, supported: list[str]) -> str:
    """No template exists for *content_type*."""
    return (
        f"[red]Error:[/] Unsupported content type: '{content_type}'.\n"
        f"  Supported: {', '.join(supported)}"
    )


def err_chat_failed(error_code: str | None, error: str | None) -> str:
    """The assistant returned a failure envelope."""
    hint = {
        "rate_limited": "  Wait a minute, or raise license.requests_per_minute in wooai.yaml.",
        "upstream_unavailable": "  Check your API key and network, or run with --offline.",
        "safety_filter": "  Rephrase the message.",
    }.get(error_code or "", "  Run with WOOAI_LOG_LEVEL=DEBUG for details.")
    return f"[red]Error ({error_code}):[/] {error}\n{hint}"


def warn_no_content() -> str:
    """Knowledge base is empty: answers will have no store context."""
    return (
        "[yellow]Warning:[/] The knowledge base is empty.\n"
        "  Run:  wooai index --source <export.json>"
    )
