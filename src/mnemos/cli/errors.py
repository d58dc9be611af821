"""mnemos rich error messages: actionable feedback.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from mnemos.cli.errors import err_no_db
    console.print(err_no_db(str(db)))
    raise typer.Exit(1)
"""

from __future__ import annotations


def err_no_db(db_path: str = "mnemos.db") -> str:
    """No database at *db_path*."""
    return (
        f"[red]Error:[/] No database found at '{db_path}'.\n"
        "  Run:  mnemos ingest --scope <scope> --text '...'  to create one."
    )


def err_no_api_key(provider: str) -> str:
    """No API key for *provider*.

    Example:
        No API key for 'openai'. Set:  export OPENAI_API_KEY=sk-...
    """
    env_map = {
        "openai": "OPENAI_API_KEY",
        "cohere": "COHERE_API_KEY",
        "gemini": "GEMINI_API_KEY",
        "mistral": "MISTRAL_API_KEY",
        "voyage": "VOYAGE_API_KEY",
        "azure": "AZURE_API_KEY",
    }
    env_var = env_map.get(provider.lower(), f"{provider.upper()}_API_KEY")
    return (
        f"[red]Error:[/] No API key for '{provider}'.\n"
        f"  Set:  export {env_var}=sk-...\n"
        "  Or run offline:  export MNEMOS_EMBEDDING_PROVIDER=stub"
    )


def err_invalid_input(message: str) -> str:
    """Ingest input rejected before anything was written."""
    return (
        f"[red]Error:[/] {message}\n"
        "  Nothing was stored. Check the input, or raise the limits under\n"
        "  ingest: in mnemos.yaml."
    )


def err_config(message: str) -> str:
    """Config file could not be loaded."""
    return (
        f"[red]Error:[/] Invalid configuration.\n"
        f"  {message}\n"
        "  Fix mnemos.yaml (or ~/.mnemos/config.yaml) and retry."
    )


def err_source_option() -> str:
    """Neither or both of --source / --text given."""
    return (
        "[red]Error:[/] Specify exactly one of --source PATH or --text TEXT.\n"
        "  Example:  mnemos ingest --scope notes --source handbook.pdf"
    )


def err_record_not_found(record_id: str) -> str:
    """Record id is not in the store."""
    return (
        f"[yellow]Record not found:[/] '{record_id}'.\n"
        "  Run:  mnemos status --scope <scope>  to list records and their ids."
    )


def err_store(message: str) -> str:
    """SQLite rejected a read or write."""
    return (
        f"[red]Error:[/] Database operation failed: {message}\n"
        "  Check that the database file is writable and not locked by another process."
    )


def warn_failed_records(count: int) -> str:
    """Shown after indexing when some records ended in FAILED."""
    return (
        f"[yellow]⚠[/] {count} record(s) failed to index.\n"
        "  Inspect:  mnemos status --scope <scope>\n"
        "  Retry:    mnemos reindex <record-id>"
    )
