"""codeparity error messages: actionable feedback for fatal conditions.

Every error shown to the user contains:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from codeparity.cli.errors import err_no_api_key
    console.print(err_no_api_key("openai"))
    raise typer.Exit(1)
"""

from __future__ import annotations

from rich.markup import escape

_ENV_VARS = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "azure": "AZURE_API_KEY",
    "voyage": "VOYAGE_API_KEY",
}


def err_no_api_key(provider: str) -> str:
    """No API key for *provider*.

    Example:
        No API key for 'openai'. Set:  export OPENAI_API_KEY=sk-...
    """
    env_var = _ENV_VARS.get(provider.lower(), f"{provider.upper()}_API_KEY")
    return (
        f"[red]Error:[/] No API key for '{escape(provider)}'.\n"
        f"  Set:  export {env_var}=sk-...\n"
        "  Or point the model at a local server with api_base in codeparity.yaml."
    )


def err_ledger_io(detail: str) -> str:
    """The ledger CSV could not be read or written."""
    return (
        f"[red]Error:[/] Ledger I/O failed: {escape(detail)}\n"
        "  Check the file permissions and free disk space, then re-run.\n"
        "  Chunks already in the vector store are not embedded again."
    )


def err_config(detail: str) -> str:
    """Configuration is invalid, or the source root / revision cannot be used."""
    return (
        f"[red]Error:[/] Invalid configuration: {escape(detail)}\n"
        "  Fix codeparity.yaml (or the command-line flags) and re-run.\n"
        "  Run:  codeparity init  to write a commented template."
    )


def err_no_db(db_path: str = ".codeparity.db") -> str:
    """No vector store database at *db_path*."""
    return (
        f"[red]Error:[/] No database found at '{escape(db_path)}'.\n"
        "  Run:  codeparity embed"
    )


def err_output_path_unsafe(path: str) -> str:
    """An output path fails validation."""
    return (
        f"[red]Error:[/] Output path is not allowed: '{escape(path)}'\n"
        "  Use a path within the current working directory."
    )


def err_no_units(requested: list[str] | None = None) -> str:
    """Nothing to report on."""
    if requested:
        names = ", ".join(escape(n) for n in requested)
        return (
            f"[yellow]No comparison units match:[/] {names}\n"
            "  Run:  codeparity status  to list the known units."
        )
    return (
        "[yellow]No comparison units found in the ledger.[/]\n"
        "  Run:  codeparity embed  first, and check the unit_pattern of each collection."
    )


def err_store_empty(detail: str) -> str:
    """The vector store has no vectors for the configured embedding model."""
    return (
        f"[red]Error:[/] {escape(detail)}\n"
        "  If you changed embedding.model, re-run embed to index the chunks with it."
    )


def err_db_schema(detail: str) -> str:
    """The database cannot be used by this version."""
    return (
        f"[red]Error:[/] {escape(detail)}\n"
        "  Upgrade codeparity, or point --db at a different database file."
    )
