"""Shared command plumbing: config, ledger and store loading with fatal-error exits."""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

import typer
from rich.console import Console

from codeparity.cli.errors import err_config, err_db_schema, err_ledger_io, err_no_api_key
from codeparity.config import CodeParityConfig, ConfigError, load_config
from codeparity.db.connection import Database
from codeparity.db.ledger import Ledger
from codeparity.db.schema import initialize
from codeparity.db.store import VectorStore
from codeparity.exceptions import LedgerIOError, SchemaError
from codeparity.rag.llm_client import validate_api_key


def load_config_or_exit(console: Console, project_dir: Path | None = None) -> CodeParityConfig:
    try:
        return load_config(project_dir)
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1)


def open_ledger_or_exit(console: Console, path: Path) -> Ledger:
    try:
        return Ledger.open(path)
    except LedgerIOError as exc:
        console.print(err_ledger_io(str(exc)))
        raise typer.Exit(1)


@contextmanager
def open_store_or_exit(
    console: Console, db_path: Path, cfg: CodeParityConfig
) -> Iterator[VectorStore]:
    """Open *db_path*, migrate it, and yield a store bound to the embedding model.

    The connection is closed when the block exits.
    """
    with Database(db_path) as conn:
        try:
            initialize(conn)
            store = VectorStore(conn, cfg.embedding.model, cfg.embedding.dimensions)
        except SchemaError as exc:
            console.print(err_db_schema(str(exc)))
            raise typer.Exit(1)
        except ConfigError as exc:
            console.print(err_config(str(exc)))
            raise typer.Exit(1)
        yield store


def require_api_key(console: Console, model: str, api_base: str | None) -> None:
    """Exit 1 if *model* needs an API key that is not set."""
    try:
        validate_api_key(model, api_base)
    except EnvironmentError:
        provider = model.split("/")[0] if "/" in model else "openai"
        console.print(err_no_api_key(provider))
        raise typer.Exit(1)
