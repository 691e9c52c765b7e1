"""codeparity ids: export the ids of every stored code chunk.

Writes two files:
  collected_code_chunks.txt : heading line, then one id per line
  collected_code_chunks.md  : Markdown bullet list of ids
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from codeparity.cli.context import load_config_or_exit, open_store_or_exit
from codeparity.cli.errors import err_no_db, err_output_path_unsafe
from codeparity.report.writer import validate_output_path, write_output

console = Console()

TXT_HEADING = "Wrote a summary of code snippets stored in the DB:"
MD_HEADING = "# Collected Code Chunks"


def render_txt(ids: list[str]) -> str:
    return "\n".join([TXT_HEADING, *ids]) + "\n"


def render_md(ids: list[str]) -> str:
    lines = [MD_HEADING, ""]
    lines += [f"- `{chunk_id}`" for chunk_id in ids]
    return "\n".join(lines) + "\n"


def ids_cmd(
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Vector store database (default: storage.database)."),
    ] = None,
    txt: Annotated[
        str,
        typer.Option("--txt", help="Plain-text id list."),
    ] = "collected_code_chunks.txt",
    md: Annotated[
        str,
        typer.Option("--md", help="Markdown id list."),
    ] = "collected_code_chunks.md",
) -> None:
    """Export the ids of all stored code chunks."""
    cfg = load_config_or_exit(console, Path.cwd())
    db_path = db if db is not None else Path(cfg.storage.database)
    if not db_path.exists():
        console.print(err_no_db(str(db_path)))
        raise typer.Exit(1)

    targets: list[Path] = []
    for raw in (txt, md):
        try:
            targets.append(validate_output_path(raw))
        except ValueError:
            console.print(err_output_path_unsafe(raw))
            raise typer.Exit(1)

    with open_store_or_exit(console, db_path, cfg) as store:
        ids = store.all_ids()

    txt_path, md_path = targets
    write_output(txt_path, render_txt(ids))
    write_output(md_path, render_md(ids))
    console.print(f"[green]✓[/] {len(ids):,} ids → {txt_path.name}, {md_path.name}")
