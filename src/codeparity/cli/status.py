"""codeparity status: ledger and vector store overview.

Shows:
  Project   : source root / mode / revision, models, file locations
  Ledger    : rows, processed, pending, rows per category
  Store     : stored chunks, vectors per embedding model
  Consistency: ledger rows claimed processed but missing from the store, and
               stored ids the ledger does not know as processed
  Units     : comparison units found in the ledger
"""

from __future__ import annotations

from collections import Counter
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from codeparity.cli.context import load_config_or_exit, open_ledger_or_exit, open_store_or_exit
from codeparity.config import CodeParityConfig
from codeparity.db.ledger import Ledger
from codeparity.db.store import VectorStore
from codeparity.report.generator import build_units

console = Console()


def status_cmd(
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Vector store database (default: storage.database)."),
    ] = None,
    ledger: Annotated[
        Path | None,
        typer.Option("--ledger", help="Ledger CSV (default: storage.ledger)."),
    ] = None,
) -> None:
    """Show ledger and vector store status."""
    cfg = load_config_or_exit(console, Path.cwd())
    db_path = db if db is not None else Path(cfg.storage.database)
    ledger_path = ledger if ledger is not None else Path(cfg.storage.ledger)

    _show_project_panel(cfg, db_path, ledger_path)

    the_ledger = open_ledger_or_exit(console, ledger_path)
    _show_ledger_panel(the_ledger)

    if not db_path.exists():
        console.print(
            Panel(
                "[yellow]No database found.[/]\n"
                "  Run:  codeparity embed",
                title="[bold]Vector Store[/]",
                expand=False,
            )
        )
        return

    with open_store_or_exit(console, db_path, cfg) as store:
        _show_store_panel(store)
        _show_consistency_panel(the_ledger, store.list_ids())

    _show_units_panel(the_ledger, cfg)


# ---------------------------------------------------------------------------
# Panel renderers
# ---------------------------------------------------------------------------


def _show_project_panel(cfg: CodeParityConfig, db_path: Path, ledger_path: Path) -> None:
    source = f"{cfg.source.root} ({cfg.source.mode}"
    if cfg.source.mode == "snapshot":
        source += f" @ {cfg.source.revision}"
    source += ")"
    lines = [
        f"Source:     {source}",
        f"Embedding:  {cfg.embedding.model} ({cfg.embedding.dimensions} dims)",
        f"Generation: {cfg.generation.model}",
        f"Ledger:     {ledger_path}" + ("" if ledger_path.exists() else " [yellow]✗ missing[/]"),
        f"Database:   {db_path}" + (_size(db_path) if db_path.exists() else " [yellow]✗ missing[/]"),
    ]
    console.print(Panel("\n".join(lines), title="[bold]Project[/]", expand=False))


def _show_ledger_panel(ledger: Ledger) -> None:
    rows = ledger.snapshot()
    processed = sum(1 for r in rows if r.processed)
    by_category = Counter(r.category or "(none)" for r in rows)

    table = Table(show_header=False, box=None, padding=(0, 1))
    table.add_row("Rows", f"[bold]{len(rows):,}[/]")
    table.add_row("Processed", f"{processed:,}")
    table.add_row("Pending", f"{len(rows) - processed:,}")
    for category, count in sorted(by_category.items()):
        table.add_row(f"  {category}", f"{count:,}")
    console.print(Panel(table, title="[bold]Ledger[/]", expand=False))


def _show_store_panel(store: VectorStore) -> None:
    lines = [
        f"Chunks: [bold]{store.total_chunks():,}[/]  |  Queryable ({store.model}): [bold]{store.count():,}[/]",
        f"sqlite-vec {store.backend_version()}",
    ]
    for table, dims, vectors in store.vec_tables():
        lines.append(f"  [dim]{table}[/] ({dims} dims, {vectors:,} vectors)")
    console.print(Panel("\n".join(lines), title="[bold]Vector Store[/]", expand=False))


def _show_consistency_panel(ledger: Ledger, store_ids: set[str]) -> None:
    processed = ledger.processed_ids()
    missing = processed - store_ids
    unknown = {i for i in store_ids if not ledger.lookup(i)}
    if not missing and not unknown:
        body = "[green]✓[/] Ledger and store agree."
    else:
        body_lines = []
        if missing:
            body_lines.append(
                f"[yellow]⚠[/] {len(missing):,} processed ledger rows are missing from the store."
            )
        if unknown:
            body_lines.append(
                f"[yellow]⚠[/] {len(unknown):,} stored chunks are not marked processed in the ledger."
            )
        body_lines.append("  Run:  codeparity embed  (reconciles before embedding)")
        body = "\n".join(body_lines)
    console.print(Panel(body, title="[bold]Consistency[/]", expand=False))


def _show_units_panel(ledger: Ledger, cfg: CodeParityConfig) -> None:
    categories = [c.category for c in cfg.collections]
    units = build_units(ledger.snapshot(), categories=categories)
    if not units:
        console.print(Panel("[dim]No comparison units yet.[/]", title="[bold]Units[/]", expand=False))
        return

    table = Table(box=None, padding=(0, 1))
    table.add_column("Unit")
    for category in categories:
        table.add_column(category.title(), justify="center")
    for unit in units:
        cells = ["[green]✓[/]" if unit.locations.get(c) else "[dim]-[/]" for c in categories]
        table.add_row(unit.name, *cells)
    console.print(Panel(table, title=f"[bold]Units ({len(units)})[/]", expand=False))


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _size(path: Path) -> str:
    return f" ({path.stat().st_size / (1024 * 1024):.1f} MB)"

