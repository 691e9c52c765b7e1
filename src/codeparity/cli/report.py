"""codeparity report: per-unit parity reports via retrieval + completion.

Steps:
  1. Load config; check the completion + embedding API keys.
  2. Build comparison units from the ledger (optionally filtered by --unit).
  3. Evaluate each unit (one structured row per unit; failures fall back).
  4. Render one Markdown file per unit and the aggregate table.

Exit code 1 for fatal errors (config, ledger I/O, missing API key, unsafe
output path, missing database). Units whose evaluation failed still get a row.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from codeparity.cli.context import (
    load_config_or_exit,
    open_ledger_or_exit,
    open_store_or_exit,
    require_api_key,
)
from codeparity.cli.errors import err_no_db, err_no_units, err_output_path_unsafe, err_store_empty
from codeparity.cli.logs import setup_logging
from codeparity.config import CodeParityConfig
from codeparity.rag.llm_client import LiteLLMCompleter, LiteLLMEmbedder
from codeparity.rag.retriever import ensure_populated
from codeparity.report.generator import ReportGenerator, ReportRow, build_units
from codeparity.report.writer import (
    check_overwrite,
    render_aggregate,
    render_unit_report,
    report_categories,
    unit_slug,
    validate_output_path,
    write_output,
)

console = Console()


def report_cmd(
    unit: Annotated[
        list[str] | None,
        typer.Option("--unit", "-u", help="Only report on this unit (repeatable)."),
    ] = None,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Vector store database (default: storage.database)."),
    ] = None,
    ledger: Annotated[
        Path | None,
        typer.Option("--ledger", help="Ledger CSV (default: storage.ledger)."),
    ] = None,
    output_dir: Annotated[
        str | None,
        typer.Option("--output-dir", "-o", help="Directory for per-unit reports."),
    ] = None,
    aggregate: Annotated[
        str | None,
        typer.Option("--aggregate", help="Path of the aggregate comparison file."),
    ] = None,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Overwrite existing report files without asking."),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Debug logging."),
    ] = False,
) -> None:
    """Generate parity reports for comparison units found in the ledger."""
    setup_logging(verbose)
    cfg = load_config_or_exit(console, Path.cwd())

    # ---- Output paths (validated before any network call) ----
    out_dir_raw = output_dir if output_dir is not None else cfg.report.output_dir
    aggregate_raw = aggregate if aggregate is not None else cfg.report.aggregate
    try:
        out_dir = validate_output_path(out_dir_raw)
    except ValueError:
        console.print(err_output_path_unsafe(out_dir_raw))
        raise typer.Exit(1)
    try:
        aggregate_path = validate_output_path(aggregate_raw)
    except ValueError:
        console.print(err_output_path_unsafe(aggregate_raw))
        raise typer.Exit(1)

    db_path = db if db is not None else Path(cfg.storage.database)
    if not db_path.exists():
        console.print(err_no_db(str(db_path)))
        raise typer.Exit(1)

    require_api_key(console, cfg.embedding.model, cfg.embedding.api_base)
    require_api_key(console, cfg.generation.model, cfg.generation.api_base)

    ledger_path = ledger if ledger is not None else Path(cfg.storage.ledger)
    the_ledger = open_ledger_or_exit(console, ledger_path)
    categories = [c.category for c in cfg.collections]
    units = build_units(the_ledger.snapshot(), categories=categories, names=unit)
    if not units:
        console.print(err_no_units(unit))
        raise typer.Exit(0)

    console.print(f"\n[bold]Evaluating {len(units)} unit(s)[/] with {cfg.generation.model}\n")

    def _on_unit(row: ReportRow) -> None:
        mark = "[red]✗[/]" if row.failed else "[green]✓[/]"
        console.print(f"  {mark} {row.unit}", highlight=False)

    with open_store_or_exit(console, db_path, cfg) as store:
        try:
            ensure_populated(store)
        except RuntimeError as exc:
            console.print(err_store_empty(str(exc)))
            raise typer.Exit(1)
        generator = ReportGenerator(
            store,
            LiteLLMEmbedder(cfg.embedding),
            LiteLLMCompleter(cfg.generation),
            cfg.report,
        )
        rows = generator.generate(units, on_unit=_on_unit)

    written = _write_reports(rows, cfg, categories, out_dir, aggregate_path, yes)
    failed = sum(1 for r in rows if r.failed)
    console.print(f"\n[green]✓[/] {written} file(s) written ({len(rows)} units, {failed} failed)")


def _write_reports(
    rows: list[ReportRow],
    cfg: CodeParityConfig,
    preferred: list[str],
    out_dir: Path,
    aggregate_path: Path,
    yes: bool,
) -> int:
    statuses = cfg.report.statuses
    link_base = cfg.report.link_base
    categories = report_categories(rows, preferred)
    written = 0

    used: set[str] = set()
    for row in rows:
        slug = unit_slug(row.unit)
        candidate, n = slug, 2
        while candidate in used:
            candidate, n = f"{slug}-{n}", n + 1
        used.add(candidate)

        path = out_dir / f"{candidate}.md"
        if not check_overwrite(path, yes):
            console.print(f"  [dim]Skipped {path}[/]")
            continue
        write_output(path, render_unit_report(row, categories, statuses, link_base))
        written += 1

    if check_overwrite(aggregate_path, yes):
        write_output(aggregate_path, render_aggregate(rows, categories, statuses, link_base))
        console.print(f"  [green]✓[/] {aggregate_path}")
        written += 1
    return written
