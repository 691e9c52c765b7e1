"""codeparity embed: chunk a source snapshot and embed what is new.

Steps:
  1. Load config, apply flag overrides, validate.
  2. Open the ledger and the vector store (created if missing).
  3. Run the pipeline: locate → chunk → reconcile → dedup → batch-embed.
  4. Print a summary table.

Exit code 1 only for fatal errors (config, ledger I/O, missing API key).
Failed batches are reported but leave the exit code at 0; they are retried
on the next run.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table

from codeparity.cli.context import (
    load_config_or_exit,
    open_ledger_or_exit,
    open_store_or_exit,
    require_api_key,
)
from codeparity.cli.errors import err_config, err_ledger_io
from codeparity.cli.logs import setup_logging
from codeparity.config import ConfigError, validate_config
from codeparity.exceptions import LedgerIOError
from codeparity.ingest.pipeline import PipelineConfig, PipelineResult, run_pipeline
from codeparity.rag.llm_client import LiteLLMEmbedder

console = Console()


def embed_cmd(
    root: Annotated[
        Path | None,
        typer.Option("--root", help="Git repository or directory to scan (overrides source.root)."),
    ] = None,
    revision: Annotated[
        str | None,
        typer.Option("--revision", "-r", help="Branch, tag or commit to snapshot."),
    ] = None,
    directory: Annotated[
        bool,
        typer.Option("--directory", help="Walk the working tree instead of a commit snapshot."),
    ] = False,
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Vector store database (default: storage.database)."),
    ] = None,
    ledger: Annotated[
        Path | None,
        typer.Option("--ledger", help="Ledger CSV (default: storage.ledger)."),
    ] = None,
    batch_size: Annotated[
        int | None,
        typer.Option("--batch-size", help="Chunks per embedding request."),
    ] = None,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", help="Count new chunks without embedding or writing."),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Debug logging."),
    ] = False,
) -> None:
    """Embed new code chunks from a snapshot into the vector store."""
    setup_logging(verbose)
    project_dir = Path.cwd()
    cfg = load_config_or_exit(console, project_dir)

    # ---- CLI overrides ----
    if root is not None:
        cfg.source.root = str(root)
    if revision is not None:
        cfg.source.revision = revision
    if directory:
        cfg.source.mode = "directory"
    if batch_size is not None:
        cfg.embedding.batch_size = batch_size
    try:
        validate_config(cfg)
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1)

    if not dry_run:
        require_api_key(console, cfg.embedding.model, cfg.embedding.api_base)

    db_path = db if db is not None else Path(cfg.storage.database)
    ledger_path = ledger if ledger is not None else Path(cfg.storage.ledger)
    the_ledger = open_ledger_or_exit(console, ledger_path)
    pipeline_cfg = PipelineConfig.from_config(cfg, project_dir)

    with open_store_or_exit(console, db_path, cfg) as store:
        embedder = None if dry_run else LiteLLMEmbedder(cfg.embedding)

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            transient=True,
            console=console,
        ) as prog:
            task = prog.add_task("Scanning…", total=None)

            def _on_start(pending: int) -> None:
                prog.update(task, description="Embedding…", total=pending, completed=0)

            def _on_progress(committed: int) -> None:
                prog.advance(task, committed)

            try:
                result = run_pipeline(
                    pipeline_cfg,
                    store,
                    the_ledger,
                    embedder,
                    dry_run=dry_run,
                    on_progress=_on_progress,
                    on_start=_on_start,
                )
            except ConfigError as exc:
                console.print(err_config(str(exc)))
                raise typer.Exit(1)
            except LedgerIOError as exc:
                console.print(err_ledger_io(str(exc)))
                raise typer.Exit(1)

    _print_result(result)


def _print_result(result: PipelineResult) -> None:
    summary = result.summary
    table = Table(title=f"Embedding summary: {result.source}", show_header=False)
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("Files", str(result.files))
    table.add_row("Files skipped", str(len(result.skipped_files)))
    table.add_row("Chunks discovered", str(summary.discovered))
    table.add_row("Already embedded", str(summary.skipped))
    if result.dry_run:
        table.add_row("Would embed", str(summary.pending))
    else:
        table.add_row("Embedded", str(summary.embedded))
        table.add_row("Batches", str(summary.batches))
        table.add_row("Failed batches", str(summary.failed_batches))
    if result.reconcile.requeued:
        table.add_row("Re-queued (missing from store)", str(len(result.reconcile.requeued)))
    if result.reconcile.confirmed:
        table.add_row("Confirmed from store", str(len(result.reconcile.confirmed)))
    console.print(table)

    if result.dry_run:
        console.print("[dim]Dry run: nothing embedded, ledger not written.[/]")
    elif summary.failed_batches:
        console.print(
            f"[yellow]⚠[/] {summary.failed_batches} batch(es) failed; "
            f"{summary.pending} chunk(s) stay queued for the next run."
        )
        for message in summary.errors:
            console.print(f"  {message}", style="dim", markup=False, highlight=False)
    else:
        console.print("[green]✓[/] Up to date.")
