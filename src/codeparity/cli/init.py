"""codeparity init: project scaffold.

Creates:
  codeparity.yaml            project config (commented template, snapshot mode)
  .codeparity.db             vector store with the payload schema applied
  ~/.codeparity/config.yaml  global model config (created once, mode 0o600)
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from codeparity.config import PROJECT_CONFIG_NAME, PROJECT_CONFIG_TEMPLATE, StorageCfg, ensure_global_config
from codeparity.db.connection import Database
from codeparity.db.schema import initialize

console = Console()


def init_cmd(
    project_dir: Annotated[
        Path,
        typer.Argument(help="Project root to scaffold (default: current directory)."),
    ] = Path("."),
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Overwrite an existing codeparity.yaml without asking."),
    ] = False,
    global_config: Annotated[
        Path | None,
        typer.Option("--global-config", hidden=True, help="Override the global config path (for testing)."),
    ] = None,
) -> None:
    """Scaffold codeparity.yaml, the vector store and the global config."""
    root = project_dir.resolve()
    root.mkdir(parents=True, exist_ok=True)
    console.print(f"\n[bold]Setting up codeparity in {root}[/]\n")

    _write_project_yaml(root / PROJECT_CONFIG_NAME, overwrite=yes)

    db_name = StorageCfg().database
    with Database(root / db_name) as conn:
        version = initialize(conn)
    console.print(f"  [green]✓[/] {db_name} (schema v{version})")

    cfg_path = ensure_global_config(global_config)
    console.print(f"  [green]✓[/] {cfg_path} (global config)")

    if not (root / ".git").exists():
        console.print(
            f"\n  [yellow]⚠[/] {root} is not a git repository. Snapshot mode reads committed\n"
            "    blobs; set  source.mode: directory  to embed the working tree instead."
        )

    console.print("\n[bold green]✓ Ready.[/]")
    console.print("\nThen:")
    console.print("  1. Edit codeparity.yaml        (source root, collections, unit patterns)")
    console.print("  2. export OPENAI_API_KEY=...   (or set api_base for a local model)")
    console.print("  3. codeparity embed            (embed new chunks)")
    console.print("  4. codeparity report           (per-unit parity reports)")


def _write_project_yaml(path: Path, *, overwrite: bool) -> None:
    if path.exists() and not overwrite:
        if not typer.confirm(f"  {path.name} exists. Overwrite?", default=False):
            console.print(f"  [dim]↷ Kept existing {path.name}[/]")
            return
    path.write_text(PROJECT_CONFIG_TEMPLATE, encoding="utf-8")
    console.print(f"  [green]✓[/] {path.name}")
