"""codeparity CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from codeparity.cli.embed import embed_cmd
from codeparity.cli.ids import ids_cmd
from codeparity.cli.init import init_cmd
from codeparity.cli.report import report_cmd
from codeparity.cli.status import status_cmd


def _installed_version() -> str:
    try:
        return importlib.metadata.version("codeparity")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"codeparity {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="codeparity",
    help=(
        "codeparity: incremental code embedding + cross-language parity reports.\n\n"
        "  codeparity embed   Embed new code chunks from a git snapshot or directory.\n"
        "  codeparity report  Compare each unit's implementations via RAG + LLM."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
) -> None:
    """codeparity: incremental code embedding + cross-language parity reports."""


app.command("init")(init_cmd)
app.command("embed")(embed_cmd)
app.command("report")(report_cmd)
app.command("status")(status_cmd)
app.command("ids")(ids_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed codeparity version."""
    typer.echo(f"codeparity {_installed_version()}")


if __name__ == "__main__":
    app()
