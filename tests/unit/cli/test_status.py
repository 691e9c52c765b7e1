"""Tests for `codeparity status`."""

from __future__ import annotations

from typer.testing import CliRunner

from codeparity.cli.main import app
from codeparity.db.connection import Database
from codeparity.db.ledger import Ledger

runner = CliRunner()


def test_status_without_db(cli_project) -> None:
    result = runner.invoke(app, ["status"])
    assert result.exit_code == 0, result.output
    assert "No database found" in result.output
    assert "Ledger" in result.output


def test_status_after_embed(embedded_project) -> None:
    result = runner.invoke(app, ["status"])
    assert result.exit_code == 0, result.output
    assert "Ledger and store agree" in result.output
    assert "Units (1)" in result.output
    assert "Ema" in result.output
    assert "vec_code_chunks_" in result.output


def test_status_reports_rows_missing_from_store(embedded_project) -> None:
    with Database(embedded_project / ".codeparity.db") as conn:
        conn.execute("DELETE FROM code_chunks")
        conn.commit()

    result = runner.invoke(app, ["status"])
    assert result.exit_code == 0, result.output
    assert "missing from the store" in result.output


def test_status_reports_store_rows_unknown_to_ledger(embedded_project) -> None:
    ledger_path = embedded_project / "ledger.csv"
    ledger = Ledger.open(ledger_path)
    ledger_path.unlink()
    assert len(ledger) == 2

    result = runner.invoke(app, ["status"])
    assert result.exit_code == 0, result.output
    assert "not marked processed" in result.output


def test_status_shows_vector_backend(embedded_project) -> None:
    result = runner.invoke(app, ["status"])
    assert result.exit_code == 0, result.output
    assert "sqlite-vec v" in result.output
    assert "4 dims, 2 vectors" in result.output


def test_status_rejects_changed_dimensions(embedded_project) -> None:
    cfg_path = embedded_project / "codeparity.yaml"
    cfg_path.write_text(cfg_path.read_text().replace("dimensions: 4", "dimensions: 8"), encoding="utf-8")

    result = runner.invoke(app, ["status"])
    assert result.exit_code == 1
    assert "Invalid configuration" in result.output


def test_status_rejects_newer_schema(embedded_project) -> None:
    with Database(embedded_project / ".codeparity.db") as conn:
        conn.execute("INSERT INTO schema_version (version) VALUES (999)")
        conn.commit()

    result = runner.invoke(app, ["status"])
    assert result.exit_code == 1
    assert "Upgrade codeparity" in result.output
