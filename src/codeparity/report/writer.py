"""Report writer: Markdown tables + output path guards.

Responsibilities:
  1. Render ReportRows as Markdown tables (unit, one location column per
     category, one column per status, notes). Statuses render as ✅ / ❌.
  2. Validate output paths: relative paths are confined to the working
     directory; traversal is a hard failure.
  3. Overwrite protection: existing files need confirmation (--yes skips).
  4. Write files atomically (temp file → rename).
"""

from __future__ import annotations

import os
import re
import tempfile
from pathlib import Path

import typer

from codeparity.config import StatusCfg
from codeparity.report.generator import ReportRow

STATUS_SYMBOLS = {"pass": "✅", "fail": "❌"}

_SLUG_STRIP = re.compile(r"[^a-z0-9]+")


# ------------------------------------------------------------------
# Rendering
# ------------------------------------------------------------------


def unit_slug(name: str) -> str:
    """Return a file-name-safe slug for *name* ('Moving Average' → 'moving-average')."""
    slug = _SLUG_STRIP.sub("-", name.lower()).strip("-")
    return slug or "unit"


def report_categories(rows: list[ReportRow], preferred: list[str] | None = None) -> list[str]:
    """Return the location columns for *rows*: *preferred* first, then the rest sorted."""
    seen: set[str] = set()
    for row in rows:
        seen.update(row.locations)
    order = [c for c in (preferred or []) if c in seen]
    return order + sorted(seen - set(order))


def render_table(
    rows: list[ReportRow],
    categories: list[str],
    statuses: list[StatusCfg],
    link_base: str = "",
) -> str:
    """Render *rows* as one Markdown table."""
    headers = ["Unit"] + [c.title() for c in categories] + [s.header for s in statuses] + ["Notes"]
    lines = [
        _table_line(headers),
        _table_line(["---"] * len(headers)),
    ]
    for row in rows:
        cells = [_escape(row.unit)]
        for category in categories:
            cells.append(_location_cell(row.locations.get(category, []), link_base))
        for status in statuses:
            cells.append(STATUS_SYMBOLS.get(row.statuses.get(status.key, "fail"), STATUS_SYMBOLS["fail"]))
        cells.append(_escape(row.notes))
        lines.append(_table_line(cells))
    return "\n".join(lines) + "\n"


def render_unit_report(
    row: ReportRow,
    categories: list[str],
    statuses: list[StatusCfg],
    link_base: str = "",
) -> str:
    """Render the per-unit Markdown file."""
    return f"# {row.unit}\n\n" + render_table([row], categories, statuses, link_base)


def render_aggregate(
    rows: list[ReportRow],
    categories: list[str],
    statuses: list[StatusCfg],
    link_base: str = "",
) -> str:
    """Render the aggregate comparison file for every row."""
    parts = ["# Implementation Parity", ""]
    if statuses and rows:
        totals = ", ".join(
            f"{s.header} {sum(1 for r in rows if r.statuses.get(s.key) == 'pass')}/{len(rows)}"
            for s in statuses
        )
        parts += [totals, ""]
    failed = sum(1 for r in rows if r.failed)
    if failed:
        parts += [f"{failed} unit(s) could not be evaluated and are marked as failing.", ""]
    parts.append(render_table(rows, categories, statuses, link_base))
    return "\n".join(parts)


def _location_cell(paths: list[str], link_base: str) -> str:
    if not paths:
        return "-"
    if link_base:
        base = link_base.rstrip("/")
        return "<br>".join(f"[{_escape(p)}]({base}/{p})" for p in paths)
    return "<br>".join(f"`{p}`" for p in paths)


def _escape(text: str) -> str:
    return text.replace("|", "\\|").replace("\n", " ")


def _table_line(cells: list[str]) -> str:
    return "| " + " | ".join(cells) + " |"


# ------------------------------------------------------------------
# Path validation
# ------------------------------------------------------------------


def validate_output_path(output: str | Path, allowed_base: Path | None = None) -> Path:
    """Normalize and validate an output path.

    Absolute paths are accepted as-is. Relative paths are confined to
    *allowed_base* (default: CWD).

    Raises:
        ValueError: If a relative path escapes the allowed base directory.
    """
    path = Path(output)
    if path.is_absolute():
        return path.resolve()

    base = (allowed_base or Path.cwd()).resolve()
    resolved = (base / path).resolve()
    try:
        resolved.relative_to(base)
    except ValueError:
        raise ValueError(
            f"Output path '{output}' resolves outside the allowed directory "
            f"('{base}'). Path traversal is not permitted."
        ) from None
    return resolved


# ------------------------------------------------------------------
# Overwrite guard + atomic write
# ------------------------------------------------------------------


def check_overwrite(path: Path, yes: bool) -> bool:
    """Return True if *path* may be written (missing, *yes*, or confirmed)."""
    if yes or not path.exists():
        return True
    return typer.confirm(f"  File exists: {path}\n  Overwrite?", default=False)


def write_output(path: Path, content: str) -> None:
    """Write *content* to *path* atomically, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(tmp_path, path)
    except OSError:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise
