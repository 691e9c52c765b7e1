"""Parity report generation: one structured row per comparison unit.

For each unit, in order:
1. Embed a query naming the unit and its implementation paths.
2. Retrieve the top-K similar chunks from the vector store.
3. Ask the completion model for one JSON object (see templates.py).
4. Validate the reply into a ReportRow.

Any failure for a unit produces the fallback row (every status ``fail``,
notes ``request failed``), so N units always yield N rows in input order.
Implementation locations come from the ledger, never from the model.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from typing import Callable, Iterable, Protocol

from codeparity.config import ReportCfg, StatusCfg
from codeparity.db.ledger import LedgerRow
from codeparity.db.store import VectorStore
from codeparity.exceptions import CodeParityError
from codeparity.ingest.embedding_writer import Embedder
from codeparity.ingest.units import unit_key
from codeparity.rag.retriever import build_unit_query, retrieve, with_unit_chunks
from codeparity.report.templates import build_prompt, parse_report_json

logger = logging.getLogger(__name__)

FALLBACK_NOTES = "request failed"


class Completer(Protocol):
    def complete(self, system: str, prompt: str) -> str: ...


@dataclass
class ComparisonUnit:
    """One component and the files implementing it, per category.

    Attributes:
        key: Normalised unit name (see units.unit_key).
        name: Display name (first spelling seen in the ledger).
        locations: category → sorted origin paths.
        identities: Ledger identities of every chunk of those files.
    """

    key: str
    name: str
    locations: dict[str, list[str]] = field(default_factory=dict)
    identities: list[str] = field(default_factory=list)


@dataclass
class ReportRow:
    unit: str
    locations: dict[str, list[str]]
    statuses: dict[str, str]
    notes: str = ""
    failed: bool = False


def fallback_row(unit: ComparisonUnit, statuses: list[StatusCfg]) -> ReportRow:
    """Return the deterministic row used when a unit cannot be evaluated."""
    return ReportRow(
        unit=unit.name,
        locations=unit.locations,
        statuses={s.key: "fail" for s in statuses},
        notes=FALLBACK_NOTES,
        failed=True,
    )


def build_units(
    rows: Iterable[LedgerRow],
    categories: list[str] | None = None,
    names: list[str] | None = None,
) -> list[ComparisonUnit]:
    """Group ledger rows into comparison units.

    Rows without a unit name are retrieval context only and are ignored.

    Args:
        rows: Ledger rows (discovery order).
        categories: Preferred order of location columns; other categories
            follow alphabetically.
        names: If given, keep only units whose normalised name matches one of
            these; unmatched names are logged.

    Returns:
        Units sorted by display name (case-insensitive).
    """
    units: dict[str, ComparisonUnit] = {}
    paths: dict[str, dict[str, set[str]]] = {}
    for row in rows:
        if not row.unit_name:
            continue
        key = unit_key(row.unit_name)
        if not key:
            continue
        unit = units.setdefault(key, ComparisonUnit(key=key, name=row.unit_name))
        unit.identities.append(row.identity)
        if row.origin_path:
            paths.setdefault(key, {}).setdefault(row.category, set()).add(row.origin_path)

    order = list(categories or [])
    for key, unit in units.items():
        by_category = paths.get(key, {})
        ordered = [c for c in order if c in by_category]
        ordered += sorted(c for c in by_category if c not in order)
        unit.locations = {c: sorted(by_category[c]) for c in ordered}

    selected = list(units.values())
    if names:
        wanted = {unit_key(n): n for n in names}
        for wanted_key, raw in wanted.items():
            if wanted_key not in units:
                logger.warning("No comparison unit named '%s' in the ledger", raw)
        selected = [u for u in selected if u.key in wanted]

    selected.sort(key=lambda u: (u.name.casefold(), u.key))
    return selected


class ReportGenerator:
    """Produce one ReportRow per comparison unit.

    Args:
        store: Vector store bound to the embedding model used at ingest.
        embedder: Embeds the per-unit retrieval query.
        completer: Completion backend (see rag.llm_client.LiteLLMCompleter).
        config: Report section of the config (top_k, statuses).
    """

    def __init__(
        self,
        store: VectorStore,
        embedder: Embedder,
        completer: Completer,
        config: ReportCfg,
    ) -> None:
        self._store = store
        self._embedder = embedder
        self._completer = completer
        self.config = config

    def generate(
        self,
        units: list[ComparisonUnit],
        on_unit: Callable[[ReportRow], None] | None = None,
    ) -> list[ReportRow]:
        """Evaluate every unit. Always returns ``len(units)`` rows in input order."""
        rows: list[ReportRow] = []
        for unit in units:
            row = self._evaluate(unit)
            rows.append(row)
            if on_unit is not None:
                on_unit(row)

        failed = sum(1 for r in rows if r.failed)
        if failed:
            logger.warning("%d of %d units fell back to the failure row", failed, len(rows))
        return rows

    def _evaluate(self, unit: ComparisonUnit) -> ReportRow:
        statuses = self.config.statuses
        stage = "retrieve"
        try:
            query = build_unit_query(unit.name, unit.locations)
            records = retrieve(query, self._store, self._embedder, top_k=self.config.top_k)
            records = with_unit_chunks(unit.identities, records, self._store)
            stage = "complete"
            prompt = build_prompt(unit.name, unit.locations, records, statuses)
            reply = self._completer.complete(prompt.system_prompt, prompt.user_message)
            stage = "parse"
            parsed = parse_report_json(reply, statuses)
        except (CodeParityError, ValueError, sqlite3.Error) as exc:
            logger.warning("Unit '%s' failed at %s: %s", unit.name, stage, exc)
            return fallback_row(unit, statuses)

        return ReportRow(
            unit=unit.name,
            locations=unit.locations,
            statuses=parsed.statuses,
            notes=parsed.notes,
        )
