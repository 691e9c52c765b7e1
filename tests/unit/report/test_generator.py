"""Tests for comparison units and per-unit report generation."""

from __future__ import annotations

import logging

import pytest

from codeparity.config import ReportCfg, StatusCfg
from codeparity.db.ledger import LedgerRow
from codeparity.db.models import EmbeddedRecord
from codeparity.exceptions import CompletionServiceError
from codeparity.report.generator import (
    FALLBACK_NOTES,
    ComparisonUnit,
    ReportGenerator,
    build_units,
    fallback_row,
)

STATUSES = [
    StatusCfg(key="parity", header="Match?", question="Same behaviour?"),
    StatusCfg(key="test_coverage", header="Tests?", question="Same tests?"),
]


class ScriptedCompleter:
    """Returns one scripted reply per call; exceptions in the script are raised."""

    def __init__(self, replies):
        self.replies = list(replies)
        self.prompts = []
        self.systems = []

    def complete(self, system, prompt):
        self.systems.append(system)
        self.prompts.append(prompt)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


@pytest.fixture
def seeded_store(store):
    store.upsert([
        EmbeddedRecord(id="ema.py@1::chunk_0_5", vector=[1, 0, 0, 0], text="ema", category="python", origin_path="ema.py"),
    ])
    return store


# ------------------------------------------------------------------
# build_units
# ------------------------------------------------------------------


def test_build_units_groups_by_normalised_name():
    rows = [
        LedgerRow("ema.py@1::chunk_0_5", "Ema", "python", "pkg/ema.py"),
        LedgerRow("ema.rs@2::chunk_0_5", "EmaIndicator", "rust", "src/ema.rs"),
        LedgerRow("ema.rs@2::chunk_5_9", "EmaIndicator", "rust", "src/ema.rs"),
        LedgerRow("rsi.pyx@3::chunk_0_5", "rsi", "cython", "rsi.pyx"),
        LedgerRow("util.py@4::chunk_0_5", "", "python", "util.py"),
    ]
    units = build_units(rows, categories=["rust", "python"])

    assert [u.name for u in units] == ["Ema", "rsi"]
    ema = units[0]
    assert ema.key == "ema"
    assert list(ema.locations) == ["rust", "python"]
    assert ema.locations["rust"] == ["src/ema.rs"]
    assert ema.identities == ["ema.py@1::chunk_0_5", "ema.rs@2::chunk_0_5", "ema.rs@2::chunk_5_9"]


def test_build_units_unknown_categories_sorted_after_preferred():
    rows = [
        LedgerRow("a@1::chunk_0_1", "Ema", "zig", "ema.zig"),
        LedgerRow("b@1::chunk_0_1", "Ema", "cython", "ema.pyx"),
        LedgerRow("c@1::chunk_0_1", "Ema", "python", "ema.py"),
    ]
    (unit,) = build_units(rows, categories=["python"])
    assert list(unit.locations) == ["python", "cython", "zig"]


def test_build_units_name_filter_logs_unknown(caplog):
    rows = [
        LedgerRow("a@1::chunk_0_1", "Ema", "python", "ema.py"),
        LedgerRow("b@1::chunk_0_1", "Rsi", "python", "rsi.py"),
    ]
    with caplog.at_level(logging.WARNING, logger="codeparity.report.generator"):
        units = build_units(rows, names=["EMA", "Macd"])
    assert [u.name for u in units] == ["Ema"]
    assert "Macd" in caplog.text


# ------------------------------------------------------------------
# ReportGenerator
# ------------------------------------------------------------------


def _units(n: int) -> list[ComparisonUnit]:
    return [
        ComparisonUnit(key=f"u{i}", name=f"U{i}", locations={"python": [f"u{i}.py"]})
        for i in range(n)
    ]


def test_generate_one_row_per_unit_in_order(seeded_store, embedder):
    completer = ScriptedCompleter([
        '{"statuses": {"parity": "pass", "test_coverage": "pass"}, "notes": "same"}',
        '{"statuses": {"parity": "fail", "test_coverage": "pass"}, "notes": "differs"}',
    ])
    gen = ReportGenerator(seeded_store, embedder, completer, ReportCfg(top_k=1, statuses=STATUSES))
    rows = gen.generate(_units(2))

    assert [r.unit for r in rows] == ["U0", "U1"]
    assert rows[0].statuses == {"parity": "pass", "test_coverage": "pass"}
    assert rows[1].statuses["parity"] == "fail"
    assert rows[1].notes == "differs"
    assert not any(r.failed for r in rows)
    assert rows[0].locations == {"python": ["u0.py"]}


def test_generate_failures_yield_fallback_rows(seeded_store, embedder):
    completer = ScriptedCompleter([
        CompletionServiceError("timeout"),
        "not json at all",
        '{"statuses": {"parity": "pass", "test_coverage": "pass"}}',
    ])
    gen = ReportGenerator(seeded_store, embedder, completer, ReportCfg(statuses=STATUSES))
    seen = []
    rows = gen.generate(_units(3), on_unit=seen.append)

    assert len(rows) == 3
    assert seen == rows
    for row in rows[:2]:
        assert row.failed
        assert row.statuses == {"parity": "fail", "test_coverage": "fail"}
        assert row.notes == FALLBACK_NOTES
    assert not rows[2].failed


def test_generate_embedding_failure_falls_back(seeded_store):
    class BrokenEmbedder:
        def embed_batch(self, texts):
            return []

    completer = ScriptedCompleter([])
    gen = ReportGenerator(seeded_store, BrokenEmbedder(), completer, ReportCfg(statuses=STATUSES))
    (row,) = gen.generate(_units(1))
    assert row.failed
    assert completer.prompts == []


def test_fallback_row_marks_every_status_fail():
    unit = ComparisonUnit(key="ema", name="Ema", locations={"rust": ["ema.rs"]})
    row = fallback_row(unit, STATUSES)
    assert row.statuses == {"parity": "fail", "test_coverage": "fail"}
    assert row.locations == {"rust": ["ema.rs"]}
    assert row.failed


def test_generate_context_includes_the_units_own_chunks(seeded_store, embedder):
    seeded_store.upsert([
        EmbeddedRecord(id="ema.rs@2::chunk_0_5", vector=[0, 0, 0, 1], text="pub struct EmaIndicator", category="rust", origin_path="ema.rs"),
    ])
    unit = ComparisonUnit(
        key="ema",
        name="Ema",
        locations={"python": ["ema.py"], "rust": ["ema.rs"]},
        identities=["ema.py@1::chunk_0_5", "ema.rs@2::chunk_0_5"],
    )
    completer = ScriptedCompleter(['{"statuses": {"parity": "pass", "test_coverage": "pass"}}'])
    gen = ReportGenerator(seeded_store, embedder, completer, ReportCfg(top_k=1, statuses=STATUSES))
    (row,) = gen.generate([unit])

    assert not row.failed
    (system,) = completer.systems
    assert "ema.py@1::chunk_0_5" in system
    assert "pub struct EmaIndicator" in system
