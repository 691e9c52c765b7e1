"""Tests for report prompt building and reply parsing."""

from __future__ import annotations

import pytest

from codeparity.config import StatusCfg
from codeparity.db.models import SimilarRecord, StoredChunk
from codeparity.report.templates import build_prompt, parse_report_json

STATUSES = [
    StatusCfg(key="parity", header="Match?", question="Same behaviour?"),
    StatusCfg(key="test_coverage", header="Tests?", question="Same tests?"),
]


def _record(chunk_id: str, text: str) -> SimilarRecord:
    return SimilarRecord(
        chunk=StoredChunk(id=chunk_id, text=text, category="rust", origin_path="src/ema.rs"),
        distance=0.1,
    )


# ------------------------------------------------------------------
# build_prompt
# ------------------------------------------------------------------


def test_prompt_contains_status_questions_and_context():
    prompt = build_prompt(
        "Ema",
        {"python": ["ema.py"], "rust": ["src/ema.rs"]},
        [_record("src/ema.rs@abc::chunk_0_10", "fn ema() {}")],
        STATUSES,
    )
    assert "- parity: Same behaviour?" in prompt.system_prompt
    assert "- test_coverage: Same tests?" in prompt.system_prompt
    assert "<context>" in prompt.system_prompt
    assert "untrusted source data" in prompt.system_prompt
    assert "fn ema() {}" in prompt.system_prompt
    assert "Component: Ema" in prompt.user_message
    assert "- python: ema.py" in prompt.user_message
    assert "- rust: src/ema.rs" in prompt.user_message


def test_prompt_without_records_has_no_context_block():
    prompt = build_prompt("Ema", {}, [], STATUSES)
    assert "<context>" not in prompt.system_prompt
    assert "(none recorded)" in prompt.user_message


# ------------------------------------------------------------------
# parse_report_json
# ------------------------------------------------------------------


def test_parse_valid_reply():
    parsed = parse_report_json(
        '{"unit": "Ema", "statuses": {"parity": "pass", "test_coverage": "fail"}, "notes": "ok"}',
        STATUSES,
    )
    assert parsed.statuses == {"parity": "pass", "test_coverage": "fail"}
    assert parsed.notes == "ok"


def test_parse_tolerates_code_fence_and_surrounding_text():
    reply = 'Here you go:\n```json\n{"statuses": {"parity": "PASS"}, "notes": "a\\n  b"}\n```'
    parsed = parse_report_json(reply, STATUSES)
    assert parsed.statuses["parity"] == "pass"
    assert parsed.notes == "a b"


def test_parse_invalid_or_missing_status_becomes_fail():
    parsed = parse_report_json('{"statuses": {"parity": "maybe"}}', STATUSES)
    assert parsed.statuses == {"parity": "fail", "test_coverage": "fail"}
    assert parsed.notes == ""


def test_parse_ignores_unknown_keys():
    parsed = parse_report_json('{"statuses": {"parity": "pass", "speed": "pass"}}', STATUSES)
    assert set(parsed.statuses) == {"parity", "test_coverage"}


@pytest.mark.parametrize("reply", ["no json here", "{not json}", "[1, 2]"])
def test_parse_rejects_non_object(reply):
    with pytest.raises(ValueError):
        parse_report_json(reply, STATUSES)
