"""Shared pytest fixtures."""

from __future__ import annotations

import hashlib
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from codeparity.cli.main import app
from codeparity.db.connection import Database
from codeparity.db.schema import initialize
from codeparity.db.store import VectorStore

TEST_MODEL = "test/fake-embedding"
TEST_DIMS = 4


class FakeEmbedder:
    """Deterministic 4-dim embedder: same text → same vector. Records every call."""

    def __init__(self) -> None:
        self.calls: list[list[str]] = []

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        return [_vector(t) for t in texts]


def _vector(text: str) -> list[float]:
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    return [b / 255.0 for b in digest[:TEST_DIMS]]


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    db = Database(tmp_path / ".codeparity.db")
    conn = db.connect()
    initialize(conn)
    yield conn
    conn.close()


@pytest.fixture
def store(tmp_db):
    """VectorStore over tmp_db with a 4-dim test model."""
    return VectorStore(tmp_db, TEST_MODEL, TEST_DIMS)


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def make_embedder():
    """Factory for additional FakeEmbedders (e.g. one per pipeline run)."""
    return FakeEmbedder


@pytest.fixture
def make_store():
    """Factory binding a test-model VectorStore to any open connection."""

    def _make(conn):
        return VectorStore(conn, TEST_MODEL, TEST_DIMS)

    return _make


# ---------------------------------------------------------------------------
# CLI project fixtures
# ---------------------------------------------------------------------------

_PROJECT_YAML = f"""\
source:
  root: src
  mode: directory
embedding:
  model: {TEST_MODEL}
  dimensions: {TEST_DIMS}
generation:
  model: test/fake-llm
"""

_EMA_PY = "from base import Indicator\n\n\nclass Ema(Indicator):\n    def update(self, x):\n        return x\n"
_EMA_RS = "pub struct EmaIndicator {\n    period: usize,\n}\n"


@pytest.fixture
def cli_project(tmp_path, monkeypatch):
    """CWD set to a project whose source tree holds one Python and one Rust 'Ema' unit.

    The global config is redirected into tmp_path and the embedding model is
    the 4-dim test model, so no API key is needed.
    """
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr("codeparity.config._GLOBAL_CONFIG_PATH", tmp_path / "no-global" / "config.yaml")
    for var in ("CODEPARITY_GENERATION_MODEL", "CODEPARITY_EMBEDDING_MODEL", "CODEPARITY_SOURCE_ROOT"):
        monkeypatch.delenv(var, raising=False)

    src = tmp_path / "src"
    src.mkdir()
    (src / "ema.py").write_text(_EMA_PY, encoding="utf-8")
    (src / "ema.rs").write_text(_EMA_RS, encoding="utf-8")
    (tmp_path / "codeparity.yaml").write_text(_PROJECT_YAML, encoding="utf-8")
    return tmp_path


@pytest.fixture
def embedded_project(cli_project):
    """cli_project after one successful `codeparity embed` run."""
    with patch("codeparity.cli.embed.LiteLLMEmbedder", return_value=FakeEmbedder()):
        result = CliRunner().invoke(app, ["embed"])
    assert result.exit_code == 0, result.output
    return cli_project
