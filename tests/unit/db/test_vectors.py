"""Tests for per-model sqlite-vec tables."""

from __future__ import annotations

import pytest

from codeparity.config import ConfigError
from codeparity.db.vectors import ensure_vec_table, list_vec_tables, model_to_slug, vec_table_name


@pytest.mark.parametrize("model,expected", [
    ("openai/text-embedding-3-small", "openai_text_embedding_3_small"),
    ("cohere/embed-english-v3.0", "cohere_embed_english_v3_0"),
    ("ollama/nomic-embed-text", "ollama_nomic_embed_text"),
])
def test_model_to_slug(model, expected):
    assert model_to_slug(model) == expected


def test_vec_table_name_rejects_unsanitized_slug():
    assert vec_table_name("m_1") == "vec_code_chunks_m_1"
    with pytest.raises(ValueError, match="model_to_slug"):
        vec_table_name("openai/bad; DROP TABLE")


def test_ensure_vec_table_creates_and_lists(tmp_db):
    table = ensure_vec_table(tmp_db, "openai_text_embedding_3_small", dimensions=1536)
    assert table == "vec_code_chunks_openai_text_embedding_3_small"
    assert list_vec_tables(tmp_db) == {table: 1536}


def test_list_vec_tables_ignores_shadow_tables(tmp_db):
    ensure_vec_table(tmp_db, "a", dimensions=4)
    ensure_vec_table(tmp_db, "b", dimensions=8)
    assert list_vec_tables(tmp_db) == {"vec_code_chunks_a": 4, "vec_code_chunks_b": 8}


def test_ensure_vec_table_idempotent(tmp_db):
    assert ensure_vec_table(tmp_db, "m", dimensions=4) == ensure_vec_table(tmp_db, "m", dimensions=4)


def test_ensure_vec_table_dimension_change_is_config_error(tmp_db):
    ensure_vec_table(tmp_db, "m", dimensions=4)
    with pytest.raises(ConfigError, match="4-dimensional"):
        ensure_vec_table(tmp_db, "m", dimensions=8)


def test_ensure_vec_table_rejects_zero_dimensions(tmp_db):
    with pytest.raises(ValueError, match="dimensions"):
        ensure_vec_table(tmp_db, "m", dimensions=0)
