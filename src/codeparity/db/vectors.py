"""Per-embedding-model vec0 tables: ``vec_code_chunks_<model slug>``.

Each table stores vectors keyed by ``code_chunks.pk``. The declared dimension
is read back from ``sqlite_master`` so a config change that alters
``embedding.dimensions`` for an existing model is caught before any write.
"""

from __future__ import annotations

import re
import sqlite3

from codeparity.config import ConfigError

VEC_TABLE_PREFIX = "vec_code_chunks_"

_SLUG_RE = re.compile(r"[a-z0-9_]+")
_DIMENSIONS_RE = re.compile(r"float\[(\d+)\]")


def model_to_slug(model: str) -> str:
    """Convert a provider/model string to a table-name suffix.

    >>> model_to_slug("openai/text-embedding-3-small")
    'openai_text_embedding_3_small'
    """
    return re.sub(r"[^a-z0-9]", "_", model.lower())


def vec_table_name(model_slug: str) -> str:
    """Return the vec table for *model_slug*.

    Raises:
        ValueError: If *model_slug* is not a sanitized slug (see model_to_slug()).
    """
    if not _SLUG_RE.fullmatch(model_slug):
        raise ValueError(f"Invalid model slug '{model_slug}'; use model_to_slug() to sanitize.")
    return VEC_TABLE_PREFIX + model_slug


def list_vec_tables(conn: sqlite3.Connection) -> dict[str, int]:
    """Return ``{table name: declared dimensions}`` for every vec table in the file.

    sqlite-vec's shadow tables (plain ``CREATE TABLE``) are not included.
    """
    rows = conn.execute(
        "SELECT name, sql FROM sqlite_master "
        "WHERE type = 'table' AND name LIKE ? AND sql LIKE 'CREATE VIRTUAL TABLE%' "
        "ORDER BY name",
        (VEC_TABLE_PREFIX + "%",),
    ).fetchall()
    tables: dict[str, int] = {}
    for name, sql in rows:
        match = _DIMENSIONS_RE.search(sql)
        tables[name] = int(match.group(1)) if match else 0
    return tables


def ensure_vec_table(conn: sqlite3.Connection, model_slug: str, dimensions: int) -> str:
    """Create the vec table for *model_slug* if missing and return its name.

    Raises:
        ValueError: If *model_slug* is unsanitized or *dimensions* < 1.
        ConfigError: If the table exists with a different dimension.
    """
    if dimensions < 1:
        raise ValueError(f"dimensions must be >= 1, got {dimensions}")
    table = vec_table_name(model_slug)

    existing = list_vec_tables(conn).get(table)
    if existing is None:
        conn.execute(f"CREATE VIRTUAL TABLE {table} USING vec0(embedding float[{dimensions}])")
        conn.commit()
    elif existing != dimensions:
        raise ConfigError(
            f"{table} holds {existing}-dimensional vectors but embedding.dimensions is "
            f"{dimensions}. Restore the old value or change embedding.model."
        )
    return table
