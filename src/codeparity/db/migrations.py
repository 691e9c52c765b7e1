"""Forward-only migrations for the chunk payload table.

Each migration runs once, in version order, and is recorded in
``schema_version``. The per-model vec tables are created on demand by
vectors.ensure_vec_table() and are not versioned here.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import NamedTuple

from codeparity.exceptions import SchemaError

logger = logging.getLogger(__name__)


class Migration(NamedTuple):
    version: int
    description: str
    sql: str


_BOOTSTRAP = """
CREATE TABLE IF NOT EXISTS schema_version (
    version      INTEGER PRIMARY KEY,
    description  TEXT NOT NULL DEFAULT '',
    applied_at   TEXT NOT NULL DEFAULT (datetime('now'))
)
"""

# Append-only. executescript() commits before it runs.
MIGRATIONS: list[Migration] = [
    Migration(
        1,
        "code_chunks payload table",
        """
        CREATE TABLE IF NOT EXISTS code_chunks (
            pk           INTEGER PRIMARY KEY,
            id           TEXT NOT NULL UNIQUE,
            text         TEXT NOT NULL,
            category     TEXT NOT NULL,
            origin_path  TEXT NOT NULL,
            created_at   TEXT NOT NULL DEFAULT (datetime('now'))
        );
        CREATE INDEX IF NOT EXISTS idx_code_chunks_origin_path ON code_chunks(origin_path);
        """,
    ),
]

CURRENT_VERSION = MIGRATIONS[-1].version


def schema_version(conn: sqlite3.Connection) -> int:
    """Return the highest applied version (0 for a fresh database)."""
    conn.execute(_BOOTSTRAP)
    return conn.execute("SELECT COALESCE(MAX(version), 0) FROM schema_version").fetchone()[0]


def run_migrations(conn: sqlite3.Connection) -> list[int]:
    """Apply every pending migration and return the versions applied.

    Raises:
        SchemaError: If the database was migrated by a newer codeparity.
    """
    current = schema_version(conn)
    if current > CURRENT_VERSION:
        raise SchemaError(
            f"Database schema version {current} is newer than this codeparity "
            f"(knows up to {CURRENT_VERSION})."
        )

    applied: list[int] = []
    for migration in MIGRATIONS:
        if migration.version <= current:
            continue
        conn.executescript(migration.sql)
        conn.execute(
            "INSERT INTO schema_version (version, description) VALUES (?, ?)",
            (migration.version, migration.description),
        )
        conn.commit()
        logger.debug("Applied migration %d (%s)", migration.version, migration.description)
        applied.append(migration.version)
    return applied
