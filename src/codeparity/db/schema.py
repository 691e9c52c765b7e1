"""Database initialisation shared by every command."""

from __future__ import annotations

import logging
import sqlite3

from codeparity.db.migrations import run_migrations, schema_version

logger = logging.getLogger(__name__)


def initialize(conn: sqlite3.Connection) -> int:
    """Bring the payload schema up to date and return its version.

    Safe to call on every open.

    Raises:
        SchemaError: If the file was written by a newer codeparity.
    """
    applied = run_migrations(conn)
    version = schema_version(conn)
    if applied:
        logger.info("Database schema migrated to version %d", version)
    return version
