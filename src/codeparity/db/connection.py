"""SQLite connection for the vector store, with sqlite-vec loaded on open."""

from __future__ import annotations

import sqlite3
from pathlib import Path

import sqlite_vec


class Database:
    """The store's SQLite file.

    ``with Database(path) as conn`` creates missing parent directories, loads
    sqlite-vec and switches the file to WAL. The connection is closed when the
    block exits, including on an exception. ``connect()`` hands out a
    connection the caller closes.

    Args:
        db_path: Path to the database file (created if missing).
        busy_timeout: Seconds to wait for a lock held by another process.
    """

    def __init__(self, db_path: Path | str, *, busy_timeout: float = 30.0) -> None:
        self.db_path = Path(db_path)
        self.busy_timeout = busy_timeout
        self._conn: sqlite3.Connection | None = None

    def connect(self) -> sqlite3.Connection:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.db_path, timeout=self.busy_timeout)
        conn.row_factory = sqlite3.Row
        _load_sqlite_vec(conn)
        conn.execute("PRAGMA journal_mode = WAL")
        conn.execute("PRAGMA synchronous = NORMAL")
        return conn

    def __enter__(self) -> sqlite3.Connection:
        self._conn = self.connect()
        return self._conn

    def __exit__(self, *exc_info: object) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None


def _load_sqlite_vec(conn: sqlite3.Connection) -> None:
    conn.enable_load_extension(True)
    try:
        sqlite_vec.load(conn)
    finally:
        conn.enable_load_extension(False)


def sqlite_vec_version(conn: sqlite3.Connection) -> str:
    """Return the loaded sqlite-vec version (e.g. ``v0.1.6``)."""
    return conn.execute("SELECT vec_version()").fetchone()[0]
