"""Vector store adapter: chunk payloads + per-model sqlite-vec embeddings.

Payloads live in ``code_chunks`` (one row per identity, ``id`` UNIQUE).
Vectors live in ``vec_code_chunks_{model_slug}`` keyed by ``code_chunks.pk``.
An identity counts as stored only when it has a vector in the current model's
table, so switching the embedding model re-queues every chunk.
"""

from __future__ import annotations

import json
import logging
import sqlite3

from codeparity.db.connection import sqlite_vec_version
from codeparity.db.models import EmbeddedRecord, SimilarRecord, StoredChunk
from codeparity.db.vectors import ensure_vec_table, list_vec_tables, model_to_slug
from codeparity.exceptions import StoreWriteError

logger = logging.getLogger(__name__)


class VectorStore:
    """Data access layer for embedded code chunks.

    Wraps an open sqlite3.Connection (sqlite-vec loaded, schema initialised).
    The connection is owned by the caller and must be closed after use.
    """

    def __init__(self, conn: sqlite3.Connection, model: str, dimensions: int) -> None:
        """Bind the store to *model* and create its vec table if needed.

        Args:
            conn: Open connection (see codeparity.db.connection.Database).
            model: LiteLLM embedding model string; selects the vec table.
            dimensions: Embedding dimensions of *model*.

        Raises:
            ConfigError: If the model's vec table exists with other dimensions.
        """
        self._conn = conn
        self.model = model
        self.dimensions = dimensions
        self.vec_table = ensure_vec_table(conn, model_to_slug(model), dimensions)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def upsert(self, records: list[EmbeddedRecord]) -> None:
        """Write *records* (payload + vector) as a single transaction.

        Re-upserting an existing id replaces its payload and vector in place.

        Raises:
            StoreWriteError: On a vector of the wrong dimension, any SQLite
                error or text SQLite cannot store. Nothing from *records* is kept.
        """
        if not records:
            return

        for record in records:
            if len(record.vector) != self.dimensions:
                raise StoreWriteError(
                    f"Vector for '{record.id}' has {len(record.vector)} dimensions, "
                    f"expected {self.dimensions} ({self.model})."
                )

        try:
            for record in records:
                self._conn.execute(
                    """
                    INSERT INTO code_chunks (id, text, category, origin_path)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        text = excluded.text,
                        category = excluded.category,
                        origin_path = excluded.origin_path
                    """,
                    (record.id, record.text, record.category, record.origin_path),
                )
                pk = self._conn.execute(
                    "SELECT pk FROM code_chunks WHERE id = ?", (record.id,)
                ).fetchone()[0]
                # vec0 has no upsert; replace explicitly
                self._conn.execute(f"DELETE FROM {self.vec_table} WHERE rowid = ?", (pk,))
                self._conn.execute(
                    f"INSERT INTO {self.vec_table}(rowid, embedding) VALUES (?, ?)",
                    (pk, json.dumps(record.vector)),
                )
            self._conn.commit()
        except (sqlite3.Error, UnicodeEncodeError) as exc:
            self._conn.rollback()
            raise StoreWriteError(
                f"Vector store write failed for {len(records)} records "
                f"(first id '{records[0].id}'): {exc}"
            ) from exc

        logger.debug("Upserted %d records into %s", len(records), self.vec_table)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_ids(self) -> set[str]:
        """Return every id that has a vector for the current model."""
        rows = self._conn.execute(
            f"SELECT id FROM code_chunks WHERE pk IN (SELECT rowid FROM {self.vec_table})"
        ).fetchall()
        return {r["id"] for r in rows}

    def all_ids(self) -> list[str]:
        """Return every stored id (any model) in insertion order."""
        rows = self._conn.execute("SELECT id FROM code_chunks ORDER BY pk").fetchall()
        return [r["id"] for r in rows]

    def count(self) -> int:
        """Return the number of ids queryable with the current model."""
        return self._conn.execute(
            f"SELECT COUNT(*) FROM {self.vec_table}"
        ).fetchone()[0]

    def total_chunks(self) -> int:
        """Return the number of stored payloads, whatever model embedded them."""
        return self._conn.execute("SELECT COUNT(*) FROM code_chunks").fetchone()[0]

    def backend_version(self) -> str:
        return sqlite_vec_version(self._conn)

    def vec_tables(self) -> list[tuple[str, int, int]]:
        """Return ``(table, dimensions, vectors)`` for every model's vec table."""
        return [
            (table, dims, self._conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0])
            for table, dims in list_vec_tables(self._conn).items()
        ]

    def get(self, chunk_id: str) -> StoredChunk | None:
        """Return the stored payload for *chunk_id*, or None if not found."""
        row = self._conn.execute(
            "SELECT id, text, category, origin_path, created_at FROM code_chunks WHERE id = ?",
            (chunk_id,),
        ).fetchone()
        return _row_to_chunk(row) if row else None

    def query_similar(self, vector: list[float], k: int = 5) -> list[SimilarRecord]:
        """Nearest-neighbour search. Returns records sorted by (distance, id)."""
        if k < 1:
            raise ValueError(f"k must be >= 1, got {k}")

        vec_rows = self._conn.execute(
            f"SELECT rowid, distance FROM {self.vec_table} "
            "WHERE embedding MATCH ? ORDER BY distance LIMIT ?",
            (json.dumps(vector), k),
        ).fetchall()

        results: list[SimilarRecord] = []
        for vec_row in vec_rows:
            row = self._conn.execute(
                "SELECT id, text, category, origin_path, created_at FROM code_chunks WHERE pk = ?",
                (vec_row["rowid"],),
            ).fetchone()
            if row is not None:
                results.append(SimilarRecord(chunk=_row_to_chunk(row), distance=vec_row["distance"]))

        results.sort(key=lambda r: (r.distance, r.chunk.id))
        return results


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------

def _row_to_chunk(row: sqlite3.Row) -> StoredChunk:
    return StoredChunk(
        id=row["id"],
        text=row["text"],
        category=row["category"],
        origin_path=row["origin_path"],
        created_at=row["created_at"],
    )
