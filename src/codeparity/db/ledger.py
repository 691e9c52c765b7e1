"""CSV tracking ledger: one row per discovered chunk + its processed flag.

File format (header row first):

    identity,unit_name,category,origin_path,processed

Loading is lenient: extra columns are ignored, missing columns default to an
empty string (``processed`` defaults to false), and the column names written by
older runs (``filename``, ``indicator_name``, ``extension``, ``language``,
``file_path``, ``embedded``) are read as their current equivalents.

Saving rewrites the whole file through a temp file + ``os.replace`` so an
interrupted write leaves the previous ledger intact.
"""

from __future__ import annotations

import csv
import logging
import os
import tempfile
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Iterable

from codeparity.db.models import ContentItem
from codeparity.exceptions import LedgerIOError

logger = logging.getLogger(__name__)

COLUMNS: tuple[str, ...] = ("identity", "unit_name", "category", "origin_path", "processed")

_LEGACY_COLUMNS: dict[str, str] = {
    "filename": "identity",
    "indicator_name": "unit_name",
    "extension": "category",
    "language": "category",
    "file_path": "origin_path",
    "embedded": "processed",
}

_TRUE_VALUES = frozenset({"true", "1", "yes", "y", "t"})


@dataclass
class LedgerRow:
    identity: str
    unit_name: str = ""
    category: str = ""
    origin_path: str = ""
    processed: bool = False


@dataclass
class ReconcileResult:
    """Outcome of cross-checking the ledger against the store's key set.

    Attributes:
        requeued: Identities claimed processed but missing from the store.
        confirmed: Identities found in the store but not yet marked processed.
    """

    requeued: list[str] = field(default_factory=list)
    confirmed: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.requeued or self.confirmed)


class Ledger:
    """In-memory view of the ledger file with explicit load/save.

    Rows keep their discovery order. Identities are unique; the first row
    read for an identity wins.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self._rows: dict[str, LedgerRow] = {}

    def __len__(self) -> int:
        return len(self._rows)

    def __contains__(self, identity: object) -> bool:
        return identity in self._rows

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    @classmethod
    def open(cls, path: Path | str) -> "Ledger":
        """Create a ledger bound to *path* and load it (missing file = empty)."""
        ledger = cls(path)
        ledger.load()
        return ledger

    def load(self) -> None:
        """Replace the in-memory rows with the contents of the ledger file.

        Raises:
            LedgerIOError: If the file exists but cannot be read or parsed.
        """
        self._rows = {}
        if not self.path.exists():
            logger.info("No ledger at %s; starting empty", self.path)
            return

        try:
            with self.path.open("r", encoding="utf-8-sig", newline="") as fh:
                reader = csv.DictReader(fh)
                for line_no, raw in enumerate(reader, start=2):
                    row = _parse_row(raw)
                    if row is None:
                        logger.warning("Ledger %s line %d has no identity; ignored", self.path, line_no)
                        continue
                    if row.identity in self._rows:
                        logger.debug("Duplicate ledger identity %s; keeping first", row.identity)
                        continue
                    self._rows[row.identity] = row
        except (OSError, csv.Error, UnicodeDecodeError) as exc:
            raise LedgerIOError(f"Cannot read ledger '{self.path}': {exc}") from exc

        logger.info("Loaded %d ledger rows from %s", len(self._rows), self.path)

    def save(self) -> None:
        """Atomically rewrite the ledger file with the current rows.

        Raises:
            LedgerIOError: If the file cannot be written.
        """
        tmp_path: str | None = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as fh:
                writer = csv.writer(fh)
                writer.writerow(COLUMNS)
                for row in self._rows.values():
                    writer.writerow(
                        [
                            row.identity,
                            row.unit_name,
                            row.category,
                            row.origin_path,
                            "true" if row.processed else "false",
                        ]
                    )
            os.replace(tmp_path, self.path)
        except (OSError, csv.Error, UnicodeEncodeError) as exc:
            if tmp_path is not None:
                try:
                    os.unlink(tmp_path)
                except OSError:
                    pass
            raise LedgerIOError(f"Cannot write ledger '{self.path}': {exc}") from exc

    # ------------------------------------------------------------------
    # Row operations
    # ------------------------------------------------------------------

    def lookup(self, identity: str) -> bool:
        """Return the processed flag for *identity* (False if never discovered)."""
        row = self._rows.get(identity)
        return row.processed if row else False

    def get(self, identity: str) -> LedgerRow | None:
        row = self._rows.get(identity)
        return replace(row) if row else None

    def record_discovered(self, item: ContentItem) -> bool:
        """Add a row for *item* if its identity is new. Returns True if added.

        An existing row is never modified here: its processed flag is only
        changed by mark_processed() and reconcile().
        """
        if item.identity in self._rows:
            return False
        self._rows[item.identity] = LedgerRow(
            identity=item.identity,
            unit_name=item.unit_name,
            category=item.category,
            origin_path=item.origin_path,
            processed=False,
        )
        return True

    def mark_processed(self, identities: Iterable[str]) -> None:
        """Flag every identity in *identities* as processed.

        Raises:
            KeyError: If an identity was never recorded as discovered.
        """
        ids = list(identities)
        missing = [i for i in ids if i not in self._rows]
        if missing:
            raise KeyError(f"Identity not in ledger: {missing[0]}")
        for identity in ids:
            self._rows[identity].processed = True

    def processed_ids(self) -> set[str]:
        return {r.identity for r in self._rows.values() if r.processed}

    def snapshot(self) -> list[LedgerRow]:
        """Return copies of all rows in discovery order."""
        return [replace(r) for r in self._rows.values()]

    def reconcile(self, store_ids: set[str]) -> ReconcileResult:
        """Make the processed flags agree with the store's key set.

        A row claiming processed whose identity is absent from *store_ids*
        (e.g. a crash between the two writes) is re-queued; a row whose
        identity is present is marked processed.
        """
        result = ReconcileResult()
        for row in self._rows.values():
            in_store = row.identity in store_ids
            if row.processed and not in_store:
                row.processed = False
                result.requeued.append(row.identity)
            elif in_store and not row.processed:
                row.processed = True
                result.confirmed.append(row.identity)

        if result.requeued:
            logger.warning(
                "Ledger reconciliation: %d rows marked processed are missing from the store; re-queued",
                len(result.requeued),
            )
            for identity in result.requeued:
                logger.debug("Re-queued %s", identity)
        if result.confirmed:
            logger.info(
                "Ledger reconciliation: %d rows already stored; marked processed",
                len(result.confirmed),
            )
        return result


# ------------------------------------------------------------------
# Parsing helpers
# ------------------------------------------------------------------

def parse_bool(value: str | None) -> bool:
    """Parse a ledger boolean. Empty / missing / unrecognised values are False."""
    if value is None:
        return False
    return value.strip().lower() in _TRUE_VALUES


def _parse_row(raw: dict[str | None, str | list[str] | None]) -> LedgerRow | None:
    values: dict[str, str] = {}
    for key, value in raw.items():
        # DictReader puts surplus cells under the None key
        if key is None or not isinstance(value, (str, type(None))):
            continue
        name = key.strip().lower()
        canonical = _LEGACY_COLUMNS.get(name, name)
        if canonical not in COLUMNS:
            continue
        # a current column name beats its legacy alias
        if canonical in values and name != canonical:
            continue
        values[canonical] = (value or "").strip()

    identity = values.get("identity", "")
    if not identity:
        return None
    return LedgerRow(
        identity=identity,
        unit_name=values.get("unit_name", ""),
        category=values.get("category", ""),
        origin_path=values.get("origin_path", ""),
        processed=parse_bool(values.get("processed")),
    )
