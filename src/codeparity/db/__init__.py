"""codeparity storage: the SQLite + sqlite-vec chunk store and the CSV ledger."""

from codeparity.db.connection import Database
from codeparity.db.ledger import Ledger, LedgerRow, ReconcileResult
from codeparity.db.schema import initialize
from codeparity.db.store import VectorStore

__all__ = ["Database", "Ledger", "LedgerRow", "ReconcileResult", "VectorStore", "initialize"]
