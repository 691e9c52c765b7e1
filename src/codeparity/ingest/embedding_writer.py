"""Batch embedding orchestrator: embed → store → mark processed.

Per batch, strictly in this order:
1. One multi-document embedding call for the whole batch.
2. One store transaction upserting every record of the batch.
3. Mark the batch's identities processed in the ledger and save it.

A batch whose embedding call or store write fails is logged and left
unprocessed for the next run; later batches still run. Ledger I/O errors are
fatal and propagate.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterator, Protocol

from codeparity.db.ledger import Ledger
from codeparity.db.models import ContentItem, EmbeddedRecord
from codeparity.db.store import VectorStore
from codeparity.exceptions import EmbeddingServiceError, StoreWriteError

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 50


class Embedder(Protocol):
    """Anything that turns a list of texts into one vector per text, in order."""

    def embed_batch(self, texts: list[str]) -> list[list[float]]: ...


@dataclass
class EmbedSummary:
    """Counters for one embedding run.

    Attributes:
        discovered: Items found in the snapshot.
        skipped: Items already processed or already in the store.
        embedded: Items committed to the store during this run.
        batches: Batches attempted.
        failed_batches: Batches aborted by an embedding or store failure.
        errors: One message per failed batch.
    """

    discovered: int = 0
    skipped: int = 0
    embedded: int = 0
    batches: int = 0
    failed_batches: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def pending(self) -> int:
        """Items still waiting for a successful batch."""
        return self.discovered - self.skipped - self.embedded

    def __str__(self) -> str:
        return (
            f"discovered={self.discovered} skipped={self.skipped} "
            f"embedded={self.embedded} batches={self.batches} "
            f"failed_batches={self.failed_batches}"
        )


def iter_batches(items: list[ContentItem], batch_size: int) -> Iterator[list[ContentItem]]:
    """Yield consecutive slices of *items* of at most *batch_size*."""
    for i in range(0, len(items), batch_size):
        yield items[i : i + batch_size]


def dedupe(items: list[ContentItem]) -> list[ContentItem]:
    """Drop repeated identities; the first occurrence wins."""
    seen: set[str] = set()
    unique: list[ContentItem] = []
    for item in items:
        if item.identity in seen:
            continue
        seen.add(item.identity)
        unique.append(item)
    return unique


class EmbeddingWriter:
    """Embed pending ContentItems in batches and persist them.

    Args:
        store: Vector store bound to the embedding model.
        ledger: Loaded ledger; saved after every committed batch.
        embedder: Embedding backend (see codeparity.rag.llm_client.LiteLLMEmbedder).
        batch_size: Items per embedding call / store transaction.
    """

    def __init__(
        self,
        store: VectorStore,
        ledger: Ledger,
        embedder: Embedder,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self._store = store
        self._ledger = ledger
        self._embedder = embedder
        self.batch_size = batch_size

    def write(
        self,
        items: list[ContentItem],
        on_progress: Callable[[int], None] | None = None,
    ) -> EmbedSummary:
        """Embed and store *items*, committing batch by batch.

        *items* should already exclude identities that are processed or stored;
        duplicates are collapsed here. Every item is recorded in the ledger as
        discovered before the first batch runs.

        Args:
            items: Pending items in discovery order.
            on_progress: Called with the number of items committed after each
                successful batch.

        Raises:
            LedgerIOError: If the ledger cannot be saved.
        """
        pending = dedupe(items)
        summary = EmbedSummary(discovered=len(pending))

        for item in pending:
            self._ledger.record_discovered(item)

        for number, batch in enumerate(iter_batches(pending, self.batch_size), start=1):
            summary.batches += 1
            error = self._write_batch(number, batch)
            if error is not None:
                summary.failed_batches += 1
                summary.errors.append(error)
                continue
            summary.embedded += len(batch)
            if on_progress is not None:
                on_progress(len(batch))

        logger.info("Embedding run finished: %s", summary)
        return summary

    def _write_batch(self, number: int, batch: list[ContentItem]) -> str | None:
        """Commit one batch. Returns an error message if it was aborted."""
        first, last = batch[0].identity, batch[-1].identity
        stage = "embed"
        try:
            vectors = self._embedder.embed_batch([item.text for item in batch])
            if len(vectors) != len(batch):
                raise EmbeddingServiceError(
                    f"expected {len(batch)} vectors, got {len(vectors)}"
                )
            stage = "store"
            self._store.upsert(
                [
                    EmbeddedRecord(
                        id=item.identity,
                        vector=vector,
                        text=item.text,
                        category=item.category,
                        origin_path=item.origin_path,
                    )
                    for item, vector in zip(batch, vectors)
                ]
            )
        except (EmbeddingServiceError, StoreWriteError) as exc:
            message = f"batch {number} ({stage}) failed [{first} .. {last}]: {exc}"
            logger.error("Embedding %s", message)
            return message

        self._ledger.mark_processed(item.identity for item in batch)
        self._ledger.save()
        logger.debug("Committed batch %d (%d items)", number, len(batch))
        return None
