"""One parameterised ingest pipeline: locate → chunk → dedup → batch-embed.

Every stage hands an explicit list to the next one. The ledger is reconciled
against the store before anything is embedded, so a crash between a store
write and the ledger save is repaired on the next run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from codeparity.config import CodeParityConfig, CollectionCfg
from codeparity.db.ledger import Ledger, ReconcileResult
from codeparity.db.models import ContentItem
from codeparity.db.store import VectorStore
from codeparity.exceptions import DecodeError
from codeparity.ingest.chunker import DEFAULT_MAX_LINES, LineChunker
from codeparity.ingest.embedding_writer import (
    DEFAULT_BATCH_SIZE,
    Embedder,
    EmbeddingWriter,
    EmbedSummary,
    dedupe,
)
from codeparity.ingest.locator import DirectoryLocator, SnapshotLocator, decode_text, make_locator
from codeparity.ingest.units import compile_unit_pattern, resolve_unit_name

logger = logging.getLogger(__name__)


@dataclass
class PipelineConfig:
    """Everything one embedding run needs besides the service handles."""

    root: Path
    collections: list[CollectionCfg]
    mode: str = "snapshot"
    revision: str = "HEAD"
    max_lines: int = DEFAULT_MAX_LINES
    batch_size: int = DEFAULT_BATCH_SIZE

    @classmethod
    def from_config(cls, cfg: CodeParityConfig, project_dir: Path) -> "PipelineConfig":
        """Build from the loaded config; a relative source root is taken from *project_dir*."""
        root = Path(cfg.source.root).expanduser()
        if not root.is_absolute():
            root = project_dir / root
        return cls(
            root=root,
            collections=cfg.collections,
            mode=cfg.source.mode,
            revision=cfg.source.revision,
            max_lines=cfg.chunking.max_lines,
            batch_size=cfg.embedding.batch_size,
        )

    def make_locator(self) -> DirectoryLocator | SnapshotLocator:
        return make_locator(self.root, self.mode, self.revision, self.collections)


@dataclass
class CollectResult:
    items: list[ContentItem]
    files: int = 0
    skipped_files: list[str] = field(default_factory=list)


@dataclass
class PipelineResult:
    """Outcome of run_pipeline().

    Attributes:
        source: Human-readable description of the scanned snapshot.
        files: Files chunked.
        skipped_files: Paths skipped as unreadable or not UTF-8.
        chunks: ContentItems produced by the chunker.
        reconcile: Ledger repairs made before embedding.
        summary: Embedding counters (all zero embedded in a dry run).
        dry_run: True if nothing was embedded or saved.
    """

    source: str
    files: int
    skipped_files: list[str]
    chunks: int
    reconcile: ReconcileResult
    summary: EmbedSummary
    dry_run: bool = False


# ------------------------------------------------------------------
# Stages
# ------------------------------------------------------------------


def collect(
    locator: DirectoryLocator | SnapshotLocator,
    chunker: LineChunker,
    collections: list[CollectionCfg],
) -> CollectResult:
    """Decode, name and chunk every file the locator yields."""
    patterns = {
        c.category: compile_unit_pattern(c.unit_pattern) if c.unit_pattern else None
        for c in collections
    }
    result = CollectResult(items=[])
    for source in locator:
        try:
            text = decode_text(source)
        except DecodeError as exc:
            logger.warning("Skipping %s", exc)
            result.skipped_files.append(source.path)
            continue
        unit_name = resolve_unit_name(source.path, text, patterns.get(source.category))
        result.items.extend(chunker.chunk(source, text, unit_name=unit_name))
        result.files += 1

    result.skipped_files.extend(locator.skipped)
    logger.info(
        "Collected %d chunks from %d files (%d skipped)",
        len(result.items),
        result.files,
        len(result.skipped_files),
    )
    return result


def select_new(
    items: list[ContentItem],
    ledger: Ledger,
    store_ids: set[str],
) -> list[ContentItem]:
    """Return the items that are neither processed in *ledger* nor in *store_ids*."""
    return [
        item
        for item in dedupe(items)
        if not ledger.lookup(item.identity) and item.identity not in store_ids
    ]


def run_pipeline(
    config: PipelineConfig,
    store: VectorStore,
    ledger: Ledger,
    embedder: Embedder | None,
    *,
    dry_run: bool = False,
    on_progress: Callable[[int], None] | None = None,
    on_start: Callable[[int], None] | None = None,
) -> PipelineResult:
    """Run one incremental embedding pass.

    Args:
        config: Source, chunking and batching parameters.
        store: Vector store bound to the embedding model.
        ledger: Loaded ledger.
        embedder: Embedding backend; may be None for a dry run.
        dry_run: Collect and count only; nothing is embedded or saved.
        on_progress: Forwarded to EmbeddingWriter.write().
        on_start: Called with the number of pending items before embedding.

    Raises:
        ConfigError: If the source root or revision is invalid.
        LedgerIOError: If the ledger cannot be saved.
    """
    locator = config.make_locator()
    chunker = LineChunker(config.max_lines)
    collected = collect(locator, chunker, config.collections)

    for item in collected.items:
        ledger.record_discovered(item)
    store_ids = store.list_ids()
    reconcile = ledger.reconcile(store_ids)

    pending = select_new(collected.items, ledger, store_ids)
    unique = len(dedupe(collected.items))
    skipped = unique - len(pending)

    if dry_run or embedder is None:
        summary = EmbedSummary(discovered=unique, skipped=skipped)
        logger.info("Dry run: %d of %d chunks would be embedded", len(pending), unique)
    else:
        ledger.save()
        if on_start is not None:
            on_start(len(pending))
        writer = EmbeddingWriter(store, ledger, embedder, batch_size=config.batch_size)
        summary = writer.write(pending, on_progress=on_progress)
        summary.discovered = unique
        summary.skipped = skipped

    return PipelineResult(
        source=locator.describe(),
        files=collected.files,
        skipped_files=collected.skipped_files,
        chunks=len(collected.items),
        reconcile=reconcile,
        summary=summary,
        dry_run=dry_run or embedder is None,
    )
