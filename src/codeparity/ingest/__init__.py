"""codeparity ingest pipeline: locators, line chunker, unit detection, batch embedding."""

from codeparity.ingest.chunker import LineChunker, chunk_identity
from codeparity.ingest.embedding_writer import EmbeddingWriter, EmbedSummary
from codeparity.ingest.locator import DirectoryLocator, SnapshotLocator, SourceFile
from codeparity.ingest.pipeline import PipelineConfig, run_pipeline

__all__ = [
    "DirectoryLocator",
    "EmbedSummary",
    "EmbeddingWriter",
    "LineChunker",
    "PipelineConfig",
    "SnapshotLocator",
    "SourceFile",
    "chunk_identity",
    "run_pipeline",
]
