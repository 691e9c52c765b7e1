"""codeparity: incremental code embedding + RAG parity reports across language ports."""

__version__ = "0.1.0"
