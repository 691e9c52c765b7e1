"""Exception taxonomy for the codeparity pipeline.

Scope of each error:
  DiscoveryError, DecodeError   → per file; logged and skipped by the locator stage
  EmbeddingServiceError,
  StoreWriteError               → per batch; the batch stays unprocessed for the next run
  CompletionServiceError        → per report unit; replaced by a fallback row
  LedgerIOError                 → fatal; the run stops
  SchemaError                   → fatal; the database was written by a newer version
"""

from __future__ import annotations


class CodeParityError(Exception):
    """Base class for all codeparity errors."""


class DiscoveryError(CodeParityError):
    """A file or subtree could not be read during discovery."""


class DecodeError(CodeParityError):
    """A discovered file is not valid UTF-8 text."""


class EmbeddingServiceError(CodeParityError):
    """The embedding service failed (or returned a malformed response) for a batch."""


class StoreWriteError(CodeParityError):
    """Writing a batch of records to the vector store failed."""


class CompletionServiceError(CodeParityError):
    """The completion service failed (or returned unusable output) for one unit."""


class LedgerIOError(CodeParityError):
    """The tracking ledger could not be read or written."""


class SchemaError(CodeParityError):
    """The database schema is newer than this codeparity, or unusable."""
