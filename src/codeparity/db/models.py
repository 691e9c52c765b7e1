"""Domain models shared by the ingest, storage and report layers."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ContentItem:
    """A bounded chunk of one discovered source file.

    ``identity`` is derived from the file path, the content digest and the
    line range, so re-chunking unchanged content yields the same identity.
    """

    identity: str
    text: str
    category: str
    origin_path: str
    unit_name: str = ""
    start_line: int = 0
    end_line: int = 0


@dataclass
class EmbeddedRecord:
    id: str
    vector: list[float]
    text: str
    category: str
    origin_path: str


@dataclass
class StoredChunk:
    """Payload of a stored record, as returned by lookups and similarity queries."""

    id: str
    text: str
    category: str
    origin_path: str
    created_at: str | None = None


@dataclass
class SimilarRecord:
    chunk: StoredChunk
    distance: float
