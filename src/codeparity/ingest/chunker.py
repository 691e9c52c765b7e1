"""Fixed-size line chunker for source files.

Lines are split on ``\\n`` with a trailing ``\\r`` stripped from each line. A
trailing newline does not produce an extra empty line, so an empty file yields
no chunks. Line ranges are 0-based and half-open: ``chunk_0_300`` holds lines
0..299.
"""

from __future__ import annotations

from codeparity.db.models import ContentItem
from codeparity.ingest.locator import SourceFile

DEFAULT_MAX_LINES = 300
DIGEST_PREFIX_LEN = 12


def chunk_identity(path: str, digest: str, start: int, end: int) -> str:
    """Return the stable identity ``{path}@{digest[:12]}::chunk_{start}_{end}``."""
    return f"{path}@{digest[:DIGEST_PREFIX_LEN]}::chunk_{start}_{end}"


def split_lines(text: str) -> list[str]:
    """Split *text* into lines without line terminators."""
    if not text:
        return []
    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()
    return [line[:-1] if line.endswith("\r") else line for line in lines]


class LineChunker:
    """Split decoded source text into runs of at most *max_lines* lines."""

    def __init__(self, max_lines: int = DEFAULT_MAX_LINES) -> None:
        if max_lines < 1:
            raise ValueError("max_lines must be >= 1")
        self.max_lines = max_lines

    def chunk(self, source: SourceFile, text: str, unit_name: str = "") -> list[ContentItem]:
        """Split *text* (the decoded contents of *source*) into ContentItems.

        Args:
            source: The file the text was decoded from; supplies path, digest
                and category.
            text: Decoded file contents.
            unit_name: Comparison unit the file belongs to (may be empty).

        Returns:
            Chunks in line order, each with a unique identity.
        """
        lines = split_lines(text)
        items: list[ContentItem] = []
        for start in range(0, len(lines), self.max_lines):
            end = min(start + self.max_lines, len(lines))
            items.append(
                ContentItem(
                    identity=chunk_identity(source.path, source.digest, start, end),
                    text="\n".join(lines[start:end]),
                    category=source.category,
                    origin_path=source.path,
                    unit_name=unit_name,
                    start_line=start,
                    end_line=end,
                )
            )
        return items
