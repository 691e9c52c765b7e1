"""Content locators: git commit snapshots and live directory trees.

Both locators yield ``SourceFile`` objects sorted by their root-relative posix
path, so a given snapshot always produces the same sequence. Iterating again
restarts discovery from scratch.

Snapshot mode security:
- git is always invoked with shell=False and an argument list.
- The revision is resolved with ``rev-parse --verify`` before use.
"""

from __future__ import annotations

import hashlib
import logging
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Iterator

from codeparity.config import CollectionCfg, ConfigError
from codeparity.exceptions import DecodeError, DiscoveryError

logger = logging.getLogger(__name__)

_SYMLINK_MODE = "120000"


@dataclass(frozen=True)
class SourceFile:
    """One discovered file.

    Attributes:
        path: Posix path relative to the content root.
        data: Raw file bytes.
        digest: Git blob object id of *data* (sha1 hex).
        category: Category of the collection the path matched.
    """

    path: str
    data: bytes
    digest: str
    category: str


def blob_digest(data: bytes) -> str:
    """Return the git blob object id for *data* (same value as ``git hash-object``)."""
    h = hashlib.sha1()
    h.update(f"blob {len(data)}\0".encode("ascii"))
    h.update(data)
    return h.hexdigest()


def decode_text(source: SourceFile) -> str:
    """Decode *source* as UTF-8 text.

    Raises:
        DecodeError: If the bytes are not valid UTF-8.
    """
    try:
        return source.data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise DecodeError(f"{source.path} is not UTF-8 text: {exc}") from exc


def _printable(path: str) -> str:
    """Return *path* with bytes that are not UTF-8 shown as U+FFFD."""
    return path.encode("utf-8", errors="surrogateescape").decode("utf-8", errors="replace")


def _is_utf8_name(path: str) -> bool:
    try:
        path.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


# ------------------------------------------------------------------
# Path classification
# ------------------------------------------------------------------


def _normalize_prefix(prefix: str) -> str:
    prefix = prefix.replace("\\", "/").strip()
    while prefix.startswith("./"):
        prefix = prefix[2:]
    return prefix.strip("/")


def classify(path: str, collections: list[CollectionCfg]) -> CollectionCfg | None:
    """Return the first collection whose extensions (and prefixes) match *path*."""
    lowered = path.lower()
    for coll in collections:
        if not any(lowered.endswith(ext.lower()) for ext in coll.extensions):
            continue
        if coll.prefixes:
            prefixes = [_normalize_prefix(p) for p in coll.prefixes]
            if not any(p == "" or path == p or path.startswith(p + "/") for p in prefixes):
                continue
        return coll
    return None


# ------------------------------------------------------------------
# Directory locator
# ------------------------------------------------------------------


class DirectoryLocator:
    """Walk a directory tree and yield files matching *collections*.

    Symlinked directories are not followed; ``.git`` directories are skipped.
    Unreadable subtrees and files, and file names that are not valid UTF-8,
    are logged and skipped; their paths are collected in ``skipped``.
    """

    def __init__(self, root: Path | str, collections: list[CollectionCfg]) -> None:
        self.root = Path(root)
        self.collections = collections
        self.skipped: list[str] = []

    def describe(self) -> str:
        return f"directory {self.root}"

    def __iter__(self) -> Iterator[SourceFile]:
        if not self.root.is_dir():
            raise ConfigError(f"Source directory does not exist: {self.root}")
        self.skipped = []

        for rel_path, full_path, coll in self._scan():
            try:
                data = full_path.read_bytes()
            except OSError as exc:
                self._skip(rel_path, DiscoveryError(f"Cannot read {rel_path}: {exc}"))
                continue
            yield SourceFile(
                path=rel_path,
                data=data,
                digest=blob_digest(data),
                category=coll.category,
            )

    def _scan(self) -> list[tuple[str, Path, CollectionCfg]]:
        """Return (relative path, absolute path, collection) sorted by relative path."""
        found: list[tuple[str, Path, CollectionCfg]] = []

        def _on_error(exc: OSError) -> None:
            where = exc.filename or str(self.root)
            self._skip(str(where), DiscoveryError(f"Cannot list {where}: {exc.strerror or exc}"))

        for dirpath, dirnames, filenames in os.walk(self.root, onerror=_on_error):
            dirnames[:] = sorted(d for d in dirnames if d != ".git")
            for name in filenames:
                full_path = Path(dirpath) / name
                rel_path = full_path.relative_to(self.root).as_posix()
                if not _is_utf8_name(rel_path):
                    shown = _printable(rel_path)
                    self._skip(shown, DiscoveryError(f"{shown}: file name is not valid UTF-8"))
                    continue
                coll = classify(rel_path, self.collections)
                if coll is None:
                    continue
                found.append((rel_path, full_path, coll))

        found.sort(key=lambda entry: entry[0])
        return found

    def _skip(self, path: str, error: DiscoveryError) -> None:
        logger.warning("Skipping %s", error)
        self.skipped.append(path)


# ------------------------------------------------------------------
# Git snapshot locator
# ------------------------------------------------------------------


@dataclass(frozen=True)
class _TreeEntry:
    path: str
    oid: str
    category: str


class SnapshotLocator:
    """Yield matching blobs from one commit of a local git repository.

    The tree is listed with ``git ls-tree -r`` and blob contents are streamed
    through a single ``git cat-file --batch`` process per iteration.
    Submodules and symlinks are skipped. Blobs missing from the object store
    and paths that are not valid UTF-8 are logged and collected in ``skipped``.
    """

    def __init__(
        self,
        repo_path: Path | str,
        revision: str,
        collections: list[CollectionCfg],
    ) -> None:
        self.repo_path = Path(repo_path)
        self.revision = revision
        self.collections = collections
        self.skipped: list[str] = []
        self._commit: str | None = None

    def describe(self) -> str:
        commit = self._commit[:12] if self._commit else "?"
        return f"{self.repo_path} @ {self.revision} ({commit})"

    @property
    def commit(self) -> str:
        """Resolved commit id of *revision* (resolved on first access)."""
        if self._commit is None:
            self._commit = self._resolve_revision()
        return self._commit

    def __iter__(self) -> Iterator[SourceFile]:
        self.skipped = []
        entries = self._list_entries()
        if not entries:
            return

        proc = subprocess.Popen(
            ["git", "cat-file", "--batch"],
            cwd=self.repo_path,
            shell=False,
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
        )
        assert proc.stdin is not None and proc.stdout is not None
        try:
            for entry in entries:
                data = _read_blob(proc.stdin, proc.stdout, entry.oid)
                if data is None:
                    missing = DiscoveryError(f"{entry.path}: blob {entry.oid} missing from object store")
                    self._skip(entry.path, missing)
                    continue
                yield SourceFile(
                    path=entry.path,
                    data=data,
                    digest=entry.oid,
                    category=entry.category,
                )
        finally:
            proc.stdin.close()
            try:
                proc.wait(timeout=10)
            except subprocess.TimeoutExpired:
                proc.kill()
                proc.wait()
            proc.stdout.close()

    # ------------------------------------------------------------------
    # git plumbing
    # ------------------------------------------------------------------

    def _resolve_revision(self) -> str:
        if not self.repo_path.is_dir():
            raise ConfigError(f"Repository path does not exist: {self.repo_path}")
        try:
            result = subprocess.run(
                ["git", "rev-parse", "--verify", "--quiet", f"{self.revision}^{{commit}}"],
                cwd=self.repo_path,
                shell=False,
                capture_output=True,
                text=True,
                check=True,
            )
        except FileNotFoundError as exc:
            raise ConfigError("git executable not found on PATH") from exc
        except subprocess.CalledProcessError:
            raise ConfigError(
                f"Cannot resolve revision '{self.revision}' in {self.repo_path} "
                "(not a git repository, or unknown branch/tag/commit)"
            ) from None
        return result.stdout.strip()

    def _list_entries(self) -> list[_TreeEntry]:
        result = subprocess.run(
            ["git", "ls-tree", "-r", "-z", "--full-tree", self.commit],
            cwd=self.repo_path,
            shell=False,
            capture_output=True,
            check=True,
        )
        entries: list[_TreeEntry] = []
        for record in result.stdout.split(b"\0"):
            if not record:
                continue
            meta, _, raw_path = record.partition(b"\t")
            mode, obj_type, oid = meta.decode("ascii").split()
            path = raw_path.decode("utf-8", errors="surrogateescape")
            if not _is_utf8_name(path):
                shown = _printable(path)
                self._skip(shown, DiscoveryError(f"{shown}: file name is not valid UTF-8"))
                continue
            if obj_type == "commit":
                logger.info("Skipping submodule %s", path)
                continue
            if obj_type != "blob":
                logger.debug("Skipping %s object at %s", obj_type, path)
                continue
            coll = classify(path, self.collections)
            if coll is None:
                continue
            if mode == _SYMLINK_MODE:
                logger.debug("Skipping symlink %s", path)
                continue
            entries.append(_TreeEntry(path=path, oid=oid, category=coll.category))

        entries.sort(key=lambda e: e.path)
        return entries

    def _skip(self, path: str, error: DiscoveryError) -> None:
        logger.warning("Skipping %s", error)
        self.skipped.append(path)


def _read_blob(stdin: IO[bytes], stdout: IO[bytes], oid: str) -> bytes | None:
    """Request *oid* from a running ``git cat-file --batch`` and return its bytes."""
    stdin.write(f"{oid}\n".encode("ascii"))
    stdin.flush()
    header = stdout.readline().decode("ascii", errors="replace").split()
    if len(header) != 3:
        # "<oid> missing"
        return None
    size = int(header[2])
    data = stdout.read(size)
    stdout.read(1)  # trailing LF
    return data


def make_locator(
    root: Path | str,
    mode: str,
    revision: str,
    collections: list[CollectionCfg],
) -> DirectoryLocator | SnapshotLocator:
    """Return the locator for *mode* ('snapshot' or 'directory')."""
    if mode == "directory":
        return DirectoryLocator(root, collections)
    if mode == "snapshot":
        return SnapshotLocator(root, revision, collections)
    raise ConfigError(f"Unknown source mode '{mode}'")
