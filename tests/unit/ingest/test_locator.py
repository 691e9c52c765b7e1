"""Tests for the directory and git snapshot locators."""

from __future__ import annotations

import os
import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest

from codeparity.config import CollectionCfg, ConfigError
from codeparity.exceptions import DecodeError
from codeparity.ingest import locator as locator_module
from codeparity.ingest.locator import (
    DirectoryLocator,
    SnapshotLocator,
    _TreeEntry,
    SourceFile,
    blob_digest,
    classify,
    decode_text,
    make_locator,
)

COLLECTIONS = [
    CollectionCfg(category="python", extensions=[".py"]),
    CollectionCfg(category="cython", extensions=[".pyx", ".pxd"]),
    CollectionCfg(category="rust", extensions=[".rs"]),
]


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _git(repo: Path, *args: str) -> None:
    subprocess.run(["git", "-C", str(repo), *args], check=True, capture_output=True)


def _make_git_repo(tmp_path: Path) -> Path:
    """Create a repo with python/rust/cython files and 2 commits; return its path."""
    repo = tmp_path / "repo"
    repo.mkdir()
    subprocess.run(["git", "init", str(repo)], check=True, capture_output=True)
    _git(repo, "config", "user.email", "test@test.com")
    _git(repo, "config", "user.name", "Test")
    (repo / "pkg").mkdir()
    (repo / "pkg" / "ema.py").write_text("class Ema(Indicator):\n    pass\n")
    (repo / "src").mkdir()
    (repo / "src" / "ema.rs").write_text("pub struct EmaIndicator {}\n")
    (repo / "README.md").write_text("# not collected\n")
    _git(repo, "add", ".")
    _git(repo, "commit", "-m", "Initial commit")
    (repo / "pkg" / "ema.py").write_text("class Ema(Indicator):\n    period = 10\n")
    (repo / "pkg" / "rsi.pyx").write_text("cdef class Rsi(Indicator):\n    pass\n")
    _git(repo, "add", ".")
    _git(repo, "commit", "-m", "Second commit")
    return repo


# ------------------------------------------------------------------
# blob_digest / decode_text / classify
# ------------------------------------------------------------------


def test_blob_digest_matches_git():
    assert blob_digest(b"") == "e69de29bb2d1d6434b8b29ae775ad8c2e48c5391"
    assert blob_digest(b"hello\n") == "ce013625030ba8dba906f756967f9e9ca394464a"


def test_decode_text_rejects_non_utf8():
    source = SourceFile(path="bin.py", data=b"\xff\xfe\x00", digest="0" * 40, category="python")
    with pytest.raises(DecodeError, match="bin.py"):
        decode_text(source)


def test_classify_extension_case_insensitive():
    assert classify("pkg/EMA.PY", COLLECTIONS).category == "python"
    assert classify("pkg/ema.pxd", COLLECTIONS).category == "cython"
    assert classify("README.md", COLLECTIONS) is None


def test_classify_prefixes_and_first_match_wins():
    collections = [
        CollectionCfg(category="tests", extensions=[".py"], prefixes=["./tests/"]),
        CollectionCfg(category="python", extensions=[".py"]),
    ]
    assert classify("tests/test_ema.py", collections).category == "tests"
    assert classify("testsuite/x.py", collections).category == "python"
    assert classify("pkg/ema.py", collections).category == "python"


# ------------------------------------------------------------------
# DirectoryLocator
# ------------------------------------------------------------------


def test_directory_locator_sorted_and_filtered(tmp_path):
    (tmp_path / "z.rs").write_text("z")
    (tmp_path / "a").mkdir()
    (tmp_path / "a" / "b.py").write_text("b")
    (tmp_path / "notes.txt").write_text("ignored")
    (tmp_path / ".git").mkdir()
    (tmp_path / ".git" / "hook.py").write_text("ignored")

    files = list(DirectoryLocator(tmp_path, COLLECTIONS))

    assert [f.path for f in files] == ["a/b.py", "z.rs"]
    assert [f.category for f in files] == ["python", "rust"]
    assert files[0].data == b"b"
    assert files[0].digest == blob_digest(b"b")


def test_directory_locator_is_restartable(tmp_path):
    (tmp_path / "a.py").write_text("a")
    locator = DirectoryLocator(tmp_path, COLLECTIONS)
    assert [f.path for f in locator] == [f.path for f in locator] == ["a.py"]


@pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unsupported")
def test_directory_locator_does_not_follow_symlinked_dirs(tmp_path):
    outside = tmp_path / "outside"
    outside.mkdir()
    (outside / "x.py").write_text("x")
    root = tmp_path / "root"
    root.mkdir()
    (root / "link").symlink_to(outside, target_is_directory=True)
    assert list(DirectoryLocator(root, COLLECTIONS)) == []


def test_directory_locator_missing_root(tmp_path):
    with pytest.raises(ConfigError):
        list(DirectoryLocator(tmp_path / "nope", COLLECTIONS))


# ------------------------------------------------------------------
# SnapshotLocator
# ------------------------------------------------------------------


def test_snapshot_locator_reads_head(tmp_path):
    repo = _make_git_repo(tmp_path)
    files = list(SnapshotLocator(repo, "HEAD", COLLECTIONS))
    assert [f.path for f in files] == ["pkg/ema.py", "pkg/rsi.pyx", "src/ema.rs"]
    assert [f.category for f in files] == ["python", "cython", "rust"]
    assert files[0].data == b"class Ema(Indicator):\n    period = 10\n"


def test_snapshot_digest_equals_directory_digest(tmp_path):
    repo = _make_git_repo(tmp_path)
    snapshot = {f.path: f.digest for f in SnapshotLocator(repo, "HEAD", COLLECTIONS)}
    directory = {f.path: f.digest for f in DirectoryLocator(repo, COLLECTIONS)}
    assert snapshot == directory


def test_snapshot_locator_older_revision(tmp_path):
    repo = _make_git_repo(tmp_path)
    locator = SnapshotLocator(repo, "HEAD~1", COLLECTIONS)
    files = list(locator)
    assert [f.path for f in files] == ["pkg/ema.py", "src/ema.rs"]
    assert files[0].data == b"class Ema(Indicator):\n    pass\n"
    assert len(locator.commit) == 40


def test_snapshot_locator_ignores_uncommitted_changes(tmp_path):
    repo = _make_git_repo(tmp_path)
    (repo / "pkg" / "new.py").write_text("uncommitted")
    paths = [f.path for f in SnapshotLocator(repo, "HEAD", COLLECTIONS)]
    assert "pkg/new.py" not in paths


def test_snapshot_locator_unknown_revision(tmp_path):
    repo = _make_git_repo(tmp_path)
    with pytest.raises(ConfigError, match="no-such-branch"):
        list(SnapshotLocator(repo, "no-such-branch", COLLECTIONS))


def test_snapshot_locator_not_a_repository(tmp_path):
    plain = tmp_path / "plain"
    plain.mkdir()
    with pytest.raises(ConfigError):
        list(SnapshotLocator(plain, "HEAD", COLLECTIONS))


def test_snapshot_locator_missing_root(tmp_path):
    with pytest.raises(ConfigError):
        list(SnapshotLocator(tmp_path / "nope", "HEAD", COLLECTIONS))


def test_make_locator_dispatch(tmp_path):
    assert isinstance(make_locator(tmp_path, "directory", "HEAD", COLLECTIONS), DirectoryLocator)
    assert isinstance(make_locator(tmp_path, "snapshot", "HEAD", COLLECTIONS), SnapshotLocator)
    with pytest.raises(ConfigError):
        make_locator(tmp_path, "svn", "HEAD", COLLECTIONS)


# ------------------------------------------------------------------
# Discovery failures are skipped
# ------------------------------------------------------------------


def _non_utf8_file(root: Path) -> None:
    """Create ``caf\\xe9.py`` (Latin-1 name bytes) in *root*, or skip the test."""
    try:
        with open(os.path.join(os.fsencode(root), b"caf\xe9.py"), "wb") as fh:
            fh.write(b"class Cafe:\n    pass\n")
    except OSError:
        pytest.skip("filesystem rejects non-UTF-8 file names")


def test_directory_locator_skips_non_utf8_file_name(tmp_path):
    (tmp_path / "ok.py").write_text("ok")
    _non_utf8_file(tmp_path)

    locator = DirectoryLocator(tmp_path, COLLECTIONS)
    assert [f.path for f in locator] == ["ok.py"]
    assert locator.skipped == ["caf\ufffd.py"]


def test_directory_locator_skips_unreadable_file(tmp_path, caplog):
    (tmp_path / "a.py").write_text("a")
    (tmp_path / "b.py").write_text("b")
    real_read_bytes = Path.read_bytes

    def _read_bytes(path):
        if path.name == "a.py":
            raise PermissionError(13, "Permission denied", str(path))
        return real_read_bytes(path)

    locator = DirectoryLocator(tmp_path, COLLECTIONS)
    with patch.object(Path, "read_bytes", autospec=True, side_effect=_read_bytes):
        files = list(locator)

    assert [f.path for f in files] == ["b.py"]
    assert locator.skipped == ["a.py"]
    assert "Cannot read a.py" in caplog.text


def test_directory_locator_skips_unlistable_subtree(tmp_path):
    (tmp_path / "a.py").write_text("a")
    locked = tmp_path / "locked"
    locked.mkdir()
    real_walk = os.walk

    def _walk(top, onerror=None, **kwargs):
        onerror(PermissionError(13, "Permission denied", str(locked)))
        yield from real_walk(top, onerror=onerror, **kwargs)

    locator = DirectoryLocator(tmp_path, COLLECTIONS)
    with patch.object(locator_module.os, "walk", side_effect=_walk):
        files = list(locator)

    assert [f.path for f in files] == ["a.py"]
    assert locator.skipped == [str(locked)]


def test_snapshot_locator_skips_missing_blob(tmp_path):
    repo = _make_git_repo(tmp_path)
    real_list = SnapshotLocator._list_entries

    def _list_entries(self):
        return real_list(self) + [_TreeEntry(path="pkg/zz.py", oid="0" * 40, category="python")]

    locator = SnapshotLocator(repo, "HEAD", COLLECTIONS)
    with patch.object(SnapshotLocator, "_list_entries", _list_entries):
        files = list(locator)

    assert [f.path for f in files] == ["pkg/ema.py", "pkg/rsi.pyx", "src/ema.rs"]
    assert locator.skipped == ["pkg/zz.py"]


def test_snapshot_locator_skips_non_utf8_file_name(tmp_path):
    repo = _make_git_repo(tmp_path)
    _non_utf8_file(repo)
    _git(repo, "add", ".")
    _git(repo, "commit", "-m", "Latin-1 name")

    locator = SnapshotLocator(repo, "HEAD", COLLECTIONS)
    assert [f.path for f in locator] == ["pkg/ema.py", "pkg/rsi.pyx", "src/ema.rs"]
    assert locator.skipped == ["caf\ufffd.py"]
