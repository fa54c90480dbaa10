import os
from pathlib import Path

import pytest

from treecopy.filesystem import OSFileSystem, RootedFileSystem


def _write(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def test_scandir_returns_entries_sorted_by_name(tmp_path: Path) -> None:
    _write(tmp_path / "dir" / "c.txt", "c")
    _write(tmp_path / "dir" / "a.txt", "a")
    _write(tmp_path / "dir" / "b" / "x.txt", "x")

    entries = OSFileSystem().scandir(tmp_path / "dir")

    assert [entry.name for entry in entries] == ["a.txt", "b", "c.txt"]
    assert entries[1].is_dir
    assert entries[0].is_regular


def test_lstat_does_not_follow_symlinks(tmp_path: Path) -> None:
    _write(tmp_path / "target.txt", "payload")
    os.symlink("target.txt", tmp_path / "link")
    fs = OSFileSystem()

    assert fs.lstat(tmp_path / "link").is_symlink
    assert fs.stat(tmp_path / "link").is_regular
    assert fs.stat(tmp_path / "link").size == 7


def test_rooted_filesystem_reads_relative_paths(tmp_path: Path) -> None:
    _write(tmp_path / "docs" / "a.txt", "hello")
    fs = RootedFileSystem(tmp_path)

    with fs.open(Path("docs/a.txt")) as handle:
        assert handle.read() == b"hello"
    assert fs.lstat(Path("docs")).is_dir


@pytest.mark.parametrize("path", ["/etc/passwd", "../outside", "docs/../../x"])
def test_rooted_filesystem_rejects_paths_outside_root(tmp_path: Path, path: str) -> None:
    fs = RootedFileSystem(tmp_path)

    with pytest.raises(ValueError):
        fs.lstat(Path(path))


def test_rooted_filesystem_resolves_links_within_root(tmp_path: Path) -> None:
    _write(tmp_path / "docs" / "a.txt", "hello")
    os.symlink("docs/a.txt", tmp_path / "link")
    fs = RootedFileSystem(tmp_path)

    assert fs.resolve(Path("link")) == Path("docs/a.txt")
    assert fs.readlink(Path("link")) == "docs/a.txt"
