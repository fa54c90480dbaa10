from __future__ import annotations

import os
from pathlib import Path
from typing import BinaryIO, Protocol

from treecopy.models import EntryInfo


class SourceFileSystem(Protocol):
    def lstat(self, path: Path) -> EntryInfo: ...

    def stat(self, path: Path) -> EntryInfo: ...

    def scandir(self, path: Path) -> list[EntryInfo]: ...

    def open(self, path: Path) -> BinaryIO: ...

    def readlink(self, path: Path) -> str: ...

    def resolve(self, path: Path) -> Path: ...


class OSFileSystem:
    def _path(self, path: Path) -> Path:
        return Path(path)

    def lstat(self, path: Path) -> EntryInfo:
        full = self._path(path)
        return EntryInfo.from_stat(full.name, os.lstat(full))

    def stat(self, path: Path) -> EntryInfo:
        full = self._path(path)
        return EntryInfo.from_stat(full.name, os.stat(full))

    def scandir(self, path: Path) -> list[EntryInfo]:
        entries: list[EntryInfo] = []
        with os.scandir(self._path(path)) as iterator:
            for entry in iterator:
                try:
                    entry_stat = entry.stat(follow_symlinks=False)
                except FileNotFoundError:
                    # Removed between listing and stat.
                    continue
                entries.append(EntryInfo.from_stat(entry.name, entry_stat))
        entries.sort(key=lambda entry: entry.name)
        return entries

    def open(self, path: Path) -> BinaryIO:
        return open(self._path(path), "rb")

    def readlink(self, path: Path) -> str:
        return os.readlink(self._path(path))

    def resolve(self, path: Path) -> Path:
        return Path(os.path.realpath(self._path(path), strict=True))


class RootedFileSystem(OSFileSystem):
    """Read-only view of a directory tree; every path is relative to ``root``."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)

    def _path(self, path: Path) -> Path:
        relative = Path(path)
        if relative.is_absolute() or ".." in relative.parts:
            raise ValueError(f"Path must be relative to the filesystem root: {path}")
        return self.root / relative

    def resolve(self, path: Path) -> Path:
        resolved = os.path.realpath(self._path(path), strict=True)
        root = os.path.realpath(self.root, strict=True)
        relative = os.path.relpath(resolved, root)
        if relative == os.pardir or relative.startswith(os.pardir + os.sep):
            raise PermissionError(f"Symlink target escapes filesystem root {self.root}: {path}")
        return Path(relative)
