from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
import os
import stat
import threading


class SymlinkAction(StrEnum):
    SHALLOW = "shallow"
    DEEP = "deep"
    SKIP = "skip"


class DirExistsAction(StrEnum):
    REPLACE = "replace"
    UNTOUCHABLE = "untouchable"
    MERGE = "merge"


@dataclass(frozen=True, slots=True)
class EntryInfo:
    name: str
    mode: int
    size: int = 0
    uid: int = 0
    gid: int = 0
    atime_ns: int = 0
    mtime_ns: int = 0
    rdev: int = 0

    @classmethod
    def from_stat(cls, name: str, st: os.stat_result) -> "EntryInfo":
        return cls(
            name=name,
            mode=st.st_mode,
            size=st.st_size,
            uid=st.st_uid,
            gid=st.st_gid,
            atime_ns=st.st_atime_ns,
            mtime_ns=st.st_mtime_ns,
            rdev=getattr(st, "st_rdev", 0),
        )

    @property
    def permissions(self) -> int:
        return stat.S_IMODE(self.mode)

    @property
    def is_symlink(self) -> bool:
        return stat.S_ISLNK(self.mode)

    @property
    def is_dir(self) -> bool:
        return stat.S_ISDIR(self.mode)

    @property
    def is_fifo(self) -> bool:
        return stat.S_ISFIFO(self.mode)

    @property
    def is_device(self) -> bool:
        return stat.S_ISCHR(self.mode) or stat.S_ISBLK(self.mode)

    @property
    def is_regular(self) -> bool:
        return stat.S_ISREG(self.mode)


@dataclass(slots=True)
class CopyStats:
    files: int = 0
    directories: int = 0
    symlinks: int = 0
    pipes: int = 0
    devices: int = 0
    skipped: int = 0
    bytes_copied: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def record(self, counter: str, amount: int = 1) -> None:
        with self._lock:
            setattr(self, counter, getattr(self, counter) + amount)
