from __future__ import annotations

import os
from pathlib import Path

from treecopy.models import EntryInfo


def preserve_owner(info: EntryInfo, dest: Path) -> None:
    if not hasattr(os, "lchown"):
        return
    os.lchown(dest, info.uid, info.gid)


def preserve_times(info: EntryInfo, dest: Path) -> None:
    os.utime(dest, ns=(info.atime_ns, info.mtime_ns))


def preserve_ltimes(info: EntryInfo, dest: Path) -> None:
    # Some platforms cannot set timestamps on the link itself.
    if os.utime not in os.supports_follow_symlinks:
        return
    os.utime(dest, ns=(info.atime_ns, info.mtime_ns), follow_symlinks=False)
