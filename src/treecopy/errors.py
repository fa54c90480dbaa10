from __future__ import annotations

from pathlib import Path


class CopyError(Exception):
    pass


class SpecialFileError(CopyError):
    def __init__(self, path: Path) -> None:
        super().__init__(f"Refusing to copy device file without specials enabled: {path}")
        self.path = path


class UnsupportedEntryError(CopyError):
    def __init__(self, path: Path, kind: str) -> None:
        super().__init__(f"Cannot replicate {kind} on this platform: {path}")
        self.path = path
        self.kind = kind


class CopyCancelledError(CopyError):
    pass
