from __future__ import annotations

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, BinaryIO, Callable

from treecopy.filesystem import OSFileSystem, SourceFileSystem
from treecopy.models import DirExistsAction, EntryInfo, SymlinkAction
from treecopy.permission import PermissionControl, add_permission, preserve_permission


SkipHook = Callable[[EntryInfo, Path, Path], bool]
SymlinkHook = Callable[[Path], SymlinkAction]
DirExistsHook = Callable[[Path, Path], DirExistsAction]
ErrorHook = Callable[[Path, Path, Exception], "BaseException | None"]
ReaderWrapper = Callable[[BinaryIO], Any]
PreferConcurrentHook = Callable[[Path, Path], bool]


@dataclass(slots=True)
class Options:
    workers: int | None = None
    fs: SourceFileSystem | None = None
    buffer_size: int | None = None
    sync: bool | None = None
    preserve_owner: bool | None = None
    preserve_times: bool | None = None
    specials: bool | None = None
    add_permission: int | None = None
    skip: SkipHook | None = None
    on_symlink: SymlinkHook | None = None
    on_dir_exists: DirExistsHook | None = None
    permission_control: PermissionControl | None = None
    on_error: ErrorHook | None = None
    wrap_reader: ReaderWrapper | None = None
    prefer_concurrent: PreferConcurrentHook | None = None


def never_skip(info: EntryInfo, src: Path, dest: Path) -> bool:
    return False


def shallow_symlinks(src: Path) -> SymlinkAction:
    return SymlinkAction.SHALLOW


def deep_symlinks(src: Path) -> SymlinkAction:
    return SymlinkAction.DEEP


def skip_symlinks(src: Path) -> SymlinkAction:
    return SymlinkAction.SKIP


def merge_directories(src: Path, dest: Path) -> DirExistsAction:
    return DirExistsAction.MERGE


def propagate_errors(src: Path, dest: Path, exc: Exception) -> BaseException | None:
    return exc


def _unwrapped(reader: BinaryIO) -> BinaryIO:
    return reader


def _always_concurrent(src: Path, dest: Path) -> bool:
    return True


def merge_options(*overlays: Options) -> Options:
    merged = Options()
    for overlay in overlays:
        for item in fields(Options):
            value = getattr(overlay, item.name)
            if value is not None:
                setattr(merged, item.name, value)
    return merged


def _check_non_negative_int(value: Any, field_name: str) -> None:
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"{field_name} must be a non-negative integer, got {value!r}")


def validate_options(options: Options) -> None:
    _check_non_negative_int(options.workers, "workers")
    _check_non_negative_int(options.buffer_size, "buffer_size")
    _check_non_negative_int(options.add_permission, "add_permission")
    if options.add_permission is not None and options.add_permission > 0o7777:
        raise ValueError(f"add_permission must be a permission mask, got {oct(options.add_permission)}")


def resolve_options(*overlays: Options) -> Options:
    merged = merge_options(*overlays)
    validate_options(merged)

    permission_control = merged.permission_control
    if permission_control is None:
        permission_control = add_permission(merged.add_permission) if merged.add_permission else preserve_permission

    return Options(
        workers=merged.workers if merged.workers is not None else 1,
        fs=merged.fs or OSFileSystem(),
        buffer_size=merged.buffer_size or 0,
        sync=bool(merged.sync),
        preserve_owner=bool(merged.preserve_owner),
        preserve_times=bool(merged.preserve_times),
        specials=bool(merged.specials),
        add_permission=merged.add_permission or 0,
        skip=merged.skip or never_skip,
        on_symlink=merged.on_symlink or shallow_symlinks,
        on_dir_exists=merged.on_dir_exists or merge_directories,
        permission_control=permission_control,
        on_error=merged.on_error or propagate_errors,
        wrap_reader=merged.wrap_reader or _unwrapped,
        prefer_concurrent=merged.prefer_concurrent or _always_concurrent,
    )
