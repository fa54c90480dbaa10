from __future__ import annotations

from contextlib import ExitStack
from dataclasses import dataclass, replace
import logging
import os
from pathlib import Path
import shutil
from typing import Any, BinaryIO

from treecopy.concurrency import AdmissionLimiter, CancelContext, Slot, TaskGroup
from treecopy.errors import SpecialFileError, UnsupportedEntryError
from treecopy.models import CopyStats, DirExistsAction, EntryInfo, SymlinkAction
from treecopy.options import Options, resolve_options
from treecopy.permission import TMP_DIRECTORY_MODE, release_on_exit
from treecopy.preserve import preserve_ltimes, preserve_owner, preserve_times


logger = logging.getLogger("treecopy.engine")


@dataclass(slots=True)
class CopyIntent:
    options: Options
    dest: Path
    stats: CopyStats
    limiter: AdmissionLimiter | None = None
    context: CancelContext | None = None
    slot: Slot | None = None


class _InterceptedError(Exception):
    # Carries an error that already went through on_error up to copy().
    def __init__(self, error: BaseException) -> None:
        super().__init__(str(error))
        self.error = error


def _validate_paths(source: Path, destination: Path, info: EntryInfo) -> None:
    source_resolved = source.resolve()
    destination_resolved = destination.resolve()

    if source_resolved == destination_resolved:
        raise ValueError(f"Invalid copy: source and destination are equal: {source}")

    if info.is_dir and source_resolved in destination_resolved.parents:
        raise ValueError(f"Invalid copy: destination is inside source, which can recurse: {destination}")


def copy(src: Path | str, dest: Path | str, *overlays: Options) -> CopyStats:
    """Copy ``src`` to ``dest`` whatever its type, applying the merged ``overlays``.

    Raises the first error not vetoed by ``on_error``.
    """
    source = Path(src)
    destination = Path(dest)
    check_overlap = all(overlay.fs is None for overlay in overlays)
    options = resolve_options(*overlays)

    intent = CopyIntent(options=options, dest=destination, stats=CopyStats())
    if options.workers > 1:
        intent.limiter = AdmissionLimiter(options.workers)
        intent.context = CancelContext()

    error: BaseException | None = None
    try:
        _copy_root(source, destination, intent, check_overlap)
    except _InterceptedError as intercepted:
        error = intercepted.error
    if error is not None:
        raise error

    stats = intent.stats
    logger.info(
        "%s -> %s | files=%s directories=%s symlinks=%s skipped=%s bytes=%s",
        source,
        destination,
        stats.files,
        stats.directories,
        stats.symlinks,
        stats.skipped,
        stats.bytes_copied,
    )
    return stats


def _copy_root(source: Path, destination: Path, intent: CopyIntent, check_overlap: bool) -> None:
    try:
        info = intent.options.fs.lstat(source)
    except Exception as exc:
        _intercept(source, destination, exc, intent)
        return

    if check_overlap:
        try:
            _validate_paths(source, destination, info)
        except ValueError as exc:
            _intercept(source, destination, exc, intent)
            return

    _copy_or_skip(source, destination, info, intent)


def _intercept(src: Path, dest: Path, exc: Exception, intent: CopyIntent) -> None:
    error = intent.options.on_error(src, dest, exc)
    if error is not None:
        raise _InterceptedError(error) from exc
    logger.debug("Error vetoed for %s -> %s: %s", src, dest, exc)


def _copy_or_skip(src: Path, dest: Path, info: EntryInfo, intent: CopyIntent) -> None:
    try:
        skip = intent.options.skip(info, src, dest)
    except Exception as exc:
        _intercept(src, dest, exc, intent)
        return

    if skip:
        intent.stats.record("skipped")
        logger.debug("Skipping %s", src)
        return

    _dispatch(src, dest, info, intent)


def _dispatch(src: Path, dest: Path, info: EntryInfo, intent: CopyIntent) -> None:
    try:
        if info.is_device and not intent.options.specials:
            raise SpecialFileError(src)

        if info.is_symlink:
            _copy_symlink(src, dest, info, intent)
        elif info.is_dir:
            _copy_dir(src, dest, info, intent)
        elif info.is_fifo:
            _copy_pipe(dest, info, intent)
        elif info.is_device:
            _copy_device(dest, info, intent)
        else:
            _copy_file(src, dest, info, intent)
    except _InterceptedError:
        raise
    except Exception as exc:
        _intercept(src, dest, exc, intent)


def _stream(reader: Any, writer: BinaryIO, buffer_size: int) -> int:
    if not buffer_size:
        shutil.copyfileobj(reader, writer)
        return writer.tell()

    copied = 0
    while True:
        chunk = reader.read(buffer_size)
        if not chunk:
            return copied
        writer.write(chunk)
        copied += len(chunk)


def _copy_file(src: Path, dest: Path, info: EntryInfo, intent: CopyIntent) -> None:
    options = intent.options
    try:
        reader = options.fs.open(src)
    except FileNotFoundError:
        logger.debug("Source vanished before copy: %s", src)
        return

    with ExitStack() as scope:
        scope.enter_context(release_on_exit(reader.close, f"close {src}"))
        os.makedirs(dest.parent, TMP_DIRECTORY_MODE, exist_ok=True)
        writer = open(dest, "wb")
        scope.enter_context(release_on_exit(writer.close, f"close {dest}"))
        scope.enter_context(options.permission_control(info, dest))

        copied = _stream(options.wrap_reader(reader), writer, options.buffer_size)
        if options.sync:
            writer.flush()
            os.fsync(writer.fileno())

    if options.preserve_owner:
        preserve_owner(info, dest)
    if options.preserve_times:
        preserve_times(info, dest)

    intent.stats.record("files")
    intent.stats.record("bytes_copied", copied)


def _remove_existing(path: Path) -> None:
    if path.is_symlink() or not path.is_dir():
        os.unlink(path)
    else:
        shutil.rmtree(path)


def _resolve_dir_conflict(srcdir: Path, destdir: Path, intent: CopyIntent) -> bool:
    try:
        os.stat(destdir)
    except FileNotFoundError:
        return False

    # The top-level destination is always merged into.
    if destdir == intent.dest:
        return False

    action = intent.options.on_dir_exists(srcdir, destdir)
    if action == DirExistsAction.REPLACE:
        _remove_existing(destdir)
        return False
    if action == DirExistsAction.UNTOUCHABLE:
        logger.debug("Leaving existing directory untouched: %s", destdir)
        intent.stats.record("skipped")
        return True
    return False


def _copy_dir(srcdir: Path, destdir: Path, info: EntryInfo, intent: CopyIntent) -> None:
    if intent.slot is not None:
        # Reached through a deep symlink; slots are for leaf copies only.
        intent.slot.release()
        intent = replace(intent, slot=None)

    if _resolve_dir_conflict(srcdir, destdir, intent):
        return

    options = intent.options
    with options.permission_control(info, destdir):
        try:
            entries = options.fs.scandir(srcdir)
        except FileNotFoundError:
            logger.debug("Source directory vanished before listing: %s", srcdir)
            return

        if _should_copy_concurrently(srcdir, destdir, intent):
            _copy_children_concurrently(srcdir, destdir, entries, intent)
        else:
            _copy_children_sequentially(srcdir, destdir, entries, intent)

    if options.preserve_times:
        preserve_times(info, destdir)
    if options.preserve_owner:
        preserve_owner(info, destdir)

    intent.stats.record("directories")


def _should_copy_concurrently(srcdir: Path, destdir: Path, intent: CopyIntent) -> bool:
    if intent.limiter is None:
        return False
    return bool(intent.options.prefer_concurrent(srcdir, destdir))


def _copy_children_sequentially(srcdir: Path, destdir: Path, entries: list[EntryInfo], intent: CopyIntent) -> None:
    for entry in entries:
        _copy_or_skip(srcdir / entry.name, destdir / entry.name, entry, intent)


def _copy_children_concurrently(srcdir: Path, destdir: Path, entries: list[EntryInfo], intent: CopyIntent) -> None:
    limiter = intent.limiter
    context = intent.context
    if limiter is None or context is None:
        _copy_children_sequentially(srcdir, destdir, entries, intent)
        return

    # Directories launch first; they never wait behind leaf copies for a slot.
    ordered = [entry for entry in entries if entry.is_dir] + [entry for entry in entries if not entry.is_dir]

    with TaskGroup(context) as group:
        for entry in ordered:
            child_intent = replace(intent, context=group.context, slot=None)
            if not entry.is_dir:
                child_intent.slot = limiter.acquire(group.context)
            try:
                group.spawn(_copy_child, srcdir / entry.name, destdir / entry.name, entry, child_intent)
            except BaseException:
                if child_intent.slot is not None:
                    child_intent.slot.release()
                raise


def _copy_child(src: Path, dest: Path, info: EntryInfo, intent: CopyIntent) -> None:
    try:
        if intent.context is not None:
            intent.context.raise_if_cancelled()
        _copy_or_skip(src, dest, info, intent)
    finally:
        if intent.slot is not None:
            intent.slot.release()


def _copy_symlink(src: Path, dest: Path, info: EntryInfo, intent: CopyIntent) -> None:
    options = intent.options
    action = options.on_symlink(src)

    if action == SymlinkAction.SHALLOW:
        if not _copy_link(src, dest, intent):
            return
        if options.preserve_times:
            preserve_ltimes(info, dest)
        intent.stats.record("symlinks")
        return

    if action == SymlinkAction.DEEP:
        try:
            options.fs.readlink(src)
        except FileNotFoundError:
            logger.debug("Symlink vanished before copy: %s", src)
            return
        target = options.fs.resolve(src)
        target_info = options.fs.lstat(target)
        _copy_or_skip(target, dest, target_info, intent)
        return

    logger.debug("Not copying symlink %s", src)


def _copy_link(src: Path, dest: Path, intent: CopyIntent) -> bool:
    try:
        target = intent.options.fs.readlink(src)
    except FileNotFoundError:
        logger.debug("Symlink vanished before copy: %s", src)
        return False

    os.makedirs(dest.parent, TMP_DIRECTORY_MODE, exist_ok=True)
    if dest.is_symlink():
        dest.unlink()
    os.symlink(target, dest)
    return True


def _copy_pipe(dest: Path, info: EntryInfo, intent: CopyIntent) -> None:
    if not hasattr(os, "mkfifo"):
        raise UnsupportedEntryError(dest, "named pipe")
    os.makedirs(dest.parent, TMP_DIRECTORY_MODE, exist_ok=True)
    os.mkfifo(dest, info.permissions)
    os.chmod(dest, info.permissions)
    intent.stats.record("pipes")


def _copy_device(dest: Path, info: EntryInfo, intent: CopyIntent) -> None:
    if not hasattr(os, "mknod"):
        raise UnsupportedEntryError(dest, "device file")
    os.makedirs(dest.parent, TMP_DIRECTORY_MODE, exist_ok=True)
    os.mknod(dest, info.mode, info.rdev)
    os.chmod(dest, info.permissions)
    intent.stats.record("devices")
