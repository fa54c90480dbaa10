from __future__ import annotations

from contextlib import AbstractContextManager, contextmanager, nullcontext
import logging
import os
from pathlib import Path
from typing import Callable, Iterator

from treecopy.models import EntryInfo


TMP_DIRECTORY_MODE = 0o777

PermissionControl = Callable[[EntryInfo, Path], AbstractContextManager[None]]

logger = logging.getLogger("treecopy.engine")


@contextmanager
def release_on_exit(release: Callable[[], None], description: str) -> Iterator[None]:
    """Run ``release`` on every exit path; an earlier error always wins over its failure."""
    try:
        yield
    except BaseException:
        try:
            release()
        except Exception as exc:
            logger.debug("Ignoring failure to %s after an earlier error: %s", description, exc)
        raise
    release()


def add_permission(perm: int) -> PermissionControl:
    def control(info: EntryInfo, dest: Path) -> AbstractContextManager[None]:
        mode = info.permissions | perm
        if info.is_dir:
            os.makedirs(dest, TMP_DIRECTORY_MODE, exist_ok=True)
        return release_on_exit(lambda: os.chmod(dest, mode), f"chmod {dest}")

    return control


preserve_permission: PermissionControl = add_permission(0)


def do_nothing(info: EntryInfo, dest: Path) -> AbstractContextManager[None]:
    if info.is_dir:
        os.makedirs(dest, info.permissions, exist_ok=True)
    return nullcontext()
