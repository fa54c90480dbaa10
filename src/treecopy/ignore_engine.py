from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

import pathspec

from treecopy.models import EntryInfo
from treecopy.options import SkipHook


logger = logging.getLogger("treecopy.ignore")


def _ignore_file_patterns(ignore_file: Path) -> list[str]:
    try:
        lines = ignore_file.read_text(encoding="utf-8").splitlines()
    except OSError as exc:
        logger.warning("Cannot read %s: %s", ignore_file, exc)
        return []
    return [line.strip() for line in lines if line.strip()]


def _anchor(directory: str, pattern: str) -> str:
    """Rewrite a pattern read from ``directory/.gitignore`` relative to the copy root."""
    if not directory or pattern.startswith("#"):
        return pattern

    negated = pattern.startswith("!")
    body = pattern[1:] if negated else pattern
    if "/" in body.rstrip("/"):
        anchored = f"{directory}/{body.lstrip('/')}"
    else:
        # No slash: matches at any depth below the .gitignore's directory.
        anchored = f"{directory}/**/{body}"
    return f"!{anchored}" if negated else anchored


def _tree_ignore_patterns(source_root: Path) -> list[str]:
    patterns: list[str] = []
    for ignore_file in sorted(source_root.rglob(".gitignore")):
        if ".git" in ignore_file.parts:
            continue
        parent = ignore_file.parent.relative_to(source_root)
        directory = "" if parent == Path(".") else parent.as_posix()
        patterns.extend(_anchor(directory, pattern) for pattern in _ignore_file_patterns(ignore_file))
    return patterns


class IgnoreEngine:
    def __init__(self, patterns: Iterable[str]) -> None:
        self._spec = pathspec.PathSpec.from_lines("gitignore", patterns)

    def is_ignored(self, relative_path: Path, is_dir: bool = False) -> bool:
        candidate = relative_path.as_posix()
        if is_dir and not candidate.endswith("/"):
            candidate += "/"
        return self._spec.match_file(candidate)


def build_skip_hook(
    source_root: Path,
    patterns: Iterable[str],
    include_gitignore_files: bool = False,
) -> SkipHook:
    """Skip hook matching entries under ``source_root`` against gitignore-style patterns.

    The root itself and paths outside it are never skipped.
    """
    collected = list(patterns)
    if include_gitignore_files and source_root.is_dir():
        collected.extend(_tree_ignore_patterns(source_root))
    engine = IgnoreEngine(collected)

    def skip(info: EntryInfo, src: Path, dest: Path) -> bool:
        try:
            relative = Path(src).relative_to(source_root)
        except ValueError:
            return False
        if relative == Path("."):
            return False
        return engine.is_ignored(relative, is_dir=info.is_dir)

    return skip
