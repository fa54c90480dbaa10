from __future__ import annotations

import argparse
import logging
from pathlib import Path
import sys

from treecopy.config import CopyConfig, load_config, options_from_config
from treecopy.copy_engine import copy
from treecopy.ignore_engine import build_skip_hook
from treecopy.models import CopyStats, DirExistsAction, SymlinkAction
from treecopy.options import Options


EXIT_SUCCESS = 0
EXIT_RUNTIME_OR_CONFIG_ERROR = 1
EXIT_PARTIAL_FAILURES = 2
EXIT_INVALID_CONFIG = 3

logger = logging.getLogger("treecopy.cli")


def _octal(value: str) -> int:
    try:
        return int(value, 8)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an octal permission: {value}") from None


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="treecopy", description="Policy-driven recursive copy")
    parser.add_argument("source", type=Path)
    parser.add_argument("destination", type=Path)
    parser.add_argument("--config", type=Path, help="YAML or JSON file with copy options")
    parser.add_argument("--workers", type=int, help="Copy files concurrently with this many workers")
    parser.add_argument("--buffer-size", type=int, help="Copy buffer size in bytes")
    parser.add_argument("--sync", action="store_true", default=None, help="fsync every copied file")
    parser.add_argument("--preserve-owner", action="store_true", default=None)
    parser.add_argument("--preserve-times", action="store_true", default=None)
    parser.add_argument("--specials", action="store_true", default=None, help="Replicate device files")
    parser.add_argument("--symlinks", choices=[action.value for action in SymlinkAction])
    parser.add_argument("--on-dir-exists", choices=[action.value for action in DirExistsAction])
    parser.add_argument("--add-permission", type=_octal, help="Octal bits added to every copied mode")
    parser.add_argument("--exclude", action="append", default=[], help="Gitignore-style pattern to skip")
    parser.add_argument("--gitignore", action="store_true", help="Also honor .gitignore files in the source")
    parser.add_argument("--continue-on-error", action="store_true", help="Log failures and keep copying")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def _print_stats(source: Path, target: Path, stats: CopyStats, failed: int) -> None:
    print(
        f"{source} -> {target} | files={stats.files} directories={stats.directories} "
        f"symlinks={stats.symlinks} skipped={stats.skipped} failed={failed}"
    )


def _cli_overlay(args: argparse.Namespace, config: CopyConfig) -> Options:
    overlay = Options(
        workers=args.workers,
        buffer_size=args.buffer_size,
        sync=args.sync,
        preserve_owner=args.preserve_owner,
        preserve_times=args.preserve_times,
        specials=args.specials,
        add_permission=args.add_permission,
    )
    if args.symlinks:
        action = SymlinkAction(args.symlinks)
        overlay.on_symlink = lambda src: action
    if args.on_dir_exists:
        dir_action = DirExistsAction(args.on_dir_exists)
        overlay.on_dir_exists = lambda src, dest: dir_action
    if args.exclude or args.gitignore:
        # Command-line patterns extend the configured ones.
        overlay.skip = build_skip_hook(
            args.source,
            [*config.excludes, *args.exclude],
            config.include_gitignore or args.gitignore,
        )
    return overlay


def cmd_copy(args: argparse.Namespace) -> int:
    try:
        config = load_config(args.config) if args.config else CopyConfig()
        overlays = [options_from_config(config, args.source), _cli_overlay(args, config)]
    except Exception as exc:
        print(f"Invalid config: {exc}", file=sys.stderr)
        return EXIT_INVALID_CONFIG

    failures: list[Path] = []

    def log_and_continue(src: Path, dest: Path, exc: Exception) -> BaseException | None:
        logger.error("Failed to copy %s -> %s: %s", src, dest, exc)
        failures.append(src)
        return None

    if args.continue_on_error:
        overlays.append(Options(on_error=log_and_continue))

    try:
        stats = copy(args.source, args.destination, *overlays)
    except ValueError as exc:
        print(f"Invalid arguments: {exc}", file=sys.stderr)
        return EXIT_INVALID_CONFIG
    except Exception as exc:
        print(f"Copy failed for source {args.source}: {exc}", file=sys.stderr)
        return EXIT_RUNTIME_OR_CONFIG_ERROR

    _print_stats(args.source, args.destination, stats, len(failures))
    return EXIT_PARTIAL_FAILURES if failures else EXIT_SUCCESS


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(message)s",
    )
    return cmd_copy(args)


if __name__ == "__main__":
    raise SystemExit(main())
