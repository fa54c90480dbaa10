from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import json
import yaml

from treecopy.ignore_engine import build_skip_hook
from treecopy.models import DirExistsAction, SymlinkAction
from treecopy.options import Options, SymlinkHook, DirExistsHook


@dataclass(slots=True)
class CopyConfig:
    workers: int | None = None
    buffer_size: int | None = None
    sync: bool | None = None
    preserve_owner: bool | None = None
    preserve_times: bool | None = None
    specials: bool | None = None
    add_permission: int | None = None
    on_symlink: SymlinkAction | None = None
    on_dir_exists: DirExistsAction | None = None
    excludes: list[str] = field(default_factory=list)
    include_gitignore: bool = False


def _as_bool(value: Any, field_name: str) -> bool | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    raise ValueError(f"{field_name} must be a boolean")


def _as_non_negative_int(value: Any, field_name: str) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"{field_name} must be a non-negative integer")
    return value


def _as_permission(value: Any, field_name: str) -> int | None:
    if value is None:
        return None
    if isinstance(value, str):
        try:
            value = int(value, 8)
        except ValueError:
            raise ValueError(f"{field_name} must be an octal permission string like '022'") from None
    permission = _as_non_negative_int(value, field_name)
    if permission is not None and permission > 0o7777:
        raise ValueError(f"{field_name} must be a permission mask (at most 7777)")
    return permission


def _as_choice(value: Any, field_name: str, choices: type[SymlinkAction] | type[DirExistsAction]) -> Any:
    if value is None:
        return None
    try:
        return choices(value)
    except ValueError:
        allowed = ", ".join(choice.value for choice in choices)
        raise ValueError(f"{field_name} must be one of: {allowed}") from None


def _as_list_of_strings(value: Any, field_name: str) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list) or any(not isinstance(item, str) for item in value):
        raise ValueError(f"{field_name} must be a list of strings")
    return [item for item in value if item.strip()]


def _load_raw_config(config_path: Path) -> dict[str, Any]:
    if not config_path.exists():
        raise ValueError(f"Config file does not exist: {config_path}")

    suffix = config_path.suffix.lower()
    text = config_path.read_text(encoding="utf-8")
    if suffix in {".yml", ".yaml"}:
        loaded = yaml.safe_load(text)
    elif suffix == ".json":
        loaded = json.loads(text)
    else:
        raise ValueError("Config file must be .yaml/.yml or .json")

    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ValueError("Config root must be an object")
    return loaded


def load_config(config_path: Path) -> CopyConfig:
    raw = _load_raw_config(config_path)

    return CopyConfig(
        workers=_as_non_negative_int(raw.get("workers"), "workers"),
        buffer_size=_as_non_negative_int(raw.get("bufferSize"), "bufferSize"),
        sync=_as_bool(raw.get("sync"), "sync"),
        preserve_owner=_as_bool(raw.get("preserveOwner"), "preserveOwner"),
        preserve_times=_as_bool(raw.get("preserveTimes"), "preserveTimes"),
        specials=_as_bool(raw.get("specials"), "specials"),
        add_permission=_as_permission(raw.get("addPermission"), "addPermission"),
        on_symlink=_as_choice(raw.get("onSymlink"), "onSymlink", SymlinkAction),
        on_dir_exists=_as_choice(raw.get("onDirExists"), "onDirExists", DirExistsAction),
        excludes=_as_list_of_strings(raw.get("excludes"), "excludes"),
        include_gitignore=bool(_as_bool(raw.get("includeGitignore"), "includeGitignore")),
    )


def _constant_symlink_action(action: SymlinkAction) -> SymlinkHook:
    return lambda src: action


def _constant_dir_exists_action(action: DirExistsAction) -> DirExistsHook:
    return lambda src, dest: action


def options_from_config(config: CopyConfig, source: Path) -> Options:
    options = Options(
        workers=config.workers,
        buffer_size=config.buffer_size,
        sync=config.sync,
        preserve_owner=config.preserve_owner,
        preserve_times=config.preserve_times,
        specials=config.specials,
        add_permission=config.add_permission,
    )
    if config.on_symlink is not None:
        options.on_symlink = _constant_symlink_action(config.on_symlink)
    if config.on_dir_exists is not None:
        options.on_dir_exists = _constant_dir_exists_action(config.on_dir_exists)
    if config.excludes or config.include_gitignore:
        options.skip = build_skip_hook(source, config.excludes, config.include_gitignore)
    return options
