"""Data-file locations. Windows drive paths map onto their WSL mount."""
from __future__ import annotations

from pathlib import Path
import os
import re

_WINDOWS_DRIVE_PATTERN = re.compile(r"^([A-Za-z]):\\(.*)")


def _windows_to_wsl(path: str) -> str:
    match = _WINDOWS_DRIVE_PATTERN.match(path)
    if not match:
        return path
    drive = match.group(1).lower()
    rest = match.group(2).replace('\\', '/')
    return f"/mnt/{drive}/{rest}"


def normalize_user_path(value: str | None) -> str | None:
    """Expand `~` and, on posix, rewrite `C:\\...` as `/mnt/c/...`."""
    if not value:
        return value
    value = os.path.expanduser(value.strip())
    if value and os.name == 'posix':
        return _windows_to_wsl(value)
    return value


def default_data_dir() -> Path:
    return Path.home() / ".fieldsync"


def resolve_data_path(value: str | None, default_name: str, data_dir: Path | None = None) -> Path:
    """Return `value` as a Path, or `<data_dir>/<default_name>` when unset."""
    normalized = normalize_user_path(value)
    if normalized:
        return Path(normalized)
    return (data_dir or default_data_dir()) / default_name
