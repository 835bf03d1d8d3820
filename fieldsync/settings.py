"""Local device preferences (currently just the filename prefix)."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional
import json
import logging
import re
import threading

from fieldsync.config import DEFAULT_PREFIX

PREFIX_KEY = "otg_prefix"
_WHITESPACE = re.compile(r"\s+")


def compose_label(prefix: str, digits: str) -> str:
    """Join the prefix and the trailing digits typed from the camera.

    Returns an empty string when no digits were entered so the capture fails
    validation instead of saving the bare prefix.
    """
    cleaned = _WHITESPACE.sub("", digits or "").upper()
    if not cleaned:
        return ""
    return f"{prefix or ''}{cleaned}"


class Preferences:
    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else None
        self._lock = threading.Lock()
        self._values: Dict[str, Any] = {}
        self._load()

    def _load(self) -> None:
        if self.path is None or not self.path.exists():
            return
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logging.warning("Ignoring unreadable preferences file %s", self.path)
            return
        if isinstance(raw, dict):
            self._values = raw

    def _save(self) -> None:
        if self.path is None:
            return
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(self._values, ensure_ascii=False, indent=2), encoding="utf-8")
        except OSError:
            logging.exception("Failed to write preferences")

    def get_prefix(self) -> str:
        with self._lock:
            value = self._values.get(PREFIX_KEY)
        return value if isinstance(value, str) and value else DEFAULT_PREFIX

    def set_prefix(self, prefix: str) -> str:
        with self._lock:
            self._values[PREFIX_KEY] = prefix
            self._save()
        return prefix
