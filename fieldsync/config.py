"""Runtime configuration read from the environment (and an optional .env file)."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional
import logging
import os

from dotenv import load_dotenv

from fieldsync.utils.paths import default_data_dir, normalize_user_path, resolve_data_path

DEFAULT_PREFIX = "DSC_"
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 5000
DEFAULT_HIGH_ACCURACY_LIMIT = 100.0

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Config:
    data_dir: Path
    store_path: Path
    prefs_path: Path
    geocode_cache_path: Path
    geocode_enabled: bool = False
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    log_level: str = "INFO"
    high_accuracy_limit: float = DEFAULT_HIGH_ACCURACY_LIMIT


def _int(value: Optional[str], default: int) -> int:
    try:
        return int(value) if value else default
    except ValueError:
        logging.warning("Ignoring invalid integer setting %r", value)
        return default


def _float(value: Optional[str], default: float) -> float:
    try:
        return float(value) if value else default
    except ValueError:
        logging.warning("Ignoring invalid number setting %r", value)
        return default


def load_config(environ: Optional[Mapping[str, str]] = None, dotenv: bool = True) -> Config:
    """Build a `Config`. `environ` defaults to `os.environ` after loading `.env`."""
    if environ is None:
        if dotenv:
            load_dotenv()
        environ = os.environ

    raw_dir = normalize_user_path(environ.get("FIELDSYNC_DATA_DIR"))
    data_dir = Path(raw_dir) if raw_dir else default_data_dir()
    level = (environ.get("FIELDSYNC_LOG_LEVEL") or "INFO").upper()
    if not isinstance(logging.getLevelName(level), int):
        level = "INFO"

    return Config(
        data_dir=data_dir,
        store_path=resolve_data_path(environ.get("FIELDSYNC_STORE_PATH"), "anchors.json", data_dir),
        prefs_path=resolve_data_path(environ.get("FIELDSYNC_PREFS_PATH"), "preferences.json", data_dir),
        geocode_cache_path=data_dir / "geocache.json",
        geocode_enabled=(environ.get("FIELDSYNC_GEOCODE") or "").strip().lower() in _TRUTHY,
        host=environ.get("FIELDSYNC_HOST") or DEFAULT_HOST,
        port=_int(environ.get("FIELDSYNC_PORT"), DEFAULT_PORT),
        log_level=level,
        high_accuracy_limit=_float(environ.get("FIELDSYNC_HIGH_ACCURACY_LIMIT"), DEFAULT_HIGH_ACCURACY_LIMIT),
    )


def configure_logging(config: Config) -> None:
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
