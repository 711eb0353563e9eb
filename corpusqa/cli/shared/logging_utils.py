"""Loguru helpers for consistent logging in CLI commands."""

from __future__ import annotations

import sys
from pathlib import Path

from loguru import logger

from corpusqa.utils.helpers import get_data_path

_SINK_IDS: dict[str, int] = {}
_STDERR_FORMAT = "<dim>{time:HH:mm:ss.SSS}</dim> | <level>{level: <8}</level> | <level>{message}</level>"


def log_dir() -> Path:
    return get_data_path() / "logs"


def ensure_rotating_log_file(name: str, level: str = "INFO") -> Path:
    """Ensure a rotating log sink for the given command name."""
    log_path = log_dir() / f"{name}.log"
    if name in _SINK_IDS:
        return log_path
    log_path.parent.mkdir(parents=True, exist_ok=True)
    sink_id = logger.add(
        str(log_path),
        level=level,
        rotation="10 MB",
        retention="14 days",
        enqueue=True,
        encoding="utf-8",
        backtrace=False,
        diagnose=False,
    )
    _SINK_IDS[name] = sink_id
    return log_path


def configure_cli_logging(name: str, level: str = "INFO", file_enabled: bool = True, verbose: bool = False) -> None:
    """Replace loguru's default sink with a stderr sink at ``level`` (DEBUG when verbose) plus the file sink."""
    level = "DEBUG" if verbose else (level or "INFO").upper()
    logger.remove()
    logger.add(sys.stderr, level=level, format=_STDERR_FORMAT)
    _SINK_IDS.clear()
    if file_enabled:
        ensure_rotating_log_file(name, level=level)
