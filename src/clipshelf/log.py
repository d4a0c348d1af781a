from __future__ import annotations

import logging
from pathlib import Path

from .paths import log_path

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
_LEVELS = {"debug", "info", "warning", "error"}


def parse_log_level(value: str | None) -> int:
    if not value:
        return logging.INFO
    name = value.strip().lower()
    if name not in _LEVELS:
        raise ValueError(f"Unknown log level: {value}")
    return getattr(logging, name.upper())


def configure_logging(level: int = logging.INFO, path: Path | None = None) -> Path:
    """Send package logs to a file; the TUI owns the terminal."""
    path = path or log_path()
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    package_logger = logging.getLogger("clipshelf")
    package_logger.setLevel(level)
    for existing in list(package_logger.handlers):
        if isinstance(existing, logging.FileHandler):
            package_logger.removeHandler(existing)
            existing.close()
    package_logger.addHandler(handler)
    return path
