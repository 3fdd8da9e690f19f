"""Logging utilities for CLI and pipeline modules."""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path


DEFAULT_LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_LEVEL_ENV = "APPDIST_LOG_LEVEL"


def resolve_log_level(value: str | int | None = None) -> int:
    """Turn a level name or number (or the APPDIST_LOG_LEVEL env var) into a logging level."""

    chosen = value if value is not None else os.getenv(LOG_LEVEL_ENV)
    if chosen is None or chosen == "":
        return logging.INFO
    if isinstance(chosen, int):
        return chosen
    level = logging.getLevelName(chosen.strip().upper())
    if not isinstance(level, int):
        raise ValueError(f"unknown log level {chosen!r}")
    return level


def configure_logging(log_file: Path, level: str | int | None = None) -> logging.Logger:
    """Configure process-wide logging: console on stderr, full detail in ``log_file``.

    The console stays at the requested level while the file always records
    DEBUG so tool invocations can be reviewed after a failed build.
    """

    console_level = resolve_log_level(level)
    log_file.parent.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(min(console_level, logging.DEBUG))

    formatter = logging.Formatter(fmt=DEFAULT_LOG_FORMAT, datefmt=DEFAULT_DATE_FORMAT)

    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    stream_handler.setLevel(console_level)

    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setFormatter(formatter)
    file_handler.setLevel(logging.DEBUG)

    root_logger.addHandler(stream_handler)
    root_logger.addHandler(file_handler)

    return logging.getLogger("appdist")
