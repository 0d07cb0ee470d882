"""Process-wide logging: console output plus an optional rotating log file.

All modules log through ``logging.getLogger(__name__)``; only the entry point
calls :func:`configure_logging`. Environment knobs:

- ``LOG_LEVEL`` (default INFO)
- ``LOG_DIR`` / ``LOG_FILE_NAME`` (default ``logs/<service>.log``)
- ``LOG_MAX_BYTES`` / ``LOG_BACKUP_COUNT`` for rotation
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler
from pathlib import Path

from config import clean_env_value, parse_int

LOG_FORMAT = "%(asctime)s %(levelname)s:%(name)s:%(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

NOISY_LOGGERS = ("aiosqlite", "aiohttp.access")


@dataclass(frozen=True, slots=True)
class LogSettings:
    level: int
    log_path: Path
    max_bytes: int
    backup_count: int


def read_log_settings(service_name: str) -> LogSettings:
    level_name = (clean_env_value(os.getenv("LOG_LEVEL")) or "INFO").upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO

    log_dir = clean_env_value(os.getenv("LOG_DIR")) or "logs"
    file_name = clean_env_value(os.getenv("LOG_FILE_NAME")) or f"{service_name}.log"
    return LogSettings(
        level=level,
        log_path=Path(log_dir) / file_name,
        max_bytes=max(0, parse_int(os.getenv("LOG_MAX_BYTES"), 10 * 1024 * 1024)),
        backup_count=max(0, parse_int(os.getenv("LOG_BACKUP_COUNT"), 10)),
    )


def _open_file_handler(settings: LogSettings) -> logging.Handler | None:
    try:
        settings.log_path.parent.mkdir(parents=True, exist_ok=True)
        return RotatingFileHandler(
            settings.log_path,
            maxBytes=settings.max_bytes,
            backupCount=settings.backup_count,
            encoding="utf-8",
        )
    except OSError as error:
        logging.getLogger(__name__).warning(
            "File logging disabled: cannot open %s (%s)", settings.log_path, error
        )
        return None


def configure_logging(service_name: str) -> LogSettings:
    """Install console and file handlers on the root logger.

    An unwritable log directory only disables the file handler; the service
    keeps logging to the console.
    """
    settings = read_log_settings(service_name)
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(settings.level)

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    root.addHandler(console)

    file_handler = _open_file_handler(settings)
    if file_handler is not None:
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(settings.level, logging.WARNING))
    return settings
