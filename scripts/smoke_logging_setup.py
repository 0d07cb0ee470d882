#!/usr/bin/env python3
"""
Logging setup smoke-check.

What it validates:
- LOG_DIR / LOG_FILE_NAME / LOG_LEVEL are honored and records reach the file
- unknown levels fall back to INFO
- chatty library loggers stay at WARNING or above
- an unusable log directory leaves console-only logging instead of failing

Run:
  python3 scripts/smoke_logging_setup.py
"""

from __future__ import annotations

import logging
import os
import shutil
import sys
import tempfile
from pathlib import Path


def _setup_import_path() -> None:
    for candidate in (
        Path(__file__).resolve().parents[1] / "src",
        Path.cwd() / "src",
    ):
        if candidate.exists():
            sys.path.insert(0, str(candidate))
            return


_setup_import_path()

from logging.handlers import RotatingFileHandler  # noqa: E402

from logging_setup import NOISY_LOGGERS, configure_logging, read_log_settings  # noqa: E402


ENV_KEYS = ("LOG_LEVEL", "LOG_DIR", "LOG_FILE_NAME", "LOG_MAX_BYTES", "LOG_BACKUP_COUNT")


def _assert(cond: bool, message: str) -> None:
    if not cond:
        raise AssertionError(message)


def _file_handlers(root: logging.Logger) -> list[logging.Handler]:
    return [h for h in root.handlers if isinstance(h, RotatingFileHandler)]


def _check_file_logging(tmpdir: Path) -> None:
    os.environ.update(
        {
            "LOG_LEVEL": "debug",
            "LOG_DIR": str(tmpdir / "logs"),
            "LOG_FILE_NAME": "smoke.log",
            "LOG_MAX_BYTES": "2048",
            "LOG_BACKUP_COUNT": "2",
        }
    )
    settings = configure_logging("loyalty-smoke")
    root = logging.getLogger()
    _assert(settings.level == logging.DEBUG, f"level must be DEBUG, got {settings.level}")
    _assert(settings.log_path == tmpdir / "logs" / "smoke.log", f"log path: {settings.log_path}")
    _assert(root.level == logging.DEBUG, "root logger level must follow LOG_LEVEL")

    handlers = _file_handlers(root)
    _assert(len(handlers) == 1, f"expected one rotating handler, got {root.handlers}")
    _assert(handlers[0].maxBytes == 2048 and handlers[0].backupCount == 2, "rotation knobs must apply")

    for name in NOISY_LOGGERS:
        _assert(logging.getLogger(name).level == logging.WARNING, f"{name} must stay at WARNING")

    logging.getLogger("smoke.logging").debug("mission %s scored %d", "m-1", 67)
    for handler in root.handlers:
        handler.flush()
    text = settings.log_path.read_text(encoding="utf-8")
    _assert("DEBUG:smoke.logging:mission m-1 scored 67" in text, f"record missing from log file: {text!r}")

    for handler in handlers:
        root.removeHandler(handler)
        handler.close()


def _check_defaults_and_fallbacks(tmpdir: Path) -> None:
    for key in ENV_KEYS:
        os.environ.pop(key, None)
    defaults = read_log_settings("loyalty-core")
    _assert(defaults.level == logging.INFO, "default level is INFO")
    _assert(defaults.log_path == Path("logs") / "loyalty-core.log", f"default path: {defaults.log_path}")
    _assert(defaults.max_bytes == 10 * 1024 * 1024 and defaults.backup_count == 10, "default rotation")

    os.environ["LOG_LEVEL"] = "verbose"
    _assert(read_log_settings("x").level == logging.INFO, "unknown level must fall back to INFO")

    blocker = tmpdir / "not-a-dir"
    blocker.write_text("file", encoding="utf-8")
    os.environ["LOG_LEVEL"] = "WARNING"
    os.environ["LOG_DIR"] = str(blocker / "nested")
    settings = configure_logging("loyalty-smoke")
    root = logging.getLogger()
    _assert(settings.level == logging.WARNING, "WARNING level must parse")
    _assert(not _file_handlers(root), "unusable log dir must not install a file handler")
    _assert(len(root.handlers) == 1, f"console handler must remain, got {root.handlers}")


def main() -> None:
    saved_env = {key: os.environ.get(key) for key in ENV_KEYS}
    root = logging.getLogger()
    saved_handlers = list(root.handlers)
    saved_level = root.level
    tmpdir = Path(tempfile.mkdtemp(prefix="loyalty-smoke-logging-"))
    try:
        _check_file_logging(tmpdir)
        _check_defaults_and_fallbacks(tmpdir)
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)
        for key, value in saved_env.items():
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value
        shutil.rmtree(tmpdir, ignore_errors=True)
    print("OK: logging setup smoke passed.")


if __name__ == "__main__":
    main()
