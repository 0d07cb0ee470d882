#!/usr/bin/env python3
"""
Static smoke-check: environment parsing helpers and config loading.

What it validates:
- quoted/blank env values are cleaned
- bool/int/float parsers fall back to defaults on garbage
- unknown QUOTA_MODE values fall back to legacy
- load_config reads the process environment and clamps intervals

Run:
  python3 scripts/smoke_config_parsers.py
"""

from __future__ import annotations

import os
import sys
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

from config import (  # noqa: E402
    QUOTA_MODE_LEGACY,
    QUOTA_MODE_TRANSACTIONAL,
    clean_env_value,
    is_admin_api_enabled,
    is_quota_transactional,
    load_config,
    parse_bool,
    parse_float,
    parse_int,
    parse_quota_mode,
)


ENV_KEYS = (
    "DB_PATH",
    "API_PORT",
    "ADMIN_API_KEY",
    "FUNCTIONS_BASE_URL",
    "FUNCTIONS_TIMEOUT_SEC",
    "RECOMMENDATION_POOL_SIZE",
    "RECOMMENDATION_ENFORCE_GEO_SCOPE",
    "QUOTA_MODE",
    "SUBSCRIPTION_RESET_ENABLED",
    "SUBSCRIPTION_RESET_INTERVAL_SEC",
)


def _assert(cond: bool, message: str) -> None:
    if not cond:
        raise AssertionError(message)


def _check_parsers() -> None:
    _assert(clean_env_value('  "quoted"  ') == "quoted", "double quotes must be stripped")
    _assert(clean_env_value("'single'") == "single", "single quotes must be stripped")
    _assert(clean_env_value(None, "dflt") == "dflt", "None must give the default")

    for raw in ("1", "true", "YES", " on ", '"y"'):
        _assert(parse_bool(raw) is True, f"{raw!r} must parse as True")
    for raw in ("0", "false", "No", "off"):
        _assert(parse_bool(raw, True) is False, f"{raw!r} must parse as False")
    _assert(parse_bool("maybe", True) is True, "garbage must keep the default")
    _assert(parse_bool(None) is False, "missing value must keep the default")

    _assert(parse_int("42", 1) == 42, "int must parse")
    _assert(parse_int(" ", 7) == 7, "blank int must fall back")
    _assert(parse_int("4.2", 7) == 7, "non-int must fall back")
    _assert(parse_float("2.5", 1.0) == 2.5, "float must parse")
    _assert(parse_float("abc", 1.5) == 1.5, "bad float must fall back")

    _assert(parse_quota_mode("Transactional") == QUOTA_MODE_TRANSACTIONAL, "mode is case-insensitive")
    _assert(parse_quota_mode("optimistic") == QUOTA_MODE_LEGACY, "unknown mode must fall back to legacy")
    _assert(parse_quota_mode(None) == QUOTA_MODE_LEGACY, "missing mode is legacy")


def _check_load_config() -> None:
    saved = {key: os.environ.get(key) for key in ENV_KEYS}
    try:
        os.environ.update(
            {
                "DB_PATH": "/tmp/loyalty-smoke.db",
                "API_PORT": "9191",
                "ADMIN_API_KEY": "'secret'",
                "FUNCTIONS_BASE_URL": "https://functions.example.org/",
                "FUNCTIONS_TIMEOUT_SEC": "3.5",
                "RECOMMENDATION_POOL_SIZE": "0",
                "RECOMMENDATION_ENFORCE_GEO_SCOPE": "yes",
                "QUOTA_MODE": "transactional",
                "SUBSCRIPTION_RESET_ENABLED": "1",
                "SUBSCRIPTION_RESET_INTERVAL_SEC": "5",
            }
        )
        cfg = load_config()
        _assert(cfg.db_path == "/tmp/loyalty-smoke.db", "DB_PATH must be used")
        _assert(cfg.api_port == 9191, "API_PORT must be parsed")
        _assert(cfg.admin_api_key == "secret" and is_admin_api_enabled(cfg), "admin key must be cleaned")
        _assert(cfg.functions_base_url == "https://functions.example.org", "trailing slash must be dropped")
        _assert(cfg.functions_timeout_sec == 3.5, "timeout must be parsed")
        _assert(cfg.recommendation_pool_size == 1, "pool size is at least 1")
        _assert(cfg.recommendation_enforce_geo_scope is True, "geo scope switch must be parsed")
        _assert(is_quota_transactional(cfg), "transactional mode must be parsed")
        _assert(cfg.subscription_reset_enabled is True, "reset loop switch must be parsed")
        _assert(cfg.subscription_reset_interval_sec == 60, "reset interval is at least 60s")

        for key in ENV_KEYS:
            os.environ.pop(key, None)
        defaults = load_config()
        _assert(defaults.api_port == 8080, "default port is 8080")
        _assert(not is_admin_api_enabled(defaults), "admin API is off without a key")
        _assert(defaults.quota_mode == QUOTA_MODE_LEGACY, "default quota mode is legacy")
        _assert(defaults.subscription_reset_interval_sec == 3600, "default reset interval is one hour")
        _assert(defaults.recommendation_max_results >= 1, "max results default must be positive")
    finally:
        for key, value in saved.items():
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value


def main() -> None:
    _check_parsers()
    _check_load_config()
    print("OK: config parsers smoke passed.")


if __name__ == "__main__":
    main()
