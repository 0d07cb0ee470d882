#!/usr/bin/env python3
"""
Static smoke-check: storage boundary policy.

Policy goals:
- `src/database.py` and the mission repository stay network-free.
- Only `src/database.py` talks to aiosqlite and opens SQL transactions;
  services reach the store through `DocumentStore` / `store.transaction()`.

This keeps HTTP calls out of locked write paths and keeps quota
transactions in one place.

Run:
  python3 scripts/smoke_storage_boundary_policy.py
"""

from __future__ import annotations

import re
from pathlib import Path


def _resolve(path_rel: str) -> Path:
    candidates = [
        Path(__file__).resolve().parents[1] / path_rel,
        Path.cwd() / path_rel,
    ]
    for p in candidates:
        if p.exists():
            return p
    return candidates[0]


DB_FILE = _resolve("src/database.py")
REPOSITORY_FILE = _resolve("src/missions/repository.py")
SERVICE_FILES = (
    _resolve("src/missions/service.py"),
    _resolve("src/subscriptions/service.py"),
    _resolve("src/subscriptions/maintenance.py"),
    _resolve("src/api_server.py"),
)

FORBIDDEN_NETWORK_MARKERS = (
    "import aiohttp",
    "from aiohttp",
    "requests.",
    "httpx.",
    "urllib.request",
)

BEGIN_RE = re.compile(r"[\"']BEGIN(?:\s+IMMEDIATE)?[\"']", re.IGNORECASE)
AIOSQLITE_RE = re.compile(r"^\s*(?:import|from)\s+aiosqlite\b", re.MULTILINE)


def _assert(cond: bool, msg: str) -> None:
    if not cond:
        raise AssertionError(msg)


def _read(path: Path) -> str:
    _assert(path.exists(), f"file not found: {path}")
    return path.read_text(encoding="utf-8")


def _check_no_network_markers(path: Path, text: str) -> list[str]:
    violations: list[str] = []
    lower_text = text.lower()
    for marker in FORBIDDEN_NETWORK_MARKERS:
        if marker.lower() in lower_text:
            violations.append(f"{path}: forbidden network marker `{marker}` in storage layer")
    return violations


def main() -> None:
    db_text = _read(DB_FILE)
    repo_text = _read(REPOSITORY_FILE)

    violations: list[str] = []
    violations.extend(_check_no_network_markers(DB_FILE, db_text))
    violations.extend(_check_no_network_markers(REPOSITORY_FILE, repo_text))

    for path in (REPOSITORY_FILE, *SERVICE_FILES):
        text = _read(path)
        if AIOSQLITE_RE.search(text):
            violations.append(f"{path}: aiosqlite must only be used by src/database.py")
        if BEGIN_RE.search(text):
            violations.append(f"{path}: raw SQL transaction BEGIN is forbidden outside src/database.py")

    if "BEGIN IMMEDIATE" not in db_text:
        violations.append(f"{DB_FILE}: expected a BEGIN IMMEDIATE transaction scope (sanity check failed)")

    if violations:
        raise SystemExit(
            "ERROR: storage boundary policy violation(s):\n"
            + "\n".join(f"- {v}" for v in violations)
        )

    print("OK: storage boundary policy smoke passed.")


if __name__ == "__main__":
    main()
