#!/usr/bin/env python3
"""
Quota race smoke-check: legacy read-then-write vs transactional mode.

What it validates:
- legacy mode: two callers that both check before either records can push
  a counter past the tier limit (known overshoot)
- transactional mode: concurrent attend/join/create calls let exactly as
  many through as the tier allows, and the counter never exceeds the limit

Run:
  python3 scripts/smoke_quota_race.py
"""

from __future__ import annotations

import asyncio
import dataclasses
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

from config import CFG, QUOTA_MODE_LEGACY, QUOTA_MODE_TRANSACTIONAL  # noqa: E402
from database import DocumentStore  # noqa: E402
from subscriptions.models import LEVEL1_COLLECTION, LEVEL2_COLLECTION  # noqa: E402
from subscriptions.service import Level1SubscriptionService, Level2SubscriptionService  # noqa: E402


def _assert(cond: bool, message: str) -> None:
    if not cond:
        raise AssertionError(message)


async def _check_legacy_overshoot(store: DocumentStore, db_path: Path) -> None:
    cfg = dataclasses.replace(CFG, db_path=str(db_path), quota_mode=QUOTA_MODE_LEGACY)
    service = Level1SubscriptionService(store, cfg)
    _assert(not service.transactional, "legacy mode must not be transactional")

    first, second = await asyncio.gather(
        service.can_attend_squad_meetup("legacy-user"),
        service.can_attend_squad_meetup("legacy-user"),
    )
    _assert(first.allowed and second.allowed, "both checks run before any record and pass")
    await service.record_squad_meetup_attendance("legacy-user")
    await service.record_squad_meetup_attendance("legacy-user")
    stored = await store.get(LEVEL1_COLLECTION, "legacy-user")
    _assert(stored["squadMeetupsAttendedThisMonth"] == 2, "legacy flow overshoots the FREE limit of 1")


async def _check_transactional(store: DocumentStore, db_path: Path) -> None:
    cfg = dataclasses.replace(CFG, db_path=str(db_path), quota_mode=QUOTA_MODE_TRANSACTIONAL)
    level1 = Level1SubscriptionService(store, cfg)
    level2 = Level2SubscriptionService(store, cfg)
    _assert(level1.transactional and level2.transactional, "transactional mode must be on")

    decisions = await asyncio.gather(*(level1.attend_squad_meetup("tx-user") for _ in range(3)))
    allowed = [decision for decision in decisions if decision.allowed]
    _assert(len(allowed) == 1, f"exactly one FREE meetup may pass, got {len(allowed)}")
    stored = await store.get(LEVEL1_COLLECTION, "tx-user")
    _assert(stored["squadMeetupsAttendedThisMonth"] == 1, f"counter must equal the limit: {stored}")
    _assert(stored["tier"] == "FREE", "missing subscription is created inside the transaction")

    await store.set(LEVEL1_COLLECTION, "tx-gold", {"userId": "tx-gold", "tier": "GOLD"})
    decisions = await asyncio.gather(*(level1.attend_squad_meetup("tx-gold") for _ in range(5)))
    _assert(sum(1 for decision in decisions if decision.allowed) == 3, "GOLD allows exactly three meetups")
    stored = await store.get(LEVEL1_COLLECTION, "tx-gold")
    _assert(stored["squadMeetupsAttendedThisMonth"] == 3, "GOLD counter must stop at 3")

    await store.set(LEVEL2_COLLECTION, "tx-biz", {"userId": "tx-biz", "tier": "SILVER"})
    decisions = await asyncio.gather(*(level2.create_mission_slot("tx-biz", "VISIT") for _ in range(5)))
    _assert(sum(1 for decision in decisions if decision.allowed) == 3, "SILVER allows three active missions")
    stored = await store.get(LEVEL2_COLLECTION, "tx-biz")
    _assert(stored["activeMissionsCount"] == 3, "active missions must stop at 3")

    await store.set(LEVEL2_COLLECTION, "tx-events", {"userId": "tx-events", "tier": "PLATINUM"})
    decisions = await asyncio.gather(*(level2.join_event("tx-events", is_free_event=True) for _ in range(4)))
    _assert(sum(1 for decision in decisions if decision.allowed) == 2, "PLATINUM: one monthly + one quarterly")
    stored = await store.get(LEVEL2_COLLECTION, "tx-events")
    _assert(
        stored["freeEventsUsedThisMonth"] == 1 and stored["freeEventsUsedThisQuarter"] == 1,
        f"free quotas must not overshoot: {stored}",
    )


async def _run_checks(db_path: Path) -> None:
    store = DocumentStore(str(db_path))
    await store.init()
    await _check_legacy_overshoot(store, db_path)
    await _check_transactional(store, db_path)


def main() -> None:
    tmpdir = Path(tempfile.mkdtemp(prefix="loyalty-smoke-quota-race-"))
    try:
        asyncio.run(_run_checks(tmpdir / "state.db"))
        print("OK: quota race smoke passed.")
    finally:
        shutil.rmtree(tmpdir, ignore_errors=True)


if __name__ == "__main__":
    main()
