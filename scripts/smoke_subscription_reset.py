#!/usr/bin/env python3
"""
Subscription counter reset smoke-check.

What it validates:
- monthly counters of both levels are zeroed and lastMonthlyReset stamped
- quarterly counters reset only after 90 days (or when never reset)
- the scheduled variant skips subscriptions already reset this month
- a forced reset zeroes everything regardless of dates
- the background loop performs a due reset on its first pass

Run:
  python3 scripts/smoke_subscription_reset.py
"""

from __future__ import annotations

import asyncio
import contextlib
import shutil
import sys
import tempfile
from datetime import datetime, timedelta, timezone
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

from database import DocumentStore  # noqa: E402
from subscriptions.maintenance import (  # noqa: E402
    is_monthly_reset_due,
    is_quarterly_reset_due,
    reset_subscription_counters,
    subscription_reset_loop,
)
from subscriptions.models import LEVEL1_COLLECTION, LEVEL2_COLLECTION  # noqa: E402


NOW = datetime(2026, 4, 1, 0, 5, tzinfo=timezone.utc)


def _assert(cond: bool, message: str) -> None:
    if not cond:
        raise AssertionError(message)


def _iso(moment: datetime) -> str:
    return moment.isoformat()


def _check_due_rules() -> None:
    _assert(is_monthly_reset_due(None, NOW), "missing monthly marker is due")
    _assert(is_monthly_reset_due(_iso(NOW - timedelta(minutes=10)), NOW), "new calendar month is due")
    _assert(not is_monthly_reset_due(_iso(NOW), NOW), "same month")
    _assert(is_quarterly_reset_due(None, NOW), "missing quarterly marker is due")
    _assert(is_quarterly_reset_due(_iso(NOW - timedelta(days=90)), NOW), "exactly 90 days is due")
    _assert(not is_quarterly_reset_due(_iso(NOW - timedelta(days=89, hours=23)), NOW), "89.9 days is not due")


async def _seed(store: DocumentStore) -> None:
    await store.set(
        LEVEL1_COLLECTION,
        "member-old",
        {
            "userId": "member-old",
            "tier": "SILVER",
            "squadMeetupsAttendedThisMonth": 1,
            "eventsAttendedThisMonth": 2,
            "freeEventsUsedThisMonth": 1,
            "eventsAttendedThisQuarter": 4,
            "freeEventsUsedThisQuarter": 1,
            "lastMonthlyReset": _iso(NOW - timedelta(days=31)),
            "lastQuarterlyReset": _iso(NOW - timedelta(days=95)),
        },
    )
    await store.set(
        LEVEL1_COLLECTION,
        "member-recent-quarter",
        {
            "userId": "member-recent-quarter",
            "tier": "GOLD",
            "squadMeetupsAttendedThisMonth": 3,
            "eventsAttendedThisQuarter": 2,
            "freeEventsUsedThisQuarter": 1,
            "lastMonthlyReset": _iso(NOW - timedelta(days=31)),
            "lastQuarterlyReset": _iso(NOW - timedelta(days=31)),
        },
    )
    await store.set(
        LEVEL2_COLLECTION,
        "biz-this-month",
        {
            "userId": "biz-this-month",
            "tier": "GOLD",
            "activeMissionsCount": 4,
            "googleReviewsThisMonth": 2,
            "referralMissionsThisMonth": 1,
            "participantsThisMonth": 12,
            "lastMonthlyReset": _iso(NOW - timedelta(minutes=1)),
            "lastQuarterlyReset": _iso(NOW - timedelta(days=10)),
        },
    )
    await store.set(
        LEVEL2_COLLECTION,
        "biz-never-reset",
        {"userId": "biz-never-reset", "tier": "PLATINUM", "googleReviewsThisMonth": 5, "freeEventsUsedThisQuarter": 1},
    )


async def _check_scheduled_reset(store: DocumentStore) -> None:
    report = await reset_subscription_counters(store, now=NOW, only_due=True)
    _assert(
        report.to_dict() == {"level1Updated": 2, "level2Updated": 1, "quarterlyResets": 2},
        f"unexpected scheduled report: {report.to_dict()}",
    )

    old = await store.get(LEVEL1_COLLECTION, "member-old")
    _assert(
        old["squadMeetupsAttendedThisMonth"] == 0
        and old["eventsAttendedThisMonth"] == 0
        and old["freeEventsUsedThisMonth"] == 0,
        f"monthly counters must be zeroed: {old}",
    )
    _assert(
        old["eventsAttendedThisQuarter"] == 0 and old["freeEventsUsedThisQuarter"] == 0,
        "95 days since the last quarterly reset must reset quarterly counters",
    )
    _assert(old["lastMonthlyReset"] == _iso(NOW) and old["lastQuarterlyReset"] == _iso(NOW), "markers stamped")
    _assert(old["tier"] == "SILVER", "tier must survive the reset")

    recent = await store.get(LEVEL1_COLLECTION, "member-recent-quarter")
    _assert(recent["squadMeetupsAttendedThisMonth"] == 0, "monthly counters reset")
    _assert(
        recent["eventsAttendedThisQuarter"] == 2 and recent["freeEventsUsedThisQuarter"] == 1,
        "quarterly counters must stay before 90 days",
    )
    _assert(recent["lastQuarterlyReset"] == _iso(NOW - timedelta(days=31)), "quarterly marker untouched")

    this_month = await store.get(LEVEL2_COLLECTION, "biz-this-month")
    _assert(this_month["googleReviewsThisMonth"] == 2, "already reset this month must be skipped")

    never = await store.get(LEVEL2_COLLECTION, "biz-never-reset")
    _assert(never["googleReviewsThisMonth"] == 0, "never-reset subscription is due")
    _assert(never["freeEventsUsedThisQuarter"] == 0, "missing quarterly marker is due")
    _assert(
        never["participantsThisMonth"] == 0 and never["referralMissionsThisMonth"] == 0,
        "all Level 2 monthly counters are written",
    )

    again = await reset_subscription_counters(store, now=NOW, only_due=True)
    _assert(again.total_updated == 0, "second scheduled run in the same month must do nothing")


async def _check_forced_reset(store: DocumentStore) -> None:
    report = await reset_subscription_counters(store, now=NOW + timedelta(hours=1), force=True)
    _assert(report.level1_updated == 2 and report.level2_updated == 2, f"forced reset: {report.to_dict()}")
    _assert(report.quarterly_resets == 4, "forced reset stamps every quarterly marker")
    this_month = await store.get(LEVEL2_COLLECTION, "biz-this-month")
    _assert(this_month["googleReviewsThisMonth"] == 0, "forced reset ignores dates")
    _assert(this_month["activeMissionsCount"] == 4, "active missions are not a periodic counter")
    recent = await store.get(LEVEL1_COLLECTION, "member-recent-quarter")
    _assert(recent["eventsAttendedThisQuarter"] == 0, "forced reset clears quarterly counters")


async def _check_loop(store: DocumentStore) -> None:
    await store.set(
        LEVEL1_COLLECTION,
        "loop-member",
        {"userId": "loop-member", "tier": "FREE", "squadMeetupsAttendedThisMonth": 1},
    )
    task = asyncio.create_task(subscription_reset_loop(store, interval_sec=3600))
    try:
        for _ in range(100):
            data = await store.get(LEVEL1_COLLECTION, "loop-member") or {}
            if data.get("squadMeetupsAttendedThisMonth") == 0:
                break
            await asyncio.sleep(0.05)
        else:
            raise AssertionError("reset loop did not reset a due subscription")
        _assert(not task.done(), "reset loop must keep running")
    finally:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task


async def _run_checks(db_path: Path) -> None:
    store = DocumentStore(str(db_path))
    await store.init()
    empty = await reset_subscription_counters(store, now=NOW)
    _assert(empty.total_updated == 0 and empty.quarterly_resets == 0, "empty store must report no updates")

    await _seed(store)
    await _check_scheduled_reset(store)
    await _check_forced_reset(store)
    await _check_loop(store)


def main() -> None:
    _check_due_rules()
    tmpdir = Path(tempfile.mkdtemp(prefix="loyalty-smoke-reset-"))
    try:
        asyncio.run(_run_checks(tmpdir / "state.db"))
        print("OK: subscription reset smoke passed.")
    finally:
        shutil.rmtree(tmpdir, ignore_errors=True)


if __name__ == "__main__":
    main()
