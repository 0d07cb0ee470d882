#!/usr/bin/env python3
"""
Store failure smoke-check.

The document store points at a database file inside a directory that does
not exist, so every read and write fails inside aiosqlite.

What it validates:
- mission mutations return failed OperationResults with an error message
- mission reads fall back to None, [] or zeroed stats
- quota checks and combined check-and-record calls (legacy and
  transactional) deny with "Error checking eligibility"
- usage recording and tier updates fail with readable errors
- the background reset loop logs the failure and keeps running

Run:
  python3 scripts/smoke_store_failures.py
"""

from __future__ import annotations

import asyncio
import contextlib
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
from missions.models import GeoPoint  # noqa: E402
from missions.repository import MissionRepository  # noqa: E402
from missions.service import MissionService  # noqa: E402
from subscriptions.maintenance import subscription_reset_loop  # noqa: E402
from subscriptions.service import Level1SubscriptionService, Level2SubscriptionService  # noqa: E402


ELIGIBILITY_ERROR = {"allowed": False, "reason": "Error checking eligibility"}


def _assert(cond: bool, message: str) -> None:
    if not cond:
        raise AssertionError(message)


def _assert_failed(result, label: str) -> None:
    _assert(not result.success and result.error, f"{label} must fail with an error: {result}")


async def _check_missions(store: DocumentStore) -> None:
    cfg = dataclasses.replace(CFG, db_path=store.db_path, recommendation_enforce_geo_scope=True)
    service = MissionService(MissionRepository(store), cfg)

    _assert_failed(await service.create_mission({"businessId": "biz-1", "title": "Offline"}), "create_mission")
    _assert_failed(await service.update_mission("m-1", {"title": "x"}), "update_mission")
    _assert_failed(await service.publish_mission("m-1"), "publish_mission")
    _assert_failed(await service.toggle_mission_status("m-1", pause=True), "toggle_mission_status")
    _assert_failed(await service.delete_mission("m-1"), "delete_mission")
    _assert_failed(await service.apply_to_mission("m-1", "user-1"), "apply_to_mission")
    _assert_failed(await service.submit_mission_proof("p-1", proof_text="done"), "submit_mission_proof")
    _assert_failed(await service.review_participation("p-1", True), "approving a participation")
    _assert_failed(await service.review_participation("p-1", False), "rejecting a participation")

    _assert(await service.get_mission("m-1") is None, "get_mission must read as None")
    _assert(await service.get_active_missions() == [], "get_active_missions must read as []")
    _assert(await service.get_missions_by_business("biz-1") == [], "get_missions_by_business must read as []")
    _assert(await service.get_mission_participations("m-1") == [], "mission participations must read as []")
    _assert(await service.get_user_participations("user-1") == [], "user participations must read as []")
    _assert(
        await service.get_missions_for_user("user-1", interests=["food"], location=GeoPoint(52.52, 13.405)) == [],
        "get_missions_for_user must read as []",
    )
    _assert(await service.recommend_missions("user-1") == [], "recommend_missions must read as []")
    _assert(await service.get_business_planning("biz-1") is None, "planning must read as None")

    stats = (await service.get_mission_stats("biz-1")).to_dict()
    _assert(
        stats
        == {
            "totalMissions": 0,
            "activeMissions": 0,
            "completedMissions": 0,
            "totalApplications": 0,
            "pendingReviews": 0,
        },
        f"stats must be zeroed: {stats}",
    )


async def _check_level1(store: DocumentStore, quota_mode: str) -> None:
    service = Level1SubscriptionService(store, dataclasses.replace(CFG, db_path=store.db_path, quota_mode=quota_mode))

    _assert(await service.get_subscription("member-1") is None, "get_subscription must read as None")
    _assert((await service.can_attend_squad_meetup("member-1")).to_dict() == ELIGIBILITY_ERROR, "meetup check")
    _assert(
        (await service.can_attend_business_event("member-1", is_free_event=True)).to_dict() == ELIGIBILITY_ERROR,
        "event check",
    )
    _assert((await service.attend_squad_meetup("member-1")).to_dict() == ELIGIBILITY_ERROR, f"{quota_mode} meetup")
    _assert((await service.attend_business_event("member-1")).to_dict() == ELIGIBILITY_ERROR, f"{quota_mode} event")

    recorded = await service.record_squad_meetup_attendance("member-1")
    _assert(not recorded.success and recorded.error == "Failed to record usage", f"meetup record: {recorded}")
    _assert_failed(await service.record_business_event_attendance("member-1", True), "event record")

    tier = await service.update_tier("member-1", "gold")
    _assert(not tier.success and tier.error == "Failed to update subscription", f"tier update: {tier}")
    _assert(await service.has_benefit("member-1", "squadMeetups") is False, "has_benefit must read as False")


async def _check_level2(store: DocumentStore, quota_mode: str) -> None:
    service = Level2SubscriptionService(store, dataclasses.replace(CFG, db_path=store.db_path, quota_mode=quota_mode))

    _assert(
        (await service.can_create_mission("biz-1", "GOOGLE_REVIEW")).to_dict() == ELIGIBILITY_ERROR,
        "mission creation check",
    )
    _assert((await service.can_join_event("biz-1", True)).to_dict() == ELIGIBILITY_ERROR, "event join check")
    _assert((await service.create_mission_slot("biz-1", "VISIT")).to_dict() == ELIGIBILITY_ERROR, f"{quota_mode} slot")
    _assert((await service.join_event("biz-1", True)).to_dict() == ELIGIBILITY_ERROR, f"{quota_mode} event join")

    _assert_failed(await service.record_mission_creation("biz-1", "REFERRAL"), "mission creation record")
    _assert_failed(await service.record_mission_completion("biz-1"), "mission completion record")
    _assert_failed(await service.record_event_attendance("biz-1", True), "event attendance record")
    _assert_failed(await service.update_tier("biz-1", "PLATINUM"), "Level 2 tier update")


async def _check_reset_loop(store: DocumentStore) -> None:
    task = asyncio.create_task(subscription_reset_loop(store, interval_sec=60))
    try:
        await asyncio.sleep(0.2)
        _assert(not task.done(), "reset loop must survive a failing store")
    finally:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task


async def _run_checks(db_path: Path) -> None:
    store = DocumentStore(str(db_path))
    await _check_missions(store)
    for quota_mode in (QUOTA_MODE_LEGACY, QUOTA_MODE_TRANSACTIONAL):
        await _check_level1(store, quota_mode)
        await _check_level2(store, quota_mode)
    await _check_reset_loop(store)


def main() -> None:
    tmpdir = Path(tempfile.mkdtemp(prefix="loyalty-smoke-store-failures-"))
    try:
        asyncio.run(_run_checks(tmpdir / "missing-dir" / "state.db"))
        print("OK: store failures smoke passed.")
    finally:
        shutil.rmtree(tmpdir, ignore_errors=True)


if __name__ == "__main__":
    main()
