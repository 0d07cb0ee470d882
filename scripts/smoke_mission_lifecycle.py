#!/usr/bin/env python3
"""
Mission service lifecycle smoke-check.

What it validates:
- create_mission computes priority once, derives geoScope from the tier and
  persists a DRAFT, inactive mission with zero participants
- publish/pause/resume flip lifecycleStatus and isActive
- participation flow: apply (PENDING) -> proof (PENDING_APPROVAL) -> review
- approvals fill a mission; at capacity it becomes COMPLETED and inactive
- business stats, planning limits and the goal keyword boost
- mission details the model does not know (geo address, reward currency) survive creation
- recommendations rank the active pool and honour the geo-scope switch
- missing documents come back as failed results instead of exceptions

Run:
  python3 scripts/smoke_mission_lifecycle.py
"""

from __future__ import annotations

import asyncio
import dataclasses
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

from config import CFG  # noqa: E402
from database import DocumentStore  # noqa: E402
from missions.maturity import get_maturity_boost  # noqa: E402
from missions.models import GeoPoint  # noqa: E402
from missions.repository import MissionRepository  # noqa: E402
from missions.service import MissionService  # noqa: E402


def _assert(cond: bool, message: str) -> None:
    if not cond:
        raise AssertionError(message)


def _in_days(days: float) -> str:
    return (datetime.now(timezone.utc) + timedelta(days=days)).isoformat()


async def _check_create(service: MissionService, store: DocumentStore) -> str:
    result = await service.create_mission(
        {
            "id": "ignored",
            "businessId": "biz-1",
            "businessName": "Cafe Mitte",
            "title": "Post a review",
            "category": "food",
            "reward": {"type": "POINTS", "points": 1200, "currency": "EUR"},
            "budget": 1200,
            "goal": "SALES",
            "maxParticipants": 5,
            "approvalRequired": True,
            "validUntil": _in_days(2),
            "businessType": "PHYSICAL",
            "subscriptionTier": "GOLD",
            "city": "Berlin",
            "country": "DE",
            "geo": {
                "latitude": 52.5245,
                "longitude": 13.4050,
                "address": "Main St 1",
                "district": "Mitte",
                "city": None,
            },
            "note": None,
        }
    )
    _assert(result.success and result.id, f"create_mission must succeed: {result}")
    _assert(result.id != "ignored", "caller-supplied id must not be used")

    stored = await store.get("missions", result.id)
    _assert(stored is not None, "mission document must be stored")
    _assert(stored["priority"] == "HIGH" and stored["priorityScore"] == 98, f"priority: {stored}")
    _assert(stored["lifecycleStatus"] == "DRAFT" and stored["isActive"] is False, "new missions are inactive drafts")
    _assert(stored["currentParticipants"] == 0, "new missions start with zero participants")
    _assert(stored["geoScope"] == "COUNTRY", "GOLD physical business must get COUNTRY scope")
    _assert(stored["triggerType"] == "MANUAL", "trigger type must default to MANUAL")
    _assert("subscriptionTier" not in stored, "subscriptionTier is an input hint, not stored")
    _assert("note" not in stored, "None values must not be persisted")
    _assert(stored.get("createdAt"), "createdAt must be set")
    _assert(
        stored["geo"] == {"latitude": 52.5245, "longitude": 13.405, "address": "Main St 1", "district": "Mitte"},
        f"geo details must be kept: {stored['geo']}",
    )
    _assert(
        stored["reward"] == {"type": "POINTS", "points": 1200, "currency": "EUR"},
        f"reward details must be kept: {stored['reward']}",
    )

    manual = await service.create_mission({"businessId": "biz-1", "title": "Low", "priority": "low"})
    manual_doc = await store.get("missions", manual.id or "")
    _assert(
        manual_doc is not None and manual_doc["priority"] == "LOW" and manual_doc["priorityScore"] == 50,
        f"caller priority must be kept with score 50: {manual_doc}",
    )
    _assert("geoScope" not in manual_doc, "no tier and no scope means no derived scope")
    return result.id


async def _check_publish_cycle(service: MissionService, mission_id: str) -> None:
    _assert((await service.publish_mission(mission_id)).success, "publish must succeed")
    mission = await service.get_mission(mission_id)
    _assert(mission is not None and mission.lifecycle_status == "ACTIVE" and mission.is_active, "published = ACTIVE")

    await service.toggle_mission_status(mission_id, pause=True)
    mission = await service.get_mission(mission_id)
    _assert(mission.lifecycle_status == "PAUSED" and not mission.is_active, "pause must deactivate")
    _assert(await service.get_active_missions() == [], "paused mission must leave the active pool")

    await service.toggle_mission_status(mission_id, pause=False)
    mission = await service.get_mission(mission_id)
    _assert(mission.lifecycle_status == "ACTIVE" and mission.is_active, "resume must reactivate")
    active = await service.get_active_missions(category="food")
    _assert([item.id for item in active] == [mission_id], "active pool must contain the resumed mission")
    _assert(await service.get_active_missions(category="art") == [], "category filter must apply")

    missing = await service.publish_mission("ghost")
    _assert(not missing.success and missing.error, "publishing a missing mission must fail")
    _assert(await service.get_mission("ghost") is None, "missing mission must read as None")


async def _check_participations(service: MissionService, mission_id: str) -> None:
    applied = await service.apply_to_mission(mission_id, "user-1")
    _assert(applied.success and applied.id, f"apply must succeed: {applied}")
    second = await service.apply_to_mission(mission_id, "user-2")
    _assert(second.success, "second application must succeed")

    orphan = await service.apply_to_mission("ghost", "user-1")
    _assert(
        not orphan.success and orphan.error == "Mission not found or missing businessId",
        f"applying to a missing mission must fail: {orphan}",
    )

    participations = await service.get_mission_participations(mission_id)
    _assert(len(participations) == 2, "both applications must be listed")
    first = next(item for item in participations if item.id == applied.id)
    _assert(first.status == "PENDING" and first.business_id == "biz-1", "application must record businessId")

    proof = await service.submit_mission_proof(applied.id, proof_url="https://example.org/p.jpg")
    _assert(proof.success, "proof submission must succeed")
    after_proof = await service.get_user_participations("user-1")
    _assert(after_proof[0].status == "PENDING_APPROVAL", "proof must move to PENDING_APPROVAL")
    _assert(after_proof[0].proof_url == "https://example.org/p.jpg", "proof url must be stored")

    _assert((await service.review_participation(applied.id, True, "Great")).success, "approve must succeed")
    _assert((await service.review_participation(second.id, False)).success, "reject must succeed")
    counted = await service.get_mission(mission_id)
    _assert(counted.current_participants == 1, f"only the approval is counted: {counted.current_participants}")
    _assert(counted.lifecycle_status == "ACTIVE" and counted.is_active, "a mission below capacity stays active")
    approved = await service.get_mission_participations(mission_id, status="approved")
    _assert([item.id for item in approved] == [applied.id], "status filter must be case-insensitive")
    _assert(approved[0].feedback == "Great" and approved[0].reviewed_at, "review must set feedback and reviewedAt")
    rejected = await service.get_user_participations("user-2", status="REJECTED")
    _assert(len(rejected) == 1, "rejected participation must stay listed")

    missing = await service.review_participation("ghost", True)
    _assert(not missing.success, "reviewing a missing participation must fail")


async def _check_capacity(service: MissionService) -> None:
    created = await service.create_mission({"businessId": "biz-cap", "title": "Solo tasting", "maxParticipants": 1})
    mission_id = created.id
    await service.publish_mission(mission_id)
    first = await service.apply_to_mission(mission_id, "taster-1")
    late = await service.apply_to_mission(mission_id, "taster-2")

    _assert((await service.review_participation(first.id, True)).success, "approval must succeed")
    full = await service.get_mission(mission_id)
    _assert(full.current_participants == 1, f"approval must be counted: {full.current_participants}")
    _assert(full.lifecycle_status == "COMPLETED" and not full.is_active, "a full mission must complete")
    active_ids = [item.id for item in await service.get_active_missions()]
    _assert(mission_id not in active_ids, "completed mission must leave the active pool")

    await service.review_participation(first.id, True, "Approved twice")
    again = await service.get_mission(mission_id)
    _assert(again.current_participants == 1, "re-approving must not count twice")

    await service.review_participation(late.id, False)
    _assert((await service.get_mission(mission_id)).current_participants == 1, "rejections are not counted")

    stats = (await service.get_mission_stats("biz-cap")).to_dict()
    _assert(stats["completedMissions"] == 1 and stats["activeMissions"] == 0, f"capacity stats: {stats}")

    open_ended = await service.create_mission({"businessId": "biz-cap", "title": "Open house"})
    await service.publish_mission(open_ended.id)
    for user_id in ("guest-1", "guest-2"):
        applied = await service.apply_to_mission(open_ended.id, user_id)
        await service.review_participation(applied.id, True)
    unlimited = await service.get_mission(open_ended.id)
    _assert(unlimited.current_participants == 2, "missions without a cap still count approvals")
    _assert(unlimited.lifecycle_status == "ACTIVE" and unlimited.is_active, "missions without a cap never complete")


def _check_goal_keywords() -> None:
    events = get_maturity_boost({"mainGoal": "events"})
    _assert(events.goal_boost("Summer meetup") == 15, "events goal must match a meetup")
    _assert(events.goal_boost("Quiet reading hour") == 0, "unrelated goal text must not match")
    _assert(events.goal_boost(None) == 0, "no mission goal means no boost")
    _assert(get_maturity_boost({"mainGoal": "Followers"}).goal_boost("Instagram takeover") == 15, "case-insensitive")
    _assert(get_maturity_boost({"mainGoal": "world-domination"}).goal_boost("event") == 0, "unknown main goal")
    _assert(get_maturity_boost({}).goal_boost("event") == 0, "no main goal means no boost")


async def _check_stats_and_planning(service: MissionService, store: DocumentStore, mission_id: str) -> None:
    done = await service.create_mission({"businessId": "biz-1", "title": "Done"})
    await service.update_mission(done.id, {"lifecycleStatus": "COMPLETED"})
    stats = (await service.get_mission_stats("biz-1")).to_dict()
    _assert(
        stats
        == {
            "totalMissions": 3,
            "activeMissions": 1,
            "completedMissions": 1,
            "totalApplications": 2,
            "pendingReviews": 1,
        },
        f"unexpected stats: {stats}",
    )
    _assert((await service.get_mission_stats("nobody")).to_dict()["totalMissions"] == 0, "empty business stats")

    drafts = await service.get_missions_by_business("biz-1", status="draft")
    _assert(len(drafts) == 1 and drafts[0].title == "Low", "status filter on business missions")

    await store.set(
        "users",
        "biz-1",
        {"subscriptionLevel": "SILVER", "growthSpeed": "fast", "mainGoal": "events", "willingToCollaborate": "no"},
    )
    planning = await service.get_business_planning("biz-1")
    _assert(planning is not None and planning["maxParticipants"] == 10, f"SILVER cap must be 10: {planning}")
    _assert(
        planning["maturity"] == {"collaborationAllowed": False, "growthBoost": 7, "mainGoal": "events"},
        f"maturity boost: {planning}",
    )
    _assert(planning["goalBoost"] == 0, "no mission goal means no goal boost")
    meetup = await service.get_business_planning("biz-1", mission_goal="Summer meetup")
    _assert(meetup["goalBoost"] == 15, f"events goal must boost a meetup: {meetup}")
    _assert(await service.get_business_planning("ghost") is None, "missing profile must read as None")

    missing = await service.update_mission("ghost", {"title": "x"})
    _assert(not missing.success, "updating a missing mission must fail")


async def _check_recommendations(store: DocumentStore, mission_id: str) -> None:
    repository = MissionRepository(store)
    open_service = MissionService(repository, dataclasses.replace(CFG, recommendation_enforce_geo_scope=False))

    near = GeoPoint(52.5200, 13.4050)
    scored = await open_service.recommend_missions("user-9", interests=["food"], location=near, max_results=5)
    _assert([item.mission.id for item in scored] == [mission_id], "only ACTIVE missions are recommended")
    _assert(scored[0].score > 60, f"nearby food mission must score high, got {scored[0].score}")
    missions = await open_service.get_missions_for_user("user-9", interests=["food"])
    _assert([item.id for item in missions] == [mission_id], "get_missions_for_user must return plain missions")

    scoped_service = MissionService(repository, dataclasses.replace(CFG, recommendation_enforce_geo_scope=True))
    await store.set("users", "user-de", {"city": "Hamburg", "country": "DE"})
    await store.set("users", "user-fr", {"city": "Paris", "country": "FR"})
    _assert(len(await scoped_service.recommend_missions("user-de")) == 1, "COUNTRY scope must reach Hamburg")
    _assert(await scoped_service.recommend_missions("user-fr") == [], "COUNTRY scope must hide France")
    _assert(await scoped_service.recommend_missions("user-unknown") == [], "unknown location must fail closed")


async def _check_delete(service: MissionService, mission_id: str) -> None:
    _assert((await service.delete_mission(mission_id)).success, "delete must succeed")
    _assert(await service.get_mission(mission_id) is None, "deleted mission must be gone")
    again = await service.delete_mission(mission_id)
    _assert(not again.success and again.error == "Mission not found", "second delete must fail")
    _assert(len(await service.get_user_participations("user-1")) == 1, "participations survive mission deletion")


async def _run_checks(db_path: Path) -> None:
    store = DocumentStore(str(db_path))
    await store.init()
    service = MissionService(MissionRepository(store), dataclasses.replace(CFG, db_path=str(db_path)))

    mission_id = await _check_create(service, store)
    await _check_publish_cycle(service, mission_id)
    await _check_participations(service, mission_id)
    await _check_stats_and_planning(service, store, mission_id)
    await _check_recommendations(store, mission_id)
    await _check_capacity(service)
    _check_goal_keywords()
    await _check_delete(service, mission_id)


def main() -> None:
    tmpdir = Path(tempfile.mkdtemp(prefix="loyalty-smoke-missions-"))
    try:
        asyncio.run(_run_checks(tmpdir / "state.db"))
        print("OK: mission lifecycle smoke passed.")
    finally:
        shutil.rmtree(tmpdir, ignore_errors=True)


if __name__ == "__main__":
    main()
