#!/usr/bin/env python3
"""
Dynamic smoke test: HTTP API contract, served in-process.

What it validates:
- health route and JSON error shape for malformed input (400) and missing
  resources (404)
- mission create/publish/apply/proof/review/stats/recommendations routes
- geo-scope resolution route
- Level 1 / Level 2 routes: quota denials are 200 with allowed=false
- admin routes: disabled without ADMIN_API_KEY, 401 on a wrong key, forced
  counter reset, verification proxy to the hosted functions

Run:
  python3 scripts/smoke_api_server.py
"""

from __future__ import annotations

import asyncio
import dataclasses
import shutil
import sys
import tempfile
from pathlib import Path
from typing import Any


def _setup_import_path() -> None:
    for candidate in (
        Path(__file__).resolve().parents[1] / "src",
        Path.cwd() / "src",
    ):
        if candidate.exists():
            sys.path.insert(0, str(candidate))
            return


_setup_import_path()

from aiohttp import test_utils, web  # noqa: E402

from admin_client import PrivilegedFunctionsClient  # noqa: E402
from api_server import create_api_app  # noqa: E402
from config import CFG, QUOTA_MODE_LEGACY  # noqa: E402
from database import DocumentStore  # noqa: E402
from subscriptions.models import LEVEL1_COLLECTION  # noqa: E402

ADMIN_KEY = "smoke-admin-key"


def _assert(cond: bool, message: str) -> None:
    if not cond:
        raise AssertionError(message)


async def _json(resp) -> dict[str, Any]:
    data = await resp.json()
    _assert(isinstance(data, dict), f"response must be a JSON object, got {data!r}")
    return data


def _fake_functions_app(calls: list[tuple[str, dict[str, Any]]]) -> web.Application:
    async def approve(request: web.Request) -> web.Response:
        calls.append(("approveVerification", await request.json()))
        return web.json_response({"success": True})

    async def reject(request: web.Request) -> web.Response:
        calls.append(("rejectVerification", await request.json()))
        return web.json_response({"error": "boom"}, status=500)

    app = web.Application()
    app.router.add_post("/approveVerification", approve)
    app.router.add_post("/rejectVerification", reject)
    return app


async def _check_basics(client: test_utils.TestClient) -> None:
    resp = await client.get("/api/v1/health")
    _assert(resp.status == 200 and (await _json(resp))["status"] == "ok", "health must be ok")
    resp = await client.get("/")
    _assert(resp.status == 200, "root must answer health")

    resp = await client.get("/api/v1/geo-scope", params={"businessType": "ONLINE", "tier": "FREE"})
    _assert((await _json(resp)) == {"geoScope": "GLOBAL"}, "online businesses are global")
    resp = await client.get("/api/v1/geo-scope", params={"businessType": "PHYSICAL", "tier": "SILVER"})
    _assert((await _json(resp)) == {"geoScope": "REGION"}, "SILVER physical is REGION")
    resp = await client.get("/api/v1/geo-scope")
    _assert(resp.status == 400, "businessType is required")


async def _check_missions(client: test_utils.TestClient) -> str:
    resp = await client.post(
        "/api/v1/missions",
        data="not json",
        headers={"Content-Type": "application/json"},
    )
    _assert(resp.status == 400, "malformed JSON must be 400")
    resp = await client.post("/api/v1/missions", json={"title": "No business"})
    body = await _json(resp)
    _assert(resp.status == 400 and body["error"] == "businessId is required", f"missing businessId: {body}")

    resp = await client.post(
        "/api/v1/missions",
        json={
            "businessId": "biz-api",
            "title": "Coffee check-in",
            "category": "coffee",
            "goal": "TRAFFIC",
            "maxParticipants": 8,
            "geo": {"latitude": 50.4501, "longitude": 30.5234},
        },
    )
    created = await _json(resp)
    _assert(resp.status == 201 and created["success"] and created["id"], f"create must be 201: {created}")
    mission_id = created["id"]

    resp = await client.get(f"/api/v1/missions/{mission_id}")
    mission = await _json(resp)
    _assert(mission["id"] == mission_id and mission["lifecycleStatus"] == "DRAFT", f"fetched mission: {mission}")
    _assert(mission["priority"] == "MEDIUM" and mission["priorityScore"] == 64, "base 50 + traffic 6 + scarcity 8")
    resp = await client.get("/api/v1/missions/does-not-exist")
    _assert(resp.status == 404, "missing mission must be 404")

    resp = await client.post(f"/api/v1/missions/{mission_id}/publish")
    _assert(resp.status == 200 and (await _json(resp))["success"], "publish must succeed")
    resp = await client.post("/api/v1/missions/does-not-exist/publish")
    _assert(resp.status == 400 and not (await _json(resp))["success"], "publishing a missing mission is 400")

    resp = await client.get("/api/v1/missions", params={"category": "coffee", "limit": "5"})
    listed = (await _json(resp))["missions"]
    _assert([item["id"] for item in listed] == [mission_id], f"active listing: {listed}")

    resp = await client.post(f"/api/v1/missions/{mission_id}/pause")
    _assert(resp.status == 200, "pause must succeed")
    resp = await client.get("/api/v1/missions")
    _assert((await _json(resp))["missions"] == [], "paused missions are not listed")
    resp = await client.post(f"/api/v1/missions/{mission_id}/resume")
    _assert(resp.status == 200, "resume must succeed")
    return mission_id


async def _check_participations(client: test_utils.TestClient, store: DocumentStore, mission_id: str) -> None:
    resp = await client.post(f"/api/v1/missions/{mission_id}/apply", json={})
    _assert(resp.status == 400, "userId is required to apply")
    resp = await client.post(f"/api/v1/missions/{mission_id}/apply", json={"userId": "creator-1"})
    applied = await _json(resp)
    _assert(resp.status == 201 and applied["id"], f"apply must be 201: {applied}")
    participation_id = applied["id"]

    resp = await client.post("/api/v1/missions/does-not-exist/apply", json={"userId": "creator-1"})
    body = await _json(resp)
    _assert(resp.status == 400 and body["error"] == "Mission not found or missing businessId", f"orphan: {body}")

    resp = await client.post(f"/api/v1/participations/{participation_id}/proof", json={})
    _assert(resp.status == 400, "proof needs proofUrl or proofText")
    resp = await client.post(f"/api/v1/participations/{participation_id}/proof", json={"proofText": "Visited!"})
    _assert(resp.status == 200, "proof must succeed")

    resp = await client.post(f"/api/v1/participations/{participation_id}/review", json={"approved": "yes"})
    _assert(resp.status == 400, "approved must be a boolean")
    resp = await client.post(
        f"/api/v1/participations/{participation_id}/review",
        json={"approved": True, "feedback": "Thanks"},
    )
    _assert(resp.status == 200, "review must succeed")

    resp = await client.get(f"/api/v1/missions/{mission_id}/participations", params={"status": "APPROVED"})
    items = (await _json(resp))["participations"]
    _assert(len(items) == 1 and items[0]["feedback"] == "Thanks", f"approved participations: {items}")
    resp = await client.get("/api/v1/users/creator-1/participations")
    _assert(len((await _json(resp))["participations"]) == 1, "user participations must be listed")

    resp = await client.get("/api/v1/businesses/biz-api/stats")
    stats = await _json(resp)
    _assert(
        stats == {
            "totalMissions": 1,
            "activeMissions": 1,
            "completedMissions": 0,
            "totalApplications": 1,
            "pendingReviews": 1,
        },
        f"stats: {stats}",
    )
    resp = await client.get("/api/v1/businesses/biz-api/missions", params={"status": "active"})
    _assert(len((await _json(resp))["missions"]) == 1, "business missions by status")

    resp = await client.get("/api/v1/businesses/biz-api/planning")
    _assert(resp.status == 404, "planning needs a business profile")
    await client.post("/api/v1/level2/biz-api/tier", json={"tier": "GOLD"})
    resp = await client.get("/api/v1/businesses/biz-api/planning")
    planning = await _json(resp)
    _assert(resp.status == 200 and planning["maxParticipants"] == 50, f"GOLD planning: {planning}")
    _assert(planning["goalBoost"] == 0, "planning without a mission goal has no goal boost")
    await store.set("users", "biz-api", {"mainGoal": "events"}, merge=True)
    resp = await client.get("/api/v1/businesses/biz-api/planning", params={"missionGoal": "Latte art workshop"})
    planning = await _json(resp)
    _assert(planning["goalBoost"] == 15 and planning["maxParticipants"] == 50, f"goal boost: {planning}")


async def _check_recommendations(client: test_utils.TestClient, mission_id: str) -> None:
    resp = await client.get("/api/v1/users/u1/recommendations", params={"lat": "abc", "lon": "1"})
    _assert(resp.status == 400, "invalid coordinates must be 400")

    resp = await client.get(
        "/api/v1/users/u1/recommendations",
        params={"interests": "coffee,art", "lat": "50.4501", "lon": "30.5234", "limit": "3"},
    )
    missions = (await _json(resp))["missions"]
    _assert([item["id"] for item in missions] == [mission_id], f"recommendations: {missions}")
    _assert(isinstance(missions[0]["score"], float) and missions[0]["score"] > 50, "score must be included")


async def _check_subscriptions(client: test_utils.TestClient, store: DocumentStore) -> None:
    resp = await client.get("/api/v1/level1/member-1")
    body = await _json(resp)
    _assert(body["subscription"]["tier"] == "FREE", f"default Level 1 tier: {body}")
    _assert(body["benefits"]["monthlySquadMeetups"] == 1, "benefits must be included")

    resp = await client.post("/api/v1/level1/member-1/squad-meetups")
    _assert(resp.status == 200 and (await _json(resp)) == {"allowed": True}, "first meetup allowed")
    resp = await client.post("/api/v1/level1/member-1/squad-meetups")
    denied = await _json(resp)
    _assert(resp.status == 200 and denied["allowed"] is False and denied["reason"], f"denial is 200: {denied}")
    resp = await client.get("/api/v1/level1/member-1/squad-meetups")
    _assert((await _json(resp))["allowed"] is False, "check route must agree")
    stored = await store.get(LEVEL1_COLLECTION, "member-1")
    _assert(stored["squadMeetupsAttendedThisMonth"] == 1, "denied attendance must not be recorded")

    resp = await client.get("/api/v1/level1/member-1/events", params={"free": "1"})
    _assert((await _json(resp))["requiresPayment"] is True, "FREE members need an upgrade for events")

    resp = await client.post("/api/v1/level1/member-1/tier", json={"tier": "diamond"})
    _assert(resp.status == 400, "unsupported tier must be 400")
    resp = await client.post("/api/v1/level1/member-1/tier", json={})
    _assert(resp.status == 400, "tier is required")
    resp = await client.post("/api/v1/level1/member-1/tier", json={"tier": "silver"})
    _assert(resp.status == 200, "tier update must succeed")
    resp = await client.post("/api/v1/level1/member-1/events", json={"isFreeEvent": "false"})
    _assert(
        (await _json(resp)) == {"allowed": True, "requiresPayment": True},
        "string \"false\" must not count as a free event",
    )
    resp = await client.post("/api/v1/level1/member-1/events", json={"isFreeEvent": True})
    _assert((await _json(resp)) == {"allowed": True}, "SILVER quarterly free event")
    resp = await client.post("/api/v1/level1/member-1/events", json={"isFreeEvent": True})
    _assert((await _json(resp))["allowed"] is False, "second free event this quarter denied")
    resp = await client.post("/api/v1/level1/member-1/events")
    _assert((await _json(resp)) == {"allowed": True, "requiresPayment": True}, "paid event allowed")

    resp = await client.get("/api/v1/level2/pricing")
    pricing = await _json(resp)
    _assert(pricing == {"currency": "EUR", "pricing": {"FREE": 0, "SILVER": 29, "GOLD": 59, "PLATINUM": 99}}, "pricing")

    resp = await client.get("/api/v1/level2/shop-1/missions")
    _assert(resp.status == 400, "mission type is required")
    resp = await client.get("/api/v1/level2/shop-1/missions", params={"type": "GOOGLE_REVIEW"})
    review = await _json(resp)
    _assert(
        review == {"allowed": False, "reason": "Google review missions require GOLD or higher"},
        f"FREE review check: {review}",
    )
    resp = await client.post("/api/v1/level2/shop-1/missions", json={"type": "VISIT"})
    _assert((await _json(resp))["allowed"] is True, "first FREE mission slot")
    resp = await client.post("/api/v1/level2/shop-1/missions", json={"type": "VISIT"})
    _assert((await _json(resp))["allowed"] is False, "second FREE mission slot denied")
    resp = await client.post("/api/v1/level2/shop-1/missions/complete")
    _assert(resp.status == 200, "completion must succeed")
    resp = await client.get("/api/v1/level2/shop-1")
    _assert((await _json(resp))["subscription"]["activeMissionsCount"] == 0, "completion frees the slot")

    resp = await client.post("/api/v1/level2/shop-1/events", data="[]", headers={"Content-Type": "application/json"})
    _assert(resp.status == 400, "non-object body must be 400")
    resp = await client.get("/api/v1/level2/shop-1/events")
    _assert((await _json(resp))["allowed"] is False, "FREE business has no events access")


async def _check_admin_disabled(store: DocumentStore, cfg) -> None:
    app = create_api_app(store, dataclasses.replace(cfg, admin_api_key=""))
    async with test_utils.TestClient(test_utils.TestServer(app)) as client:
        resp = await client.post("/api/v1/admin/subscriptions/reset", headers={"X-API-Key": "anything"})
        _assert(resp.status == 403, "admin routes are disabled without a key")


async def _check_admin(client: test_utils.TestClient, store: DocumentStore, calls: list[tuple[str, dict[str, Any]]]) -> None:
    resp = await client.post("/api/v1/admin/subscriptions/reset")
    _assert(resp.status == 401, "missing key must be 401")
    resp = await client.post("/api/v1/admin/subscriptions/reset", headers={"X-API-Key": "wrong"})
    _assert(resp.status == 401, "wrong key must be 401")
    resp = await client.post("/api/v1/admin/subscriptions/reset", headers={"X-API-Key": "ключ-адміна"})
    _assert(resp.status == 401, "non-ASCII key must be 401, not a server error")

    resp = await client.post(
        "/api/v1/admin/subscriptions/reset",
        headers={"Authorization": f"Bearer {ADMIN_KEY}"},
    )
    body = await _json(resp)
    _assert(resp.status == 200 and body["success"], f"forced reset: {body}")
    _assert(body["message"] == "Subscription counters reset successfully", "reset message")
    _assert(body["level1Updated"] >= 1 and body["level2Updated"] >= 1, f"reset counts: {body}")
    stored = await store.get(LEVEL1_COLLECTION, "member-1")
    _assert(stored["squadMeetupsAttendedThisMonth"] == 0, "reset must zero Level 1 counters")

    headers = {"X-API-Key": ADMIN_KEY}
    resp = await client.post("/api/v1/admin/verification/approve", json={"adminId": "a1"}, headers=headers)
    _assert(resp.status == 400, "userId is required")
    resp = await client.post(
        "/api/v1/admin/verification/approve",
        json={"adminId": "a1", "userId": "biz-api"},
        headers=headers,
    )
    _assert(resp.status == 200 and (await _json(resp))["success"], "approval proxied to hosted function")
    resp = await client.post(
        "/api/v1/admin/verification/reject",
        json={"adminId": "a1", "userId": "biz-api", "reason": "Blurry documents"},
        headers=headers,
    )
    body = await _json(resp)
    _assert(resp.status == 502 and body == {"error": "boom", "success": False}, f"upstream failure: {body}")
    _assert(
        calls
        == [
            ("approveVerification", {"adminId": "a1", "userId": "biz-api"}),
            ("rejectVerification", {"adminId": "a1", "userId": "biz-api", "reason": "Blurry documents"}),
        ],
        f"hosted function calls: {calls}",
    )


async def _run_checks(db_path: Path) -> None:
    store = DocumentStore(str(db_path))
    await store.init()
    cfg = dataclasses.replace(
        CFG,
        db_path=str(db_path),
        admin_api_key=ADMIN_KEY,
        quota_mode=QUOTA_MODE_LEGACY,
        recommendation_enforce_geo_scope=False,
    )

    calls: list[tuple[str, dict[str, Any]]] = []
    async with test_utils.TestServer(_fake_functions_app(calls)) as functions_server:
        functions_client = PrivilegedFunctionsClient(
            cfg,
            base_url=str(functions_server.make_url("/")),
            timeout_sec=5,
        )
        app = create_api_app(store, cfg, functions_client=functions_client)
        async with test_utils.TestClient(test_utils.TestServer(app)) as client:
            await _check_basics(client)
            mission_id = await _check_missions(client)
            await _check_participations(client, store, mission_id)
            await _check_recommendations(client, mission_id)
            await _check_subscriptions(client, store)
            await _check_admin(client, store, calls)
    await _check_admin_disabled(store, cfg)


def main() -> None:
    tmpdir = Path(tempfile.mkdtemp(prefix="loyalty-smoke-api-"))
    try:
        asyncio.run(_run_checks(tmpdir / "state.db"))
        print("OK: API server smoke passed.")
    finally:
        shutil.rmtree(tmpdir, ignore_errors=True)


if __name__ == "__main__":
    main()
