"""
HTTP API over the mission and subscription core.

Quota denials are regular ``200`` responses with ``allowed: false`` and a
reason; malformed input is ``400``. Admin routes need the ``ADMIN_API_KEY``
in the ``X-API-Key`` header (or as a Bearer token) and are disabled while
the key is empty.

Example:
    GET /api/v1/users/u1/recommendations?interests=food,coffee&lat=52.52&lon=13.40
    -> {"missions": [{"id": "...", "title": "...", "score": 67.0, ...}]}
"""

from __future__ import annotations

import hmac
import json
import logging
from typing import Any

from aiohttp import web

from admin_client import PrivilegedFunctionsClient
from config import CFG, Config, is_admin_api_enabled, parse_bool, parse_int
from database import DocumentStore, utc_now_iso
from missions.geo import get_geo_scope
from missions.models import GeoPoint
from missions.repository import MissionRepository
from missions.service import MissionService
from results import OperationResult
from subscriptions.maintenance import reset_subscription_counters
from subscriptions.models import QuotaDecision
from subscriptions.plans import LEVEL2_TIER_PRICING
from subscriptions.service import Level1SubscriptionService, Level2SubscriptionService

logger = logging.getLogger(__name__)

CONFIG_KEY = web.AppKey("config", Config)
STORE_KEY = web.AppKey("store", DocumentStore)
MISSIONS_KEY = web.AppKey("missions", MissionService)
LEVEL1_KEY = web.AppKey("level1", Level1SubscriptionService)
LEVEL2_KEY = web.AppKey("level2", Level2SubscriptionService)
FUNCTIONS_KEY = web.AppKey("functions", PrivilegedFunctionsClient)

MAX_LIST_LIMIT = 100


def _extract_api_key_from_request(request: web.Request) -> str:
    """Extract API key from X-API-Key header or Bearer auth."""
    header_key = str(request.headers.get("X-API-Key") or "").strip()
    if header_key:
        return header_key

    auth_header = str(request.headers.get("Authorization") or "").strip()
    if auth_header.lower().startswith("bearer "):
        return auth_header[7:].strip()
    return ""


def _error(message: str, status: int = 400) -> web.Response:
    return web.json_response({"success": False, "error": message}, status=status)


def _result_response(result: OperationResult, ok_status: int = 200) -> web.Response:
    return web.json_response(result.to_dict(), status=ok_status if result.success else 400)


def _decision_response(decision: QuotaDecision) -> web.Response:
    return web.json_response(decision.to_dict())


async def _read_json_object(request: web.Request, *, required: bool = True) -> dict[str, Any] | None:
    """Parsed JSON object body; None when it is missing or not an object."""
    if not request.can_read_body:
        return None if required else {}
    try:
        data = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    return data if isinstance(data, dict) else None


def _limit_from_query(request: web.Request, default: int) -> int:
    return max(1, min(parse_int(request.query.get("limit"), default), MAX_LIST_LIMIT))


def _optional_status(request: web.Request) -> str | None:
    return str(request.query.get("status") or "").strip() or None


def _require_admin(request: web.Request) -> web.Response | None:
    cfg = request.app[CONFIG_KEY]
    if not is_admin_api_enabled(cfg):
        return _error("Admin API disabled", status=403)
    api_key = _extract_api_key_from_request(request)
    if not api_key or not hmac.compare_digest(
        api_key.encode("utf-8", "surrogateescape"), cfg.admin_api_key.encode("utf-8", "surrogateescape")
    ):
        logger.warning("Invalid admin API key attempt from %s", request.remote)
        return _error("Invalid API key", status=401)
    return None


async def health_handler(request: web.Request) -> web.Response:
    return web.json_response({"status": "ok", "timestamp": utc_now_iso()})


# --- missions ---------------------------------------------------------------


async def create_mission_handler(request: web.Request) -> web.Response:
    data = await _read_json_object(request)
    if data is None:
        return _error("Request body must be a JSON object")
    if not str(data.get("businessId") or "").strip():
        return _error("businessId is required")
    result = await request.app[MISSIONS_KEY].create_mission(data)
    return _result_response(result, ok_status=201)


async def get_mission_handler(request: web.Request) -> web.Response:
    mission = await request.app[MISSIONS_KEY].get_mission(request.match_info["mission_id"])
    if mission is None:
        return _error("Mission not found", status=404)
    return web.json_response(mission.to_dict())


async def list_active_missions_handler(request: web.Request) -> web.Response:
    category = str(request.query.get("category") or "").strip() or None
    missions = await request.app[MISSIONS_KEY].get_active_missions(
        category=category,
        max_results=_limit_from_query(request, 20),
    )
    return web.json_response({"missions": [mission.to_dict() for mission in missions]})


async def publish_mission_handler(request: web.Request) -> web.Response:
    result = await request.app[MISSIONS_KEY].publish_mission(request.match_info["mission_id"])
    return _result_response(result)


async def pause_mission_handler(request: web.Request) -> web.Response:
    result = await request.app[MISSIONS_KEY].toggle_mission_status(request.match_info["mission_id"], pause=True)
    return _result_response(result)


async def resume_mission_handler(request: web.Request) -> web.Response:
    result = await request.app[MISSIONS_KEY].toggle_mission_status(request.match_info["mission_id"], pause=False)
    return _result_response(result)


async def apply_to_mission_handler(request: web.Request) -> web.Response:
    data = await _read_json_object(request)
    user_id = str((data or {}).get("userId") or "").strip()
    if not user_id:
        return _error("userId is required")
    result = await request.app[MISSIONS_KEY].apply_to_mission(request.match_info["mission_id"], user_id)
    return _result_response(result, ok_status=201)


async def mission_participations_handler(request: web.Request) -> web.Response:
    participations = await request.app[MISSIONS_KEY].get_mission_participations(
        request.match_info["mission_id"],
        status=_optional_status(request),
    )
    return web.json_response({"participations": [item.to_dict() for item in participations]})


async def business_missions_handler(request: web.Request) -> web.Response:
    missions = await request.app[MISSIONS_KEY].get_missions_by_business(
        request.match_info["business_id"],
        status=_optional_status(request),
    )
    return web.json_response({"missions": [mission.to_dict() for mission in missions]})


async def business_stats_handler(request: web.Request) -> web.Response:
    stats = await request.app[MISSIONS_KEY].get_mission_stats(request.match_info["business_id"])
    return web.json_response(stats.to_dict())


async def business_planning_handler(request: web.Request) -> web.Response:
    mission_goal = str(request.query.get("missionGoal") or "").strip() or None
    planning = await request.app[MISSIONS_KEY].get_business_planning(request.match_info["business_id"], mission_goal)
    if planning is None:
        return _error("Business not found", status=404)
    return web.json_response(planning)


async def recommendations_handler(request: web.Request) -> web.Response:
    query = request.query
    interests = [item.strip() for item in str(query.get("interests") or "").split(",") if item.strip()]
    level = str(query.get("level") or "").strip() or None

    location = None
    if query.get("lat") is not None or query.get("lon") is not None:
        location = GeoPoint.from_value({"latitude": query.get("lat"), "longitude": query.get("lon")})
        if location is None:
            return _error("lat and lon must be valid coordinates")

    cfg = request.app[CONFIG_KEY]
    scored = await request.app[MISSIONS_KEY].recommend_missions(
        request.match_info["user_id"],
        interests=interests,
        level=level,
        location=location,
        max_results=_limit_from_query(request, cfg.recommendation_max_results),
    )
    payload = []
    for item in scored:
        entry = item.mission.to_dict()
        entry["score"] = round(item.score, 2)
        payload.append(entry)
    return web.json_response({"missions": payload})


async def user_participations_handler(request: web.Request) -> web.Response:
    participations = await request.app[MISSIONS_KEY].get_user_participations(
        request.match_info["user_id"],
        status=_optional_status(request),
    )
    return web.json_response({"participations": [item.to_dict() for item in participations]})


async def submit_proof_handler(request: web.Request) -> web.Response:
    data = await _read_json_object(request)
    if data is None:
        return _error("Request body must be a JSON object")
    proof_url = str(data.get("proofUrl") or "").strip() or None
    proof_text = str(data.get("proofText") or "").strip() or None
    if proof_url is None and proof_text is None:
        return _error("proofUrl or proofText is required")
    result = await request.app[MISSIONS_KEY].submit_mission_proof(
        request.match_info["participation_id"],
        proof_url=proof_url,
        proof_text=proof_text,
    )
    return _result_response(result)


async def review_participation_handler(request: web.Request) -> web.Response:
    data = await _read_json_object(request)
    if data is None or not isinstance(data.get("approved"), bool):
        return _error("approved must be a boolean")
    feedback = str(data.get("feedback") or "").strip() or None
    result = await request.app[MISSIONS_KEY].review_participation(
        request.match_info["participation_id"],
        approved=data["approved"],
        feedback=feedback,
    )
    return _result_response(result)


async def geo_scope_handler(request: web.Request) -> web.Response:
    business_type = str(request.query.get("businessType") or "").strip()
    tier = str(request.query.get("tier") or "").strip()
    if not business_type:
        return _error("businessType is required")
    return web.json_response({"geoScope": get_geo_scope(business_type, tier)})


# --- subscriptions ----------------------------------------------------------


def _is_free_event(request: web.Request, data: dict[str, Any] | None = None) -> bool:
    if data and "isFreeEvent" in data:
        raw = data["isFreeEvent"]
        if isinstance(raw, bool):
            return raw
        return parse_bool(str(raw), False)
    return parse_bool(request.query.get("free"), False)


async def _subscription_response(service: Level1SubscriptionService | Level2SubscriptionService, user_id: str) -> web.Response:
    subscription = await service.get_subscription(user_id)
    if subscription is None:
        return _error("Subscription unavailable", status=503)
    return web.json_response(
        {
            "subscription": subscription.to_document(),
            "benefits": service.get_benefits_for_tier(subscription.tier).to_dict(),
        }
    )


async def _update_tier(request: web.Request, service: Level1SubscriptionService | Level2SubscriptionService) -> web.Response:
    data = await _read_json_object(request)
    tier = str((data or {}).get("tier") or "").strip()
    if not tier:
        return _error("tier is required")
    return _result_response(await service.update_tier(request.match_info["user_id"], tier))


async def level1_subscription_handler(request: web.Request) -> web.Response:
    return await _subscription_response(request.app[LEVEL1_KEY], request.match_info["user_id"])


async def level1_tier_handler(request: web.Request) -> web.Response:
    return await _update_tier(request, request.app[LEVEL1_KEY])


async def level1_squad_meetup_check_handler(request: web.Request) -> web.Response:
    return _decision_response(await request.app[LEVEL1_KEY].can_attend_squad_meetup(request.match_info["user_id"]))


async def level1_squad_meetup_attend_handler(request: web.Request) -> web.Response:
    return _decision_response(await request.app[LEVEL1_KEY].attend_squad_meetup(request.match_info["user_id"]))


async def level1_event_check_handler(request: web.Request) -> web.Response:
    decision = await request.app[LEVEL1_KEY].can_attend_business_event(
        request.match_info["user_id"],
        is_free_event=_is_free_event(request),
    )
    return _decision_response(decision)


async def level1_event_attend_handler(request: web.Request) -> web.Response:
    data = await _read_json_object(request, required=False)
    if data is None:
        return _error("Request body must be a JSON object")
    decision = await request.app[LEVEL1_KEY].attend_business_event(
        request.match_info["user_id"],
        is_free_event=_is_free_event(request, data),
    )
    return _decision_response(decision)


async def level2_subscription_handler(request: web.Request) -> web.Response:
    return await _subscription_response(request.app[LEVEL2_KEY], request.match_info["user_id"])


async def level2_tier_handler(request: web.Request) -> web.Response:
    return await _update_tier(request, request.app[LEVEL2_KEY])


async def level2_pricing_handler(request: web.Request) -> web.Response:
    return web.json_response({"currency": "EUR", "pricing": dict(LEVEL2_TIER_PRICING)})


async def level2_mission_check_handler(request: web.Request) -> web.Response:
    mission_type = str(request.query.get("type") or "").strip()
    if not mission_type:
        return _error("type is required")
    decision = await request.app[LEVEL2_KEY].can_create_mission(request.match_info["user_id"], mission_type)
    return _decision_response(decision)


async def level2_mission_create_handler(request: web.Request) -> web.Response:
    data = await _read_json_object(request)
    mission_type = str((data or {}).get("type") or "").strip()
    if not mission_type:
        return _error("type is required")
    decision = await request.app[LEVEL2_KEY].create_mission_slot(request.match_info["user_id"], mission_type)
    return _decision_response(decision)


async def level2_mission_complete_handler(request: web.Request) -> web.Response:
    return _result_response(await request.app[LEVEL2_KEY].record_mission_completion(request.match_info["user_id"]))


async def level2_event_check_handler(request: web.Request) -> web.Response:
    decision = await request.app[LEVEL2_KEY].can_join_event(
        request.match_info["user_id"],
        is_free_event=_is_free_event(request),
    )
    return _decision_response(decision)


async def level2_event_join_handler(request: web.Request) -> web.Response:
    data = await _read_json_object(request, required=False)
    if data is None:
        return _error("Request body must be a JSON object")
    decision = await request.app[LEVEL2_KEY].join_event(
        request.match_info["user_id"],
        is_free_event=_is_free_event(request, data),
    )
    return _decision_response(decision)


# --- admin ------------------------------------------------------------------


async def admin_reset_counters_handler(request: web.Request) -> web.Response:
    denied = _require_admin(request)
    if denied is not None:
        return denied
    try:
        report = await reset_subscription_counters(request.app[STORE_KEY], force=True)
    except Exception as error:
        logger.exception("Manual subscription counter reset failed")
        return _error(str(error) or "Failed to reset subscription counters", status=500)
    logger.info(
        "Manual subscription counter reset: level1=%s level2=%s",
        report.level1_updated,
        report.level2_updated,
    )
    payload: dict[str, Any] = {"success": True, "message": "Subscription counters reset successfully"}
    payload.update(report.to_dict())
    return web.json_response(payload)


async def admin_approve_verification_handler(request: web.Request) -> web.Response:
    denied = _require_admin(request)
    if denied is not None:
        return denied
    data = await _read_json_object(request) or {}
    admin_id = str(data.get("adminId") or "").strip()
    user_id = str(data.get("userId") or "").strip()
    if not admin_id or not user_id:
        return _error("adminId and userId are required")
    response = await request.app[FUNCTIONS_KEY].approve_verification(admin_id, user_id)
    return web.json_response(response, status=200 if response.get("success") else 502)


async def admin_reject_verification_handler(request: web.Request) -> web.Response:
    denied = _require_admin(request)
    if denied is not None:
        return denied
    data = await _read_json_object(request) or {}
    admin_id = str(data.get("adminId") or "").strip()
    user_id = str(data.get("userId") or "").strip()
    reason = str(data.get("reason") or "").strip()
    if not admin_id or not user_id or not reason:
        return _error("adminId, userId and reason are required")
    response = await request.app[FUNCTIONS_KEY].reject_verification(admin_id, user_id, reason)
    return web.json_response(response, status=200 if response.get("success") else 502)


def create_api_app(
    store: DocumentStore | None = None,
    cfg: Config | None = None,
    *,
    functions_client: PrivilegedFunctionsClient | None = None,
) -> web.Application:
    """Build the aiohttp application with its services."""
    cfg = cfg or CFG
    store = store or DocumentStore(cfg.db_path)

    app = web.Application()
    app[CONFIG_KEY] = cfg
    app[STORE_KEY] = store
    app[MISSIONS_KEY] = MissionService(MissionRepository(store), cfg)
    app[LEVEL1_KEY] = Level1SubscriptionService(store, cfg)
    app[LEVEL2_KEY] = Level2SubscriptionService(store, cfg)
    app[FUNCTIONS_KEY] = functions_client or PrivilegedFunctionsClient(cfg)

    app.router.add_get("/api/v1/health", health_handler)

    app.router.add_get("/api/v1/missions", list_active_missions_handler)
    app.router.add_post("/api/v1/missions", create_mission_handler)
    app.router.add_get("/api/v1/missions/{mission_id}", get_mission_handler)
    app.router.add_post("/api/v1/missions/{mission_id}/publish", publish_mission_handler)
    app.router.add_post("/api/v1/missions/{mission_id}/pause", pause_mission_handler)
    app.router.add_post("/api/v1/missions/{mission_id}/resume", resume_mission_handler)
    app.router.add_post("/api/v1/missions/{mission_id}/apply", apply_to_mission_handler)
    app.router.add_get("/api/v1/missions/{mission_id}/participations", mission_participations_handler)
    app.router.add_get("/api/v1/businesses/{business_id}/missions", business_missions_handler)
    app.router.add_get("/api/v1/businesses/{business_id}/stats", business_stats_handler)
    app.router.add_get("/api/v1/businesses/{business_id}/planning", business_planning_handler)
    app.router.add_get("/api/v1/users/{user_id}/recommendations", recommendations_handler)
    app.router.add_get("/api/v1/users/{user_id}/participations", user_participations_handler)
    app.router.add_post("/api/v1/participations/{participation_id}/proof", submit_proof_handler)
    app.router.add_post("/api/v1/participations/{participation_id}/review", review_participation_handler)
    app.router.add_get("/api/v1/geo-scope", geo_scope_handler)

    app.router.add_get("/api/v1/level1/{user_id}", level1_subscription_handler)
    app.router.add_post("/api/v1/level1/{user_id}/tier", level1_tier_handler)
    app.router.add_get("/api/v1/level1/{user_id}/squad-meetups", level1_squad_meetup_check_handler)
    app.router.add_post("/api/v1/level1/{user_id}/squad-meetups", level1_squad_meetup_attend_handler)
    app.router.add_get("/api/v1/level1/{user_id}/events", level1_event_check_handler)
    app.router.add_post("/api/v1/level1/{user_id}/events", level1_event_attend_handler)

    app.router.add_get("/api/v1/level2/pricing", level2_pricing_handler)
    app.router.add_get("/api/v1/level2/{user_id}", level2_subscription_handler)
    app.router.add_post("/api/v1/level2/{user_id}/tier", level2_tier_handler)
    app.router.add_get("/api/v1/level2/{user_id}/missions", level2_mission_check_handler)
    app.router.add_post("/api/v1/level2/{user_id}/missions", level2_mission_create_handler)
    app.router.add_post("/api/v1/level2/{user_id}/missions/complete", level2_mission_complete_handler)
    app.router.add_get("/api/v1/level2/{user_id}/events", level2_event_check_handler)
    app.router.add_post("/api/v1/level2/{user_id}/events", level2_event_join_handler)

    app.router.add_post("/api/v1/admin/subscriptions/reset", admin_reset_counters_handler)
    app.router.add_post("/api/v1/admin/verification/approve", admin_approve_verification_handler)
    app.router.add_post("/api/v1/admin/verification/reject", admin_reject_verification_handler)

    app.router.add_get("/", health_handler)
    return app


async def start_api_server(app: web.Application) -> web.AppRunner:
    """Start the API server."""
    cfg = app[CONFIG_KEY]
    runner = web.AppRunner(app)
    await runner.setup()

    site = web.TCPSite(runner, cfg.api_host, cfg.api_port)
    await site.start()

    logger.info("API server started on %s:%s", cfg.api_host, cfg.api_port)
    return runner


async def stop_api_server(runner: web.AppRunner) -> None:
    await runner.cleanup()
    logger.info("API server stopped")
