#!/usr/bin/env python3
"""
Level 2 (business) subscription quota smoke-check.

What it validates:
- active mission limits per tier (PLATINUM unlimited)
- mission type access by tier
- Google review monthly cap and cooldown (hours left rounded up)
- referral monthly cap
- mission completion frees a slot and never goes below zero
- event access: monthly free quota, quarterly bonus, then pay-per-use
- pricing table

Run:
  python3 scripts/smoke_level2_quota.py
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

from config import CFG, QUOTA_MODE_LEGACY  # noqa: E402
from database import DocumentStore  # noqa: E402
from subscriptions.models import LEVEL2_COLLECTION  # noqa: E402
from subscriptions.service import Level2SubscriptionService  # noqa: E402


START = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


class _Clock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def _assert(cond: bool, message: str) -> None:
    if not cond:
        raise AssertionError(message)


async def _set_sub(store: DocumentStore, user_id: str, tier: str, **counters) -> None:
    data = {"userId": user_id, "tier": tier, "status": "ACTIVE"}
    data.update(counters)
    await store.set(LEVEL2_COLLECTION, user_id, data)


async def _check_active_limits(service: Level2SubscriptionService, store: DocumentStore) -> None:
    first = await service.can_create_mission("free-biz", "VISIT")
    _assert(first.allowed, "FREE business gets one active mission")
    await service.record_mission_creation("free-biz", "VISIT")
    limited = await service.can_create_mission("free-biz", "VISIT")
    _assert(
        not limited.allowed
        and limited.reason == "You've reached your limit of 1 active mission(s). Upgrade for more!",
        f"FREE second mission must be denied: {limited}",
    )

    await _set_sub(store, "gold-biz", "GOLD", activeMissionsCount=6)
    _assert(not (await service.can_create_mission("gold-biz", "VISIT")).allowed, "GOLD 6/6 must be denied")

    await _set_sub(store, "platinum-biz", "PLATINUM", activeMissionsCount=1000)
    _assert((await service.can_create_mission("platinum-biz", "VIDEO")).allowed, "PLATINUM is unlimited")

    # Completion frees one slot and is floored at zero.
    _assert((await service.record_mission_completion("free-biz")).success, "completion must succeed")
    _assert((await service.can_create_mission("free-biz", "VISIT")).allowed, "freed slot must be usable")
    await service.record_mission_completion("free-biz")
    stored = await store.get(LEVEL2_COLLECTION, "free-biz")
    _assert(stored["activeMissionsCount"] == 0, f"count must never go below zero: {stored}")
    missing = await service.record_mission_completion("ghost-biz")
    _assert(not missing.success and missing.error == "No subscription found", "completion needs a subscription")


async def _check_type_access(service: Level2SubscriptionService, store: DocumentStore) -> None:
    await _set_sub(store, "free-types", "FREE")
    await _set_sub(store, "silver-types", "SILVER")
    await _set_sub(store, "gold-types", "GOLD")
    expectations = [
        ("free-types", "INSTAGRAM_FOLLOW", "Instagram follow missions require SILVER or higher"),
        ("free-types", "GOOGLE_REVIEW", "Google review missions require GOLD or higher"),
        ("silver-types", "INSTAGRAM_FEED", "Instagram feed missions require GOLD or higher"),
        ("silver-types", "REFERRAL", "Referral missions require GOLD or higher"),
        ("gold-types", "VIDEO", "Video missions require PLATINUM"),
    ]
    for user_id, mission_type, reason in expectations:
        decision = await service.can_create_mission(user_id, mission_type)
        _assert(not decision.allowed and decision.reason == reason, f"{user_id}/{mission_type}: {decision}")

    for user_id, mission_type in (
        ("silver-types", "instagram_story"),
        ("gold-types", "INSTAGRAM_FEED"),
        ("free-types", "CUSTOM"),
    ):
        decision = await service.can_create_mission(user_id, mission_type)
        _assert(decision.allowed, f"{user_id}/{mission_type} must be allowed: {decision}")


async def _check_google_reviews(service: Level2SubscriptionService, store: DocumentStore, clock: _Clock) -> None:
    await _set_sub(store, "reviews", "GOLD")
    _assert((await service.can_create_mission("reviews", "GOOGLE_REVIEW")).allowed, "first review mission allowed")
    await service.record_mission_creation("reviews", "GOOGLE_REVIEW")
    stored = await store.get(LEVEL2_COLLECTION, "reviews")
    _assert(stored["googleReviewsThisMonth"] == 1, "review counter must increment")
    _assert(stored["activeMissionsCount"] == 1, "active count must increment")
    _assert(stored["lastGoogleReviewMissionCreated"] == START.isoformat(), "creation time must be recorded")

    clock.now = START + timedelta(hours=10, minutes=30)
    cooldown = await service.can_create_mission("reviews", "GOOGLE_REVIEW")
    _assert(
        not cooldown.allowed
        and cooldown.reason
        == "Cooldown active. Wait 158 more hours before creating another Google review mission.",
        f"GOLD cooldown must be 168h: {cooldown}",
    )
    _assert((await service.can_create_mission("reviews", "VISIT")).allowed, "cooldown only affects reviews")

    clock.now = START + timedelta(hours=168)
    _assert((await service.can_create_mission("reviews", "GOOGLE_REVIEW")).allowed, "cooldown must expire")

    await _set_sub(store, "capped", "GOLD", googleReviewsThisMonth=10)
    capped = await service.can_create_mission("capped", "GOOGLE_REVIEW")
    _assert(
        not capped.allowed and capped.reason == "Monthly Google review limit reached (10). Resets next month.",
        f"GOLD monthly review cap: {capped}",
    )

    await _set_sub(
        store,
        "platinum-reviews",
        "PLATINUM",
        lastGoogleReviewMissionCreated=(clock.now - timedelta(hours=119, minutes=59)).isoformat(),
    )
    short = await service.can_create_mission("platinum-reviews", "GOOGLE_REVIEW")
    _assert(not short.allowed and "Wait 1 more hours" in (short.reason or ""), f"partial hour rounds up: {short}")
    clock.now = START


async def _check_referrals(service: Level2SubscriptionService, store: DocumentStore) -> None:
    await _set_sub(store, "referrals", "GOLD", referralMissionsThisMonth=2)
    _assert((await service.can_create_mission("referrals", "REFERRAL")).allowed, "GOLD 2/3 referrals allowed")
    await service.record_mission_creation("referrals", "referral")
    denied = await service.can_create_mission("referrals", "REFERRAL")
    _assert(
        not denied.allowed
        and denied.reason == "Monthly referral limit reached (3). Upgrade or wait until next month.",
        f"GOLD referral cap: {denied}",
    )
    stored = await store.get(LEVEL2_COLLECTION, "referrals")
    _assert("lastGoogleReviewMissionCreated" not in stored, "referrals must not touch the review cooldown")


async def _check_events(service: Level2SubscriptionService, store: DocumentStore) -> None:
    blocked = await service.can_join_event("free-biz", is_free_event=True)
    _assert(
        not blocked.allowed and blocked.requires_payment is True
        and blocked.reason == "Upgrade to Silver or higher to access business events",
        f"FREE business must not access events: {blocked}",
    )

    await _set_sub(store, "silver-events", "SILVER")
    paid = await service.can_join_event("silver-events")
    _assert(paid.allowed and paid.requires_payment is True, "SILVER events are pay-per-use")
    free = await service.can_join_event("silver-events", is_free_event=True)
    _assert(free.allowed and free.requires_payment is False, "free events cost nothing for SILVER")

    await _set_sub(store, "gold-events", "GOLD")
    _assert((await service.join_event("gold-events", is_free_event=True)).allowed, "GOLD quarterly free event")
    stored = await store.get(LEVEL2_COLLECTION, "gold-events")
    _assert(
        stored["freeEventsUsedThisQuarter"] == 1 and "freeEventsUsedThisMonth" not in stored,
        f"GOLD free event must use the quarterly quota: {stored}",
    )
    used = await service.can_join_event("gold-events", is_free_event=True)
    _assert(
        not used.allowed and used.requires_payment is True
        and used.reason == "You've used your 1 free event(s) this quarter",
        f"GOLD second free event: {used}",
    )

    await _set_sub(store, "platinum-events", "PLATINUM")
    _assert((await service.join_event("platinum-events", is_free_event=True)).allowed, "monthly free event")
    _assert((await service.join_event("platinum-events", is_free_event=True)).allowed, "quarterly bonus event")
    stored = await store.get(LEVEL2_COLLECTION, "platinum-events")
    _assert(
        stored["freeEventsUsedThisMonth"] == 1
        and stored["freeEventsUsedThisQuarter"] == 1
        and stored["eventsAttendedThisMonth"] == 2
        and stored["eventsAttendedThisQuarter"] == 2,
        f"PLATINUM quotas consumed month then quarter: {stored}",
    )
    exhausted = await service.join_event("platinum-events", is_free_event=True)
    _assert(
        not exhausted.allowed
        and exhausted.requires_payment is True
        and exhausted.reason == "You've used your 1 free event(s) this month. Quarterly bonus: 1/1",
        f"PLATINUM exhausted: {exhausted}",
    )
    paid_platinum = await service.can_join_event("platinum-events")
    _assert(paid_platinum.allowed and paid_platinum.requires_payment is True, "paid events remain open")

    _assert((await service.record_event_attendance("silver-events")).success, "plain record must succeed")


async def _check_combined_helpers(service: Level2SubscriptionService, store: DocumentStore) -> None:
    await _set_sub(store, "slots", "SILVER", activeMissionsCount=2)
    _assert((await service.create_mission_slot("slots", "VISIT")).allowed, "third SILVER slot allowed")
    denied = await service.create_mission_slot("slots", "VISIT")
    _assert(not denied.allowed, "fourth SILVER slot denied")
    stored = await store.get(LEVEL2_COLLECTION, "slots")
    _assert(stored["activeMissionsCount"] == 3, "denied slot must not be recorded")


def _check_pricing(service: Level2SubscriptionService) -> None:
    expected = {"FREE": 0, "SILVER": 29, "GOLD": 59, "PLATINUM": 99}
    for tier, price in expected.items():
        _assert(service.get_tier_pricing(tier) == price, f"{tier} must cost {price} EUR")
    _assert(service.get_tier_pricing("gold") == 59, "pricing lookup is case-insensitive")
    _assert(service.get_benefits_for_tier("PLATINUM").max_active_missions == -1, "PLATINUM is unlimited")


async def _run_checks(db_path: Path) -> None:
    store = DocumentStore(str(db_path))
    await store.init()
    clock = _Clock(START)
    cfg = dataclasses.replace(CFG, db_path=str(db_path), quota_mode=QUOTA_MODE_LEGACY)
    service = Level2SubscriptionService(store, cfg, clock=clock)

    await _check_active_limits(service, store)
    await _check_type_access(service, store)
    await _check_google_reviews(service, store, clock)
    await _check_referrals(service, store)
    await _check_events(service, store)
    await _check_combined_helpers(service, store)
    _check_pricing(service)

    _assert((await service.update_tier("free-biz", "PLATINUM")).success, "Level 2 accepts PLATINUM")
    user_doc = await store.get("users", "free-biz")
    _assert(user_doc["subscriptionLevel"] == "PLATINUM", "users/{id} must mirror the Level 2 tier")


def main() -> None:
    tmpdir = Path(tempfile.mkdtemp(prefix="loyalty-smoke-level2-"))
    try:
        asyncio.run(_run_checks(tmpdir / "state.db"))
        print("OK: level 2 quota smoke passed.")
    finally:
        shutil.rmtree(tmpdir, ignore_errors=True)


if __name__ == "__main__":
    main()
