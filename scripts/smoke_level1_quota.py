#!/usr/bin/env python3
"""
Level 1 (member) subscription quota smoke-check.

What it validates:
- get_subscription stores a FREE/ACTIVE default on first read
- monthly squad meetup limits per tier (FREE 1, GOLD 3)
- business event access: FREE denied, SILVER quarterly free event then paid,
  GOLD unlimited
- update_tier validates input, bumps billing and mirrors users/{id}
- has_benefit accepts camelCase and snake_case names
- recording for a user without a subscription fails

Run:
  python3 scripts/smoke_level1_quota.py
"""

from __future__ import annotations

import asyncio
import dataclasses
import shutil
import sys
import tempfile
from datetime import datetime, timezone
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
from database import DocumentStore, parse_iso_utc  # noqa: E402
from subscriptions.models import LEVEL1_COLLECTION  # noqa: E402
from subscriptions.plans import get_level1_benefits  # noqa: E402
from subscriptions.service import Level1SubscriptionService  # noqa: E402


NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def _assert(cond: bool, message: str) -> None:
    if not cond:
        raise AssertionError(message)


async def _set_tier(store: DocumentStore, user_id: str, tier: str, **counters: int) -> None:
    data = {"userId": user_id, "tier": tier, "status": "ACTIVE"}
    data.update(counters)
    await store.set(LEVEL1_COLLECTION, user_id, data)


async def _check_default_subscription(service: Level1SubscriptionService, store: DocumentStore) -> None:
    subscription = await service.get_subscription("new-user")
    _assert(subscription is not None, "default subscription must be created")
    _assert(subscription.tier == "FREE" and subscription.status == "ACTIVE", "default is FREE/ACTIVE")
    _assert(subscription.squad_meetups_attended_this_month == 0, "counters start at zero")
    stored = await store.get(LEVEL1_COLLECTION, "new-user")
    _assert(stored is not None and stored["tier"] == "FREE", "default must be persisted")
    _assert(stored["lastMonthlyReset"] == NOW.isoformat(), "reset markers start at creation time")

    await store.set(LEVEL1_COLLECTION, "odd-user", {"tier": "DIAMOND"})
    odd = await service.get_subscription("odd-user")
    _assert(odd is not None and odd.tier == "FREE", "unknown stored tier must be read as FREE")


async def _check_squad_meetups(service: Level1SubscriptionService, store: DocumentStore) -> None:
    first = await service.can_attend_squad_meetup("free-user")
    _assert(first.allowed, "FREE member gets one meetup")
    _assert((await service.record_squad_meetup_attendance("free-user")).success, "record must succeed")
    second = await service.can_attend_squad_meetup("free-user")
    _assert(not second.allowed, "second meetup must be denied for FREE")
    _assert(
        second.reason == "You've reached your monthly limit of 1 meetup(s). Upgrade to Gold for more!",
        f"unexpected reason: {second.reason}",
    )
    _assert(second.to_dict() == {"allowed": False, "reason": second.reason}, "denial payload shape")

    await _set_tier(store, "gold-user", "GOLD", squadMeetupsAttendedThisMonth=2)
    _assert((await service.can_attend_squad_meetup("gold-user")).allowed, "GOLD 2/3 must be allowed")
    await service.record_squad_meetup_attendance("gold-user")
    denied = await service.can_attend_squad_meetup("gold-user")
    _assert(not denied.allowed and "limit of 3 meetup(s)" in (denied.reason or ""), "GOLD 3/3 must be denied")

    # Checks never mutate counters.
    stored = await store.get(LEVEL1_COLLECTION, "gold-user")
    _assert(stored["squadMeetupsAttendedThisMonth"] == 3, "checks must not change counters")


async def _check_events(service: Level1SubscriptionService, store: DocumentStore) -> None:
    blocked = await service.can_attend_business_event("free-user")
    _assert(
        blocked.to_dict()
        == {
            "allowed": False,
            "reason": "Upgrade to Silver or Gold to access business events",
            "requiresPayment": True,
        },
        f"FREE must be blocked from events: {blocked}",
    )

    await _set_tier(store, "silver-user", "SILVER")
    free_event = await service.can_attend_business_event("silver-user", is_free_event=True)
    _assert(free_event.allowed and free_event.requires_payment is None, "SILVER gets one free event per quarter")
    await service.record_business_event_attendance("silver-user", is_free_event=True)
    stored = await store.get(LEVEL1_COLLECTION, "silver-user")
    _assert(
        stored["eventsAttendedThisMonth"] == 1
        and stored["eventsAttendedThisQuarter"] == 1
        and stored["freeEventsUsedThisMonth"] == 1
        and stored["freeEventsUsedThisQuarter"] == 1,
        f"free attendance must bump all four counters: {stored}",
    )
    used = await service.can_join_event("silver-user", is_free_event=True)
    _assert(
        not used.allowed and used.reason == "You've used your 1 free event(s) this quarter",
        f"second free event must be denied: {used}",
    )
    paid = await service.can_attend_business_event("silver-user", is_free_event=False)
    _assert(paid.allowed and paid.requires_payment is True, "paid events stay available with payment")

    await service.record_event_attendance("silver-user")
    stored = await store.get(LEVEL1_COLLECTION, "silver-user")
    _assert(
        stored["eventsAttendedThisMonth"] == 2 and stored["freeEventsUsedThisMonth"] == 1,
        "paid attendance must not touch free counters",
    )

    await _set_tier(store, "gold-events", "GOLD", freeEventsUsedThisMonth=5)
    unlimited = await service.can_attend_business_event("gold-events", is_free_event=True)
    _assert(unlimited.allowed and unlimited.requires_payment is None, "GOLD events are unlimited")

    combined = await service.attend_business_event("silver-user", is_free_event=True)
    _assert(not combined.allowed, "combined helper must deny an exhausted free quota")
    stored = await store.get(LEVEL1_COLLECTION, "silver-user")
    _assert(stored["eventsAttendedThisMonth"] == 2, "denied attendance must not be recorded")


async def _check_tier_updates(service: Level1SubscriptionService, store: DocumentStore) -> None:
    bad = await service.update_tier("free-user", "platinum")
    _assert(not bad.success and bad.error == "Unsupported tier: platinum", "PLATINUM is not a Level 1 tier")

    upgraded = await service.update_tier("free-user", "gold")
    _assert(upgraded.success, f"upgrade must succeed: {upgraded}")
    stored = await store.get(LEVEL1_COLLECTION, "free-user")
    _assert(stored["tier"] == "GOLD" and stored["status"] == "ACTIVE", "tier and status must be updated")
    billing = parse_iso_utc(stored["nextBillingDate"])
    _assert(billing is not None and (billing - NOW).days == 30, "next billing must be 30 days out")
    _assert(stored["squadMeetupsAttendedThisMonth"] == 1, "tier change must keep usage counters")
    user_doc = await store.get("users", "free-user")
    _assert(user_doc is not None and user_doc["subscriptionLevel"] == "GOLD", "users/{id} must mirror the tier")

    _assert((await service.update_tier("brand-new", "SILVER")).success, "tier update must create missing subs")
    created = await store.get(LEVEL1_COLLECTION, "brand-new")
    _assert(created["tier"] == "SILVER" and created.get("nextBillingDate"), "created sub must be billed")

    _assert(await service.has_benefit("free-user", "betaFeaturesAccess"), "GOLD has beta access")
    _assert(await service.has_benefit("free-user", "priority_city_access"), "snake_case names are accepted")
    _assert(not await service.has_benefit("brand-new", "unlimitedEvents"), "SILVER has no unlimited events")
    _assert(not await service.has_benefit("brand-new", "noSuchBenefit"), "unknown benefits are False")

    benefits = service.get_benefits_for_tier("silver")
    _assert(benefits == get_level1_benefits("SILVER"), "tier lookup is case-insensitive")
    _assert(benefits.to_dict()["freeEventsPerQuarter"] == 1, "to_dict uses camelCase keys")
    _assert(service.get_benefits_for_tier("unknown") == get_level1_benefits("FREE"), "unknown tier gets FREE")


async def _check_missing_subscription(service: Level1SubscriptionService) -> None:
    result = await service.record_squad_meetup_attendance("ghost")
    _assert(not result.success and result.error == "No subscription found", f"missing sub must fail: {result}")


async def _run_checks(db_path: Path) -> None:
    store = DocumentStore(str(db_path))
    await store.init()
    cfg = dataclasses.replace(CFG, db_path=str(db_path), quota_mode=QUOTA_MODE_LEGACY)
    service = Level1SubscriptionService(store, cfg, clock=lambda: NOW)

    await _check_default_subscription(service, store)
    await _check_squad_meetups(service, store)
    await _check_events(service, store)
    await _check_tier_updates(service, store)
    await _check_missing_subscription(service)


def main() -> None:
    tmpdir = Path(tempfile.mkdtemp(prefix="loyalty-smoke-level1-"))
    try:
        asyncio.run(_run_checks(tmpdir / "state.db"))
        print("OK: level 1 quota smoke passed.")
    finally:
        shutil.rmtree(tmpdir, ignore_errors=True)


if __name__ == "__main__":
    main()
