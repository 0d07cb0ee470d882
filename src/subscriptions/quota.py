"""Quota evaluators and counter updates, shared by both write paths.

Evaluators only read a subscription snapshot and return a ``QuotaDecision``.
Counter updates are returned as ``{field: delta}`` maps so the caller can
apply them with a plain increment or inside a transaction.
"""

from __future__ import annotations

import math
from datetime import datetime

from database import parse_iso_utc
from subscriptions.models import Level1Subscription, Level2Subscription, QuotaDecision
from subscriptions.plans import (
    MISSION_TYPE_GOOGLE_REVIEW,
    MISSION_TYPE_REFERRAL,
    MISSION_TYPE_REQUIREMENTS,
    UNLIMITED,
    get_level1_benefits,
    get_level2_benefits,
)

SECONDS_PER_HOUR = 60 * 60

Deltas = dict[str, int]


def evaluate_squad_meetup(subscription: Level1Subscription) -> QuotaDecision:
    benefits = get_level1_benefits(subscription.tier)
    if subscription.squad_meetups_attended_this_month >= benefits.monthly_squad_meetups:
        return QuotaDecision.deny(
            f"You've reached your monthly limit of {benefits.monthly_squad_meetups} meetup(s). "
            "Upgrade to Gold for more!"
        )
    return QuotaDecision.allow()


def evaluate_level1_event(subscription: Level1Subscription, is_free_event: bool = False) -> QuotaDecision:
    benefits = get_level1_benefits(subscription.tier)
    if not benefits.events_access:
        return QuotaDecision.deny("Upgrade to Silver or Gold to access business events", requires_payment=True)
    if benefits.unlimited_events:
        return QuotaDecision.allow()

    if is_free_event:
        if benefits.free_events_per_month > 0:
            if subscription.free_events_used_this_month >= benefits.free_events_per_month:
                return QuotaDecision.deny(
                    f"You've used your {benefits.free_events_per_month} free event(s) this month"
                )
            return QuotaDecision.allow()
        if benefits.free_events_per_quarter > 0:
            if subscription.free_events_used_this_quarter >= benefits.free_events_per_quarter:
                return QuotaDecision.deny(
                    f"You've used your {benefits.free_events_per_quarter} free event(s) this quarter"
                )
            return QuotaDecision.allow()

    return QuotaDecision.allow(requires_payment=not is_free_event)


def evaluate_level2_mission_creation(
    subscription: Level2Subscription,
    mission_type: str | None,
    now: datetime,
) -> QuotaDecision:
    """Active-mission limit, then type access, then Google review and referral safety caps."""
    benefits = get_level2_benefits(subscription.tier)
    kind = str(mission_type or "").strip().upper()

    if benefits.max_active_missions != UNLIMITED and subscription.active_missions_count >= benefits.max_active_missions:
        return QuotaDecision.deny(
            f"You've reached your limit of {benefits.max_active_missions} active mission(s). Upgrade for more!"
        )

    requirement = MISSION_TYPE_REQUIREMENTS.get(kind)
    if requirement is not None:
        flag, reason = requirement
        if not getattr(benefits, flag):
            return QuotaDecision.deny(reason)

    if kind == MISSION_TYPE_GOOGLE_REVIEW:
        if subscription.google_reviews_this_month >= benefits.google_review_monthly_limit:
            return QuotaDecision.deny(
                f"Monthly Google review limit reached ({benefits.google_review_monthly_limit}). Resets next month."
            )
        last_created = parse_iso_utc(subscription.last_google_review_mission_created)
        if last_created is not None:
            hours_since = (now - last_created).total_seconds() / SECONDS_PER_HOUR
            if hours_since < benefits.google_review_cooldown_hours:
                hours_left = math.ceil(benefits.google_review_cooldown_hours - hours_since)
                return QuotaDecision.deny(
                    f"Cooldown active. Wait {hours_left} more hours before creating another Google review mission."
                )

    if kind == MISSION_TYPE_REFERRAL:
        if subscription.referral_missions_this_month >= benefits.referral_missions_per_month:
            return QuotaDecision.deny(
                f"Monthly referral limit reached ({benefits.referral_missions_per_month}). "
                "Upgrade or wait until next month."
            )

    return QuotaDecision.allow()


def evaluate_level2_event(subscription: Level2Subscription, is_free_event: bool = False) -> QuotaDecision:
    """Monthly free quota first, then the quarterly bonus, then pay-per-use."""
    benefits = get_level2_benefits(subscription.tier)
    if not benefits.events_access:
        return QuotaDecision.deny("Upgrade to Silver or higher to access business events", requires_payment=True)

    if is_free_event and benefits.free_events_per_month > 0:
        if subscription.free_events_used_this_month >= benefits.free_events_per_month:
            if (
                benefits.free_events_per_quarter > 0
                and subscription.free_events_used_this_quarter < benefits.free_events_per_quarter
            ):
                return QuotaDecision.allow()
            return QuotaDecision.deny(
                f"You've used your {benefits.free_events_per_month} free event(s) this month. "
                f"Quarterly bonus: {subscription.free_events_used_this_quarter}/{benefits.free_events_per_quarter}",
                requires_payment=True,
            )
        return QuotaDecision.allow()

    if is_free_event and benefits.free_events_per_quarter > 0:
        if subscription.free_events_used_this_quarter >= benefits.free_events_per_quarter:
            return QuotaDecision.deny(
                f"You've used your {benefits.free_events_per_quarter} free event(s) this quarter",
                requires_payment=True,
            )
        return QuotaDecision.allow()

    if benefits.events_pay_per_use:
        return QuotaDecision.allow(requires_payment=not is_free_event)
    return QuotaDecision.allow()


def squad_meetup_deltas() -> Deltas:
    return {"squadMeetupsAttendedThisMonth": 1}


def level1_event_deltas(is_free_event: bool = False) -> Deltas:
    deltas = {"eventsAttendedThisMonth": 1, "eventsAttendedThisQuarter": 1}
    if is_free_event:
        deltas["freeEventsUsedThisMonth"] = 1
        deltas["freeEventsUsedThisQuarter"] = 1
    return deltas


def level2_mission_creation_deltas(mission_type: str | None) -> Deltas:
    kind = str(mission_type or "").strip().upper()
    deltas = {"activeMissionsCount": 1}
    if kind == MISSION_TYPE_GOOGLE_REVIEW:
        deltas["googleReviewsThisMonth"] = 1
    if kind == MISSION_TYPE_REFERRAL:
        deltas["referralMissionsThisMonth"] = 1
    return deltas


def level2_event_deltas(subscription: Level2Subscription, is_free_event: bool = False) -> Deltas:
    """Which free quota a free event consumes depends on what is left of the monthly one."""
    benefits = get_level2_benefits(subscription.tier)
    deltas = {"eventsAttendedThisMonth": 1, "eventsAttendedThisQuarter": 1}
    if not is_free_event:
        return deltas
    if benefits.free_events_per_month > 0:
        if subscription.free_events_used_this_month < benefits.free_events_per_month:
            deltas["freeEventsUsedThisMonth"] = 1
        elif subscription.free_events_used_this_quarter < benefits.free_events_per_quarter:
            deltas["freeEventsUsedThisQuarter"] = 1
    elif benefits.free_events_per_quarter > 0:
        deltas["freeEventsUsedThisQuarter"] = 1
    return deltas
