"""Subscription records and quota decisions."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from subscriptions.plans import DEFAULT_TIER, LEVEL1_TIERS, LEVEL2_TIERS, normalize_tier

logger = logging.getLogger(__name__)

LEVEL1_COLLECTION = "level1Subscriptions"
LEVEL2_COLLECTION = "level2Subscriptions"

STATUS_ACTIVE = "ACTIVE"
STATUS_CANCELED = "CANCELED"
STATUS_PAST_DUE = "PAST_DUE"
STATUS_TRIAL = "TRIAL"
LEVEL1_STATUSES = {STATUS_ACTIVE, STATUS_CANCELED, STATUS_PAST_DUE}
LEVEL2_STATUSES = LEVEL1_STATUSES | {STATUS_TRIAL}

QUARTERLY_COUNTERS = ("eventsAttendedThisQuarter", "freeEventsUsedThisQuarter")
LEVEL1_MONTHLY_COUNTERS = (
    "squadMeetupsAttendedThisMonth",
    "eventsAttendedThisMonth",
    "freeEventsUsedThisMonth",
)
LEVEL2_MONTHLY_COUNTERS = (
    "participantsThisMonth",
    "googleReviewsThisMonth",
    "referralMissionsThisMonth",
    "eventsAttendedThisMonth",
    "freeEventsUsedThisMonth",
)


def _counter(data: dict[str, Any], key: str) -> int:
    value = data.get(key)
    if value is None or isinstance(value, bool):
        return 0
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        return 0


def _text(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def _tier(user_id: str, data: dict[str, Any], supported: tuple[str, ...]) -> str:
    raw = data.get("tier")
    tier = normalize_tier(raw, supported)
    if tier is None:
        if raw is not None:
            logger.warning("Subscription %s has unknown tier %r, treating as %s", user_id, raw, DEFAULT_TIER)
        return DEFAULT_TIER
    return tier


def _status(user_id: str, data: dict[str, Any], supported: set[str]) -> str:
    status = str(data.get("status") or STATUS_ACTIVE).strip().upper()
    if status not in supported:
        logger.warning("Subscription %s has unknown status %r", user_id, status)
    return status


def _drop_none(data: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in data.items() if value is not None}


@dataclass(slots=True)
class Level1Subscription:
    user_id: str
    tier: str = DEFAULT_TIER
    status: str = STATUS_ACTIVE
    start_date: str | None = None
    next_billing_date: str | None = None
    canceled_at: str | None = None
    squad_meetups_attended_this_month: int = 0
    events_attended_this_month: int = 0
    events_attended_this_quarter: int = 0
    free_events_used_this_month: int = 0
    free_events_used_this_quarter: int = 0
    last_monthly_reset: str | None = None
    last_quarterly_reset: str | None = None
    stripe_customer_id: str | None = None
    stripe_subscription_id: str | None = None

    @classmethod
    def new(cls, user_id: str, *, now_iso: str, tier: str = DEFAULT_TIER, next_billing_date: str | None = None) -> "Level1Subscription":
        return cls(
            user_id=user_id,
            tier=tier,
            status=STATUS_ACTIVE,
            start_date=now_iso,
            next_billing_date=next_billing_date,
            last_monthly_reset=now_iso,
            last_quarterly_reset=now_iso,
        )

    @classmethod
    def from_document(cls, user_id: str, data: dict[str, Any]) -> "Level1Subscription":
        return cls(
            user_id=str(data.get("userId") or user_id),
            tier=_tier(user_id, data, LEVEL1_TIERS),
            status=_status(user_id, data, LEVEL1_STATUSES),
            start_date=_text(data, "startDate"),
            next_billing_date=_text(data, "nextBillingDate"),
            canceled_at=_text(data, "canceledAt"),
            squad_meetups_attended_this_month=_counter(data, "squadMeetupsAttendedThisMonth"),
            events_attended_this_month=_counter(data, "eventsAttendedThisMonth"),
            events_attended_this_quarter=_counter(data, "eventsAttendedThisQuarter"),
            free_events_used_this_month=_counter(data, "freeEventsUsedThisMonth"),
            free_events_used_this_quarter=_counter(data, "freeEventsUsedThisQuarter"),
            last_monthly_reset=_text(data, "lastMonthlyReset"),
            last_quarterly_reset=_text(data, "lastQuarterlyReset"),
            stripe_customer_id=_text(data, "stripeCustomerId"),
            stripe_subscription_id=_text(data, "stripeSubscriptionId"),
        )

    def to_document(self) -> dict[str, Any]:
        return _drop_none(
            {
                "userId": self.user_id,
                "tier": self.tier,
                "status": self.status,
                "startDate": self.start_date,
                "nextBillingDate": self.next_billing_date,
                "canceledAt": self.canceled_at,
                "squadMeetupsAttendedThisMonth": self.squad_meetups_attended_this_month,
                "eventsAttendedThisMonth": self.events_attended_this_month,
                "eventsAttendedThisQuarter": self.events_attended_this_quarter,
                "freeEventsUsedThisMonth": self.free_events_used_this_month,
                "freeEventsUsedThisQuarter": self.free_events_used_this_quarter,
                "lastMonthlyReset": self.last_monthly_reset,
                "lastQuarterlyReset": self.last_quarterly_reset,
                "stripeCustomerId": self.stripe_customer_id,
                "stripeSubscriptionId": self.stripe_subscription_id,
            }
        )


@dataclass(slots=True)
class Level2Subscription:
    user_id: str
    tier: str = DEFAULT_TIER
    status: str = STATUS_ACTIVE
    start_date: str | None = None
    next_billing_date: str | None = None
    canceled_at: str | None = None
    active_missions_count: int = 0
    participants_this_month: int = 0
    google_reviews_this_month: int = 0
    referral_missions_this_month: int = 0
    events_attended_this_month: int = 0
    free_events_used_this_month: int = 0
    events_attended_this_quarter: int = 0
    free_events_used_this_quarter: int = 0
    last_google_review_mission_created: str | None = None
    last_monthly_reset: str | None = None
    last_quarterly_reset: str | None = None
    stripe_customer_id: str | None = None
    stripe_subscription_id: str | None = None

    @classmethod
    def new(cls, user_id: str, *, now_iso: str, tier: str = DEFAULT_TIER, next_billing_date: str | None = None) -> "Level2Subscription":
        return cls(
            user_id=user_id,
            tier=tier,
            status=STATUS_ACTIVE,
            start_date=now_iso,
            next_billing_date=next_billing_date,
            last_monthly_reset=now_iso,
            last_quarterly_reset=now_iso,
        )

    @classmethod
    def from_document(cls, user_id: str, data: dict[str, Any]) -> "Level2Subscription":
        return cls(
            user_id=str(data.get("userId") or user_id),
            tier=_tier(user_id, data, LEVEL2_TIERS),
            status=_status(user_id, data, LEVEL2_STATUSES),
            start_date=_text(data, "startDate"),
            next_billing_date=_text(data, "nextBillingDate"),
            canceled_at=_text(data, "canceledAt"),
            active_missions_count=_counter(data, "activeMissionsCount"),
            participants_this_month=_counter(data, "participantsThisMonth"),
            google_reviews_this_month=_counter(data, "googleReviewsThisMonth"),
            referral_missions_this_month=_counter(data, "referralMissionsThisMonth"),
            events_attended_this_month=_counter(data, "eventsAttendedThisMonth"),
            free_events_used_this_month=_counter(data, "freeEventsUsedThisMonth"),
            events_attended_this_quarter=_counter(data, "eventsAttendedThisQuarter"),
            free_events_used_this_quarter=_counter(data, "freeEventsUsedThisQuarter"),
            last_google_review_mission_created=_text(data, "lastGoogleReviewMissionCreated"),
            last_monthly_reset=_text(data, "lastMonthlyReset"),
            last_quarterly_reset=_text(data, "lastQuarterlyReset"),
            stripe_customer_id=_text(data, "stripeCustomerId"),
            stripe_subscription_id=_text(data, "stripeSubscriptionId"),
        )

    def to_document(self) -> dict[str, Any]:
        return _drop_none(
            {
                "userId": self.user_id,
                "tier": self.tier,
                "status": self.status,
                "startDate": self.start_date,
                "nextBillingDate": self.next_billing_date,
                "canceledAt": self.canceled_at,
                "activeMissionsCount": self.active_missions_count,
                "participantsThisMonth": self.participants_this_month,
                "googleReviewsThisMonth": self.google_reviews_this_month,
                "referralMissionsThisMonth": self.referral_missions_this_month,
                "eventsAttendedThisMonth": self.events_attended_this_month,
                "freeEventsUsedThisMonth": self.free_events_used_this_month,
                "eventsAttendedThisQuarter": self.events_attended_this_quarter,
                "freeEventsUsedThisQuarter": self.free_events_used_this_quarter,
                "lastGoogleReviewMissionCreated": self.last_google_review_mission_created,
                "lastMonthlyReset": self.last_monthly_reset,
                "lastQuarterlyReset": self.last_quarterly_reset,
                "stripeCustomerId": self.stripe_customer_id,
                "stripeSubscriptionId": self.stripe_subscription_id,
            }
        )


@dataclass(frozen=True, slots=True)
class QuotaDecision:
    """Outcome of a gating check. A denial is a value, not an error."""

    allowed: bool
    reason: str | None = None
    requires_payment: bool | None = None

    @classmethod
    def allow(cls, requires_payment: bool | None = None) -> "QuotaDecision":
        return cls(allowed=True, requires_payment=requires_payment)

    @classmethod
    def deny(cls, reason: str, requires_payment: bool | None = None) -> "QuotaDecision":
        return cls(allowed=False, reason=reason, requires_payment=requires_payment)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"allowed": self.allowed}
        if self.reason is not None:
            payload["reason"] = self.reason
        if self.requires_payment is not None:
            payload["requiresPayment"] = self.requires_payment
        return payload


ERROR_CHECKING_ELIGIBILITY = QuotaDecision.deny("Error checking eligibility")
