"""Level 1 / Level 2 subscription services.

Gating checks read the current subscription and return a ``QuotaDecision``;
``record_*`` calls increment counters afterwards. Both steps are separate
reads and writes, so two concurrent callers can both pass a check before
either records (counters may overshoot the tier limit). The combined
``attend_*`` / ``join_event`` / ``create_mission_slot`` helpers follow the
configured quota mode: ``legacy`` keeps that read-then-write behaviour,
``transactional`` evaluates and records inside one store transaction.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any, Generic, TypeVar

from config import CFG, Config, is_quota_transactional
from database import DocumentStore, utc_now
from missions.models import USERS_COLLECTION
from results import OperationResult
from subscriptions.models import (
    ERROR_CHECKING_ELIGIBILITY,
    LEVEL1_COLLECTION,
    LEVEL2_COLLECTION,
    STATUS_ACTIVE,
    Level1Subscription,
    Level2Subscription,
    QuotaDecision,
)
from subscriptions.plans import (
    LEVEL1_TIERS,
    LEVEL2_TIERS,
    MISSION_TYPE_GOOGLE_REVIEW,
    Level1Benefits,
    Level2Benefits,
    get_level1_benefits,
    get_level2_benefits,
    get_level2_tier_pricing,
    normalize_tier,
)
from subscriptions.quota import (
    Deltas,
    evaluate_level1_event,
    evaluate_level2_event,
    evaluate_level2_mission_creation,
    evaluate_squad_meetup,
    level1_event_deltas,
    level2_event_deltas,
    level2_mission_creation_deltas,
    squad_meetup_deltas,
)

logger = logging.getLogger(__name__)

BILLING_PERIOD_DAYS = 30

SubscriptionT = TypeVar("SubscriptionT", Level1Subscription, Level2Subscription)


def _apply_deltas(data: dict[str, Any], deltas: Deltas) -> None:
    for field, delta in deltas.items():
        data[field] = int(data.get(field) or 0) + delta


class _SubscriptionService(Generic[SubscriptionT]):
    collection: str
    tiers: tuple[str, ...]
    model: type[SubscriptionT]
    label: str

    def __init__(
        self,
        store: DocumentStore | None = None,
        cfg: Config | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store or DocumentStore()
        self.cfg = cfg or CFG
        self.clock = clock or utc_now

    @property
    def transactional(self) -> bool:
        return is_quota_transactional(self.cfg)

    def _new_subscription(self, user_id: str, tier: str | None = None, *, billed: bool = False) -> SubscriptionT:
        now = self.clock()
        next_billing = (now + timedelta(days=BILLING_PERIOD_DAYS)).isoformat() if billed else None
        return self.model.new(
            user_id,
            now_iso=now.isoformat(),
            tier=tier or "FREE",
            next_billing_date=next_billing,
        )

    async def _load_subscription(self, user_id: str) -> SubscriptionT:
        data = await self.store.get(self.collection, user_id)
        if data is not None:
            return self.model.from_document(user_id, data)
        subscription = self._new_subscription(user_id)
        await self.store.set(self.collection, user_id, subscription.to_document())
        logger.info("%s subscription created for %s with default tier", self.label, user_id)
        return subscription

    async def get_subscription(self, user_id: str) -> SubscriptionT | None:
        """Current subscription; a FREE/ACTIVE default is stored when there is none."""
        try:
            return await self._load_subscription(user_id)
        except Exception:
            logger.exception("Error fetching %s subscription for %s", self.label, user_id)
            return None

    async def update_tier(self, user_id: str, tier: str) -> OperationResult:
        new_tier = normalize_tier(tier, self.tiers)
        if new_tier is None:
            return OperationResult.fail(f"Unsupported tier: {tier}")
        try:
            async with self.store.transaction() as tx:
                current = await tx.get(self.collection, user_id)
                if current is None:
                    await tx.set(
                        self.collection,
                        user_id,
                        self._new_subscription(user_id, new_tier, billed=True).to_document(),
                    )
                else:
                    next_billing = self.clock() + timedelta(days=BILLING_PERIOD_DAYS)
                    current.update(
                        {
                            "tier": new_tier,
                            "status": STATUS_ACTIVE,
                            "nextBillingDate": next_billing.isoformat(),
                        }
                    )
                    await tx.set(self.collection, user_id, current)
            await self.store.set(
                USERS_COLLECTION,
                user_id,
                {"subscriptionLevel": new_tier, "updatedAt": self.clock().isoformat()},
                merge=True,
            )
        except Exception:
            logger.exception("Error updating %s tier for %s", self.label, user_id)
            return OperationResult.fail("Failed to update subscription")
        logger.info("%s tier for %s set to %s", self.label, user_id, new_tier)
        return OperationResult.ok(user_id)

    async def _check(self, user_id: str, evaluate: Callable[[SubscriptionT], QuotaDecision]) -> QuotaDecision:
        try:
            return evaluate(await self._load_subscription(user_id))
        except Exception:
            logger.exception("Error checking %s eligibility for %s", self.label, user_id)
            return ERROR_CHECKING_ELIGIBILITY

    async def _record(
        self,
        user_id: str,
        deltas: Deltas,
        extra: dict[str, Any] | None = None,
    ) -> OperationResult:
        try:
            updated = await self.store.increment(self.collection, user_id, deltas, extra)
        except Exception:
            logger.exception("Error recording %s usage for %s", self.label, user_id)
            return OperationResult.fail("Failed to record usage")
        if updated is None:
            return OperationResult.fail("No subscription found")
        return OperationResult.ok(user_id)

    async def _check_and_record(
        self,
        user_id: str,
        evaluate: Callable[[SubscriptionT], QuotaDecision],
        deltas: Callable[[SubscriptionT], Deltas],
        extra: Callable[[], dict[str, Any] | None] = lambda: None,
    ) -> QuotaDecision:
        if not self.transactional:
            try:
                subscription = await self._load_subscription(user_id)
            except Exception:
                logger.exception("Error checking %s eligibility for %s", self.label, user_id)
                return ERROR_CHECKING_ELIGIBILITY
            decision = evaluate(subscription)
            if decision.allowed:
                await self._record(user_id, deltas(subscription), extra())
            return decision

        try:
            async with self.store.transaction() as tx:
                data = await tx.get(self.collection, user_id)
                if data is None:
                    data = self._new_subscription(user_id).to_document()
                subscription = self.model.from_document(user_id, data)
                decision = evaluate(subscription)
                if decision.allowed:
                    _apply_deltas(data, deltas(subscription))
                    data.update(extra() or {})
                await tx.set(self.collection, user_id, data)
            return decision
        except Exception:
            logger.exception("Error applying %s quota for %s", self.label, user_id)
            return ERROR_CHECKING_ELIGIBILITY

    async def _benefits(self, user_id: str) -> Level1Benefits | Level2Benefits | None:
        subscription = await self.get_subscription(user_id)
        if subscription is None:
            return None
        return self.get_benefits_for_tier(subscription.tier)

    async def has_benefit(self, user_id: str, benefit: str) -> bool:
        try:
            benefits = await self._benefits(user_id)
        except Exception:
            logger.exception("Error checking %s benefit %s for %s", self.label, benefit, user_id)
            return False
        return bool(benefits and benefits.has(benefit))

    @staticmethod
    def get_benefits_for_tier(tier: str | None) -> Level1Benefits | Level2Benefits:
        raise NotImplementedError


class Level1SubscriptionService(_SubscriptionService[Level1Subscription]):
    """Member (Level 1) subscriptions: squad meetups and business events."""

    collection = LEVEL1_COLLECTION
    tiers = LEVEL1_TIERS
    model = Level1Subscription
    label = "Level 1"

    @staticmethod
    def get_benefits_for_tier(tier: str | None) -> Level1Benefits:
        return get_level1_benefits(tier)

    async def can_attend_squad_meetup(self, user_id: str) -> QuotaDecision:
        return await self._check(user_id, evaluate_squad_meetup)

    async def can_attend_business_event(self, user_id: str, is_free_event: bool = False) -> QuotaDecision:
        return await self._check(user_id, lambda sub: evaluate_level1_event(sub, is_free_event))

    can_join_event = can_attend_business_event

    async def record_squad_meetup_attendance(self, user_id: str) -> OperationResult:
        return await self._record(user_id, squad_meetup_deltas())

    async def record_business_event_attendance(self, user_id: str, is_free_event: bool = False) -> OperationResult:
        return await self._record(user_id, level1_event_deltas(is_free_event))

    record_event_attendance = record_business_event_attendance

    async def attend_squad_meetup(self, user_id: str) -> QuotaDecision:
        return await self._check_and_record(user_id, evaluate_squad_meetup, lambda _sub: squad_meetup_deltas())

    async def attend_business_event(self, user_id: str, is_free_event: bool = False) -> QuotaDecision:
        return await self._check_and_record(
            user_id,
            lambda sub: evaluate_level1_event(sub, is_free_event),
            lambda _sub: level1_event_deltas(is_free_event),
        )


class Level2SubscriptionService(_SubscriptionService[Level2Subscription]):
    """Business (Level 2) subscriptions: mission creation limits and events."""

    collection = LEVEL2_COLLECTION
    tiers = LEVEL2_TIERS
    model = Level2Subscription
    label = "Level 2"

    @staticmethod
    def get_benefits_for_tier(tier: str | None) -> Level2Benefits:
        return get_level2_benefits(tier)

    @staticmethod
    def get_tier_pricing(tier: str | None) -> int:
        return get_level2_tier_pricing(tier)

    def _mission_creation_extra(self, mission_type: str | None) -> dict[str, Any] | None:
        if str(mission_type or "").strip().upper() == MISSION_TYPE_GOOGLE_REVIEW:
            return {"lastGoogleReviewMissionCreated": self.clock().isoformat()}
        return None

    async def can_create_mission(self, user_id: str, mission_type: str | None) -> QuotaDecision:
        return await self._check(
            user_id,
            lambda sub: evaluate_level2_mission_creation(sub, mission_type, self.clock()),
        )

    async def record_mission_creation(self, user_id: str, mission_type: str | None) -> OperationResult:
        return await self._record(
            user_id,
            level2_mission_creation_deltas(mission_type),
            self._mission_creation_extra(mission_type),
        )

    async def record_mission_completion(self, user_id: str) -> OperationResult:
        """Free one active-mission slot; the count never goes below zero."""
        try:
            async with self.store.transaction() as tx:
                data = await tx.get(self.collection, user_id)
                if data is None:
                    return OperationResult.fail("No subscription found")
                active = int(data.get("activeMissionsCount") or 0)
                if active > 0:
                    data["activeMissionsCount"] = active - 1
                    await tx.set(self.collection, user_id, data)
        except Exception:
            logger.exception("Error recording mission completion for %s", user_id)
            return OperationResult.fail("Failed to record usage")
        return OperationResult.ok(user_id)

    async def can_join_event(self, user_id: str, is_free_event: bool = False) -> QuotaDecision:
        return await self._check(user_id, lambda sub: evaluate_level2_event(sub, is_free_event))

    async def record_event_attendance(self, user_id: str, is_free_event: bool = False) -> OperationResult:
        try:
            subscription = await self._load_subscription(user_id)
        except Exception:
            logger.exception("Error recording Level 2 event for %s", user_id)
            return OperationResult.fail("Failed to record usage")
        return await self._record(user_id, level2_event_deltas(subscription, is_free_event))

    async def create_mission_slot(self, user_id: str, mission_type: str | None) -> QuotaDecision:
        return await self._check_and_record(
            user_id,
            lambda sub: evaluate_level2_mission_creation(sub, mission_type, self.clock()),
            lambda _sub: level2_mission_creation_deltas(mission_type),
            lambda: self._mission_creation_extra(mission_type),
        )

    async def join_event(self, user_id: str, is_free_event: bool = False) -> QuotaDecision:
        return await self._check_and_record(
            user_id,
            lambda sub: evaluate_level2_event(sub, is_free_event),
            lambda sub: level2_event_deltas(sub, is_free_event),
        )
