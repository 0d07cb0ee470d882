"""Subscription tiers, quota gating and counter resets."""

from subscriptions.maintenance import reset_subscription_counters, subscription_reset_loop
from subscriptions.models import QuotaDecision
from subscriptions.service import Level1SubscriptionService, Level2SubscriptionService

__all__ = [
    "Level1SubscriptionService",
    "Level2SubscriptionService",
    "QuotaDecision",
    "reset_subscription_counters",
    "subscription_reset_loop",
]
