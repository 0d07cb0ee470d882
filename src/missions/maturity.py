"""Business-profile derived limits and boosts for mission planning."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

DEFAULT_MAX_PARTICIPANTS = 5
MAX_PARTICIPANTS_BY_TIER: dict[str, int] = {
    "FREE": 5,
    "SILVER": 10,
    "GOLD": 50,
    "PLATINUM": 100,
}

GROWTH_SPEED_BOOST: dict[str, int] = {
    "explosive": 10,
    "fast": 7,
    "steady": 4,
    "slow": 2,
}

GOAL_MATCH_BOOST = 15
GOAL_KEYWORDS: dict[str, tuple[str, ...]] = {
    "followers": ("social_media", "content", "instagram", "tiktok", "influencer"),
    "clients": ("sales", "customer", "conversion", "lead_generation", "product"),
    "collaborate": ("partnership", "collaboration", "network", "b2b", "event"),
    "events": ("event", "meetup", "workshop", "conference", "gathering"),
    "international": ("international", "global", "expansion", "translation", "multilingual"),
    "branding": ("branding", "design", "creative", "photography", "video", "marketing"),
}


def get_max_participants_by_subscription(tier: str | None) -> int:
    """Participant cap a business may set on one mission."""
    return MAX_PARTICIPANTS_BY_TIER.get(str(tier or "").strip().upper(), DEFAULT_MAX_PARTICIPANTS)


@dataclass(frozen=True, slots=True)
class MaturityBoost:
    collaboration_allowed: bool
    growth_boost: int
    main_goal: str | None = None

    def goal_boost(self, mission_goal: str | None) -> int:
        """Bonus when the mission goal text mentions a keyword of the business's main goal."""
        if not self.main_goal or not mission_goal:
            return 0
        goal_text = mission_goal.lower()
        keywords = GOAL_KEYWORDS.get(self.main_goal.strip().lower(), ())
        return GOAL_MATCH_BOOST if any(keyword in goal_text for keyword in keywords) else 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "collaborationAllowed": self.collaboration_allowed,
            "growthBoost": self.growth_boost,
            "mainGoal": self.main_goal,
        }


def get_maturity_boost(profile: dict[str, Any] | None) -> MaturityBoost:
    """Read the maturity assessment answers stored on a business profile."""
    profile = profile or {}
    main_goal = profile.get("mainGoal")
    return MaturityBoost(
        collaboration_allowed=profile.get("willingToCollaborate") != "no",
        growth_boost=GROWTH_SPEED_BOOST.get(str(profile.get("growthSpeed") or ""), 0),
        main_goal=str(main_goal) if main_goal else None,
    )
