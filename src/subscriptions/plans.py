"""Shared plan matrix for Level 1 (members) and Level 2 (businesses) subscriptions."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Final

LEVEL1_TIERS: Final[tuple[str, ...]] = ("FREE", "SILVER", "GOLD")
LEVEL2_TIERS: Final[tuple[str, ...]] = ("FREE", "SILVER", "GOLD", "PLATINUM")
DEFAULT_TIER: Final[str] = "FREE"

UNLIMITED: Final[int] = -1


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _snake(name: str) -> str:
    return "".join(f"_{char.lower()}" if char.isupper() else char for char in name)


class _BenefitTable:
    """Lookup helpers shared by the benefit dataclasses."""

    __slots__ = ()

    def to_dict(self) -> dict[str, Any]:
        return {_camel(key): value for key, value in asdict(self).items()}

    def has(self, benefit: str) -> bool:
        """Truthiness of a benefit given by its camelCase or snake_case name."""
        name = _snake(benefit.strip())
        if name not in self.__dataclass_fields__:
            return False
        return bool(getattr(self, name))


@dataclass(frozen=True, slots=True)
class Level1Benefits(_BenefitTable):
    monthly_squad_meetups: int
    events_access: bool
    free_events_per_quarter: int
    free_events_per_month: int
    unlimited_events: bool
    early_access_city_launches: bool
    level2_preview: bool
    priority_city_access: bool
    beta_features_access: bool
    early_builder_badge: bool
    mission_preview_only: bool
    public_city_feed_access: bool


@dataclass(frozen=True, slots=True)
class Level2Benefits(_BenefitTable):
    max_active_missions: int  # UNLIMITED means fair use
    max_participants_per_month: int
    max_participants_per_mission: int
    visit_check_in_missions: bool
    instagram_follow_missions: bool
    instagram_story_missions: bool
    instagram_feed_missions: bool
    video_missions: bool
    google_review_missions: bool
    referral_missions: bool
    google_review_monthly_limit: int
    google_review_cooldown_hours: int
    google_review_min_visit_verification: bool
    referral_missions_per_month: int
    referral_delayed_reward_hours: int
    events_access: bool
    events_pay_per_use: bool
    free_events_per_month: int
    free_events_per_quarter: int
    my_squad_access: bool
    basic_analytics: bool
    enhanced_analytics: bool
    priority_placement: bool
    priority_support: bool
    verification_badge: bool
    city_level_visibility: bool


LEVEL1_TIER_BENEFITS: Final[dict[str, Level1Benefits]] = {
    "FREE": Level1Benefits(
        monthly_squad_meetups=1,
        events_access=False,
        free_events_per_quarter=0,
        free_events_per_month=0,
        unlimited_events=False,
        early_access_city_launches=False,
        level2_preview=False,
        priority_city_access=False,
        beta_features_access=False,
        early_builder_badge=False,
        mission_preview_only=True,
        public_city_feed_access=True,
    ),
    "SILVER": Level1Benefits(
        monthly_squad_meetups=1,
        events_access=True,
        free_events_per_quarter=1,
        free_events_per_month=0,
        unlimited_events=False,
        early_access_city_launches=True,
        level2_preview=True,
        priority_city_access=False,
        beta_features_access=False,
        early_builder_badge=False,
        mission_preview_only=True,
        public_city_feed_access=True,
    ),
    "GOLD": Level1Benefits(
        monthly_squad_meetups=3,
        events_access=True,
        free_events_per_quarter=0,
        free_events_per_month=1,
        unlimited_events=True,
        early_access_city_launches=True,
        level2_preview=True,
        priority_city_access=True,
        beta_features_access=True,
        early_builder_badge=True,
        mission_preview_only=True,
        public_city_feed_access=True,
    ),
}

LEVEL2_TIER_BENEFITS: Final[dict[str, Level2Benefits]] = {
    "FREE": Level2Benefits(
        max_active_missions=1,
        max_participants_per_month=20,
        max_participants_per_mission=10,
        visit_check_in_missions=True,
        instagram_follow_missions=False,
        instagram_story_missions=False,
        instagram_feed_missions=False,
        video_missions=False,
        google_review_missions=False,
        referral_missions=False,
        google_review_monthly_limit=0,
        google_review_cooldown_hours=0,
        google_review_min_visit_verification=True,
        referral_missions_per_month=0,
        referral_delayed_reward_hours=72,
        events_access=False,
        events_pay_per_use=False,
        free_events_per_month=0,
        free_events_per_quarter=0,
        my_squad_access=True,
        basic_analytics=True,
        enhanced_analytics=False,
        priority_placement=False,
        priority_support=False,
        verification_badge=True,
        city_level_visibility=True,
    ),
    "SILVER": Level2Benefits(
        max_active_missions=3,
        max_participants_per_month=40,
        max_participants_per_mission=20,
        visit_check_in_missions=True,
        instagram_follow_missions=True,
        instagram_story_missions=True,
        instagram_feed_missions=False,
        video_missions=False,
        google_review_missions=False,
        referral_missions=False,
        google_review_monthly_limit=0,
        google_review_cooldown_hours=0,
        google_review_min_visit_verification=True,
        referral_missions_per_month=0,
        referral_delayed_reward_hours=72,
        events_access=True,
        events_pay_per_use=True,
        free_events_per_month=0,
        free_events_per_quarter=0,
        my_squad_access=True,
        basic_analytics=True,
        enhanced_analytics=False,
        priority_placement=False,
        priority_support=False,
        verification_badge=True,
        city_level_visibility=True,
    ),
    "GOLD": Level2Benefits(
        max_active_missions=6,
        max_participants_per_month=120,
        max_participants_per_mission=30,
        visit_check_in_missions=True,
        instagram_follow_missions=True,
        instagram_story_missions=True,
        instagram_feed_missions=True,
        video_missions=False,
        google_review_missions=True,
        referral_missions=True,
        google_review_monthly_limit=10,
        google_review_cooldown_hours=168,
        google_review_min_visit_verification=True,
        referral_missions_per_month=3,
        referral_delayed_reward_hours=48,
        events_access=True,
        events_pay_per_use=True,
        free_events_per_month=0,
        free_events_per_quarter=1,
        my_squad_access=True,
        basic_analytics=True,
        enhanced_analytics=True,
        priority_placement=False,
        priority_support=False,
        verification_badge=True,
        city_level_visibility=True,
    ),
    "PLATINUM": Level2Benefits(
        max_active_missions=UNLIMITED,
        max_participants_per_month=300,
        max_participants_per_mission=50,
        visit_check_in_missions=True,
        instagram_follow_missions=True,
        instagram_story_missions=True,
        instagram_feed_missions=True,
        video_missions=True,
        google_review_missions=True,
        referral_missions=True,
        google_review_monthly_limit=20,
        google_review_cooldown_hours=120,
        google_review_min_visit_verification=True,
        referral_missions_per_month=6,
        referral_delayed_reward_hours=24,
        events_access=True,
        events_pay_per_use=True,
        free_events_per_month=1,
        free_events_per_quarter=1,
        my_squad_access=True,
        basic_analytics=True,
        enhanced_analytics=True,
        priority_placement=True,
        priority_support=True,
        verification_badge=True,
        city_level_visibility=True,
    ),
}

# Monthly prices in EUR.
LEVEL2_TIER_PRICING: Final[dict[str, int]] = {
    "FREE": 0,
    "SILVER": 29,
    "GOLD": 59,
    "PLATINUM": 99,
}

MISSION_TYPE_GOOGLE_REVIEW: Final[str] = "GOOGLE_REVIEW"
MISSION_TYPE_REFERRAL: Final[str] = "REFERRAL"

# Mission type -> (benefit flag, denial reason). Types not listed need no flag.
MISSION_TYPE_REQUIREMENTS: Final[dict[str, tuple[str, str]]] = {
    "VISIT": ("visit_check_in_missions", "Visit missions require SILVER or higher"),
    "INSTAGRAM_FOLLOW": ("instagram_follow_missions", "Instagram follow missions require SILVER or higher"),
    "INSTAGRAM_STORY": ("instagram_story_missions", "Instagram story missions require SILVER or higher"),
    "INSTAGRAM_FEED": ("instagram_feed_missions", "Instagram feed missions require GOLD or higher"),
    "VIDEO": ("video_missions", "Video missions require PLATINUM"),
    MISSION_TYPE_GOOGLE_REVIEW: ("google_review_missions", "Google review missions require GOLD or higher"),
    MISSION_TYPE_REFERRAL: ("referral_missions", "Referral missions require GOLD or higher"),
}


def normalize_tier(tier: str | None, supported: tuple[str, ...]) -> str | None:
    """Upper-cased tier when it belongs to ``supported``, otherwise None."""
    value = str(tier or "").strip().upper()
    return value if value in supported else None


def get_level1_benefits(tier: str | None) -> Level1Benefits:
    """Benefits for a Level 1 tier; unknown tiers get FREE."""
    return LEVEL1_TIER_BENEFITS[normalize_tier(tier, LEVEL1_TIERS) or DEFAULT_TIER]


def get_level2_benefits(tier: str | None) -> Level2Benefits:
    """Benefits for a Level 2 tier; unknown tiers get FREE."""
    return LEVEL2_TIER_BENEFITS[normalize_tier(tier, LEVEL2_TIERS) or DEFAULT_TIER]


def get_level2_tier_pricing(tier: str | None) -> int:
    return LEVEL2_TIER_PRICING[normalize_tier(tier, LEVEL2_TIERS) or DEFAULT_TIER]
