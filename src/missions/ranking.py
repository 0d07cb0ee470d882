"""Personalized mission ranking.

A mission's composite score for one user adds up:

- priority bucket bonus and a fifth of the stored priority score;
- interest overlap with target categories and the primary category;
- level match (or a smaller bonus for missions open to every level);
- proximity bands by great-circle distance;
- remaining slots (capped) and a bonus for brand-new missions.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from database import parse_iso_utc, utc_now
from missions.geo import distance_km, is_mission_visible_to_user
from missions.models import PRIORITY_HIGH, PRIORITY_LOW, PRIORITY_MEDIUM, Mission, UserContext

PRIORITY_BUCKET_BONUS = {PRIORITY_HIGH: 25, PRIORITY_MEDIUM: 15, PRIORITY_LOW: 5}
PRIORITY_SCORE_WEIGHT = 0.2
TARGET_CATEGORY_MATCH_BONUS = 10
PRIMARY_CATEGORY_MATCH_BONUS = 15
LEVEL_MATCH_BONUS = 8
OPEN_LEVEL_BONUS = 5
# (distance strictly below km, bonus)
PROXIMITY_BANDS = ((1.0, 20), (5.0, 10), (10.0, 5))
MAX_AVAILABILITY_BONUS = 5
UNLIMITED_SLOTS_BONUS = 5
RECENCY_MAX_AGE_DAYS = 1.0
RECENCY_BONUS = 3

SECONDS_PER_DAY = 24 * 60 * 60


@dataclass(slots=True)
class ScoredMission:
    mission: Mission
    score: float


def _level_bonus(mission: Mission, user_level: str | None) -> int:
    if user_level and mission.target_level is not None:
        return LEVEL_MATCH_BONUS if user_level.upper() in mission.target_level else 0
    if mission.target_level is None:
        return OPEN_LEVEL_BONUS
    return 0


def _proximity_bonus(mission: Mission, user: UserContext) -> int:
    if user.location is None or mission.geo is None:
        return 0
    distance = distance_km(user.location, mission.geo)
    for max_km, bonus in PROXIMITY_BANDS:
        if distance < max_km:
            return bonus
    return 0


def _availability_bonus(mission: Mission) -> int:
    if not mission.max_participants:
        return UNLIMITED_SLOTS_BONUS
    slots_remaining = mission.max_participants - mission.current_participants
    if slots_remaining > 0:
        return min(slots_remaining, MAX_AVAILABILITY_BONUS)
    return 0


def _recency_bonus(mission: Mission, now: datetime) -> int:
    created_at = parse_iso_utc(mission.created_at)
    if created_at is None:
        return 0
    age_days = (now - created_at).total_seconds() / SECONDS_PER_DAY
    return RECENCY_BONUS if age_days < RECENCY_MAX_AGE_DAYS else 0


def score_mission_for_user(mission: Mission, user: UserContext, now: datetime | None = None) -> float:
    """Composite recommendation score of one mission for one user."""
    ref_now = now or utc_now()
    score = float(PRIORITY_BUCKET_BONUS.get(mission.priority or "", 0))

    if mission.priority_score:
        score += mission.priority_score * PRIORITY_SCORE_WEIGHT

    if user.interests:
        interests = set(user.interests)
        matching = [category for category in mission.target_categories if category in interests]
        score += len(matching) * TARGET_CATEGORY_MATCH_BONUS
        if mission.category and mission.category in interests:
            score += PRIMARY_CATEGORY_MATCH_BONUS

    score += _level_bonus(mission, user.level)
    score += _proximity_bonus(mission, user)
    score += _availability_bonus(mission)
    score += _recency_bonus(mission, ref_now)
    return score


def rank_missions_for_user(
    missions: Iterable[Mission],
    user: UserContext,
    *,
    max_results: int = 20,
    now: datetime | None = None,
    enforce_geo_scope: bool = False,
) -> list[ScoredMission]:
    """Top ``max_results`` missions by descending score; ties keep input order."""
    ref_now = now or utc_now()
    scored = [
        ScoredMission(mission=mission, score=score_mission_for_user(mission, user, ref_now))
        for mission in missions
        if not enforce_geo_scope or is_mission_visible_to_user(mission, user)
    ]
    scored.sort(key=lambda item: item.score, reverse=True)
    return scored[: max(0, int(max_results))]
