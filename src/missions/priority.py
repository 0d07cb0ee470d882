"""Mission priority scoring.

Linear model: base 50, fixed increments per attribute band, clamped to 0..100
and bucketed into HIGH (>= 70), MEDIUM (>= 40) or LOW. Computed once when a
mission is created; stored values are not refreshed afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from database import parse_iso_utc, utc_now
from missions.models import PRIORITY_HIGH, PRIORITY_LOW, PRIORITY_MEDIUM, Mission

BASE_SCORE = 50
MIN_SCORE = 0
MAX_SCORE = 100
HIGH_THRESHOLD = 70
MEDIUM_THRESHOLD = 40

# (minimum, bonus), checked top-down; first match wins.
REWARD_POINT_BANDS = ((1000, 15), (500, 10), (200, 5))
BUDGET_BANDS = ((1000, 10), (500, 5))
GOAL_BONUS = {"SALES": 10, "GROWTH": 8, "TRAFFIC": 6, "CONTENT": 4}
SCARCITY_MAX_PARTICIPANTS = 10
SCARCITY_BONUS = 8
# (max days to expiry, bonus)
EXPIRY_BANDS = ((3, 10), (7, 5))
APPROVAL_FRICTION_PENALTY = 5
PRO_LEVEL = "PRO"
PRO_LEVEL_BONUS = 5

SECONDS_PER_DAY = 24 * 60 * 60


@dataclass(frozen=True, slots=True)
class PriorityResult:
    priority: str
    priority_score: int

    def to_dict(self) -> dict[str, Any]:
        return {"priority": self.priority, "priorityScore": self.priority_score}


def _band_bonus(value: float, bands: tuple[tuple[int, int], ...]) -> int:
    for minimum, bonus in bands:
        if value >= minimum:
            return bonus
    return 0


def priority_bucket(score: float) -> str:
    if score >= HIGH_THRESHOLD:
        return PRIORITY_HIGH
    if score >= MEDIUM_THRESHOLD:
        return PRIORITY_MEDIUM
    return PRIORITY_LOW


def days_until(valid_until: str | datetime | None, now: datetime) -> float | None:
    expires_at = parse_iso_utc(valid_until)
    if expires_at is None:
        return None
    return (expires_at - now).total_seconds() / SECONDS_PER_DAY


def calculate_mission_priority(mission: Mission, now: datetime | None = None) -> PriorityResult:
    """Score a (possibly partial) mission. Pure apart from reading the clock when ``now`` is omitted."""
    ref_now = now or utc_now()
    score = BASE_SCORE

    if mission.reward and mission.reward.points:
        score += _band_bonus(mission.reward.points, REWARD_POINT_BANDS)

    if mission.budget:
        score += _band_bonus(mission.budget, BUDGET_BANDS)

    score += GOAL_BONUS.get(mission.goal or "", 0)

    if mission.max_participants and mission.max_participants <= SCARCITY_MAX_PARTICIPANTS:
        score += SCARCITY_BONUS

    # Already expired missions count as the most urgent band.
    days_left = days_until(mission.valid_until, ref_now)
    if days_left is not None:
        for max_days, bonus in EXPIRY_BANDS:
            if days_left <= max_days:
                score += bonus
                break

    if mission.approval_required and not mission.auto_approve:
        score -= APPROVAL_FRICTION_PENALTY

    if mission.target_level and PRO_LEVEL in mission.target_level:
        score += PRO_LEVEL_BONUS

    score = max(MIN_SCORE, min(MAX_SCORE, score))
    return PriorityResult(priority=priority_bucket(score), priority_score=score)
