#!/usr/bin/env python3
"""
Personalized mission ranking smoke-check.

What it validates:
- the documented worked example (MEDIUM/45, 0.5km, one interest, 3 free slots -> 67)
- level, proximity, availability and recency bonuses
- descending order with stable ties and truncation to N
- optional geo-scope filtering of the pool

Run:
  python3 scripts/smoke_mission_ranking.py
"""

from __future__ import annotations

import math
import sys
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

from missions.models import GeoPoint, Mission, UserContext  # noqa: E402
from missions.ranking import rank_missions_for_user, score_mission_for_user  # noqa: E402


NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)
USER_POINT = GeoPoint(52.5200, 13.4050)
# ~0.5km north of the user
NEAR_POINT = GeoPoint(52.5245, 13.4050)
# ~3.3km north
MID_POINT = GeoPoint(52.5500, 13.4050)
# ~7.8km north
FAR_POINT = GeoPoint(52.5900, 13.4050)


def _assert(cond: bool, message: str) -> None:
    if not cond:
        raise AssertionError(message)


def _days_ago(days: float) -> str:
    return (NOW - timedelta(days=days)).isoformat()


def _check_worked_example() -> None:
    mission = Mission(
        id="m1",
        category="food",
        priority="MEDIUM",
        priority_score=45,
        geo=NEAR_POINT,
        max_participants=5,
        current_participants=2,
        created_at=_days_ago(3),
    )
    user = UserContext(user_id="u1", interests=["food"], location=USER_POINT)
    score = score_mission_for_user(mission, user, NOW)
    _assert(math.isclose(score, 67.0), f"worked example must score 67, got {score}")


def _check_components() -> None:
    bare = Mission(id="bare", created_at=_days_ago(10))
    nobody = UserContext(user_id="u0")
    # open level +5, unlimited slots +5
    _assert(math.isclose(score_mission_for_user(bare, nobody, NOW), 10.0), "bare mission must score 10")

    restricted = Mission(id="r", target_level=["PRO"], created_at=_days_ago(10))
    pro_user = UserContext(user_id="u2", level="PRO")
    member_user = UserContext(user_id="u3", level="MEMBER")
    _assert(math.isclose(score_mission_for_user(restricted, pro_user, NOW), 13.0), "level match must add 8")
    _assert(math.isclose(score_mission_for_user(restricted, member_user, NOW), 5.0), "level mismatch adds 0")
    _assert(
        math.isclose(score_mission_for_user(restricted, nobody, NOW), 5.0),
        "restricted mission without user level adds 0",
    )

    interests = UserContext(user_id="u4", interests=["coffee", "food", "art"])
    multi = Mission(id="multi", category="art", target_categories=["coffee", "food", "music"], created_at=_days_ago(10))
    # 2 target matches (20) + primary (15) + open level (5) + unlimited (5)
    _assert(math.isclose(score_mission_for_user(multi, interests, NOW), 45.0), "interest overlap must add 35")

    located = UserContext(user_id="u5", location=USER_POINT)
    for point, bonus in ((NEAR_POINT, 20), (MID_POINT, 10), (FAR_POINT, 5), (GeoPoint(53.5, 13.4), 0)):
        mission = Mission(id="geo", geo=point, created_at=_days_ago(10))
        got = score_mission_for_user(mission, located, NOW) - 10.0
        _assert(math.isclose(got, bonus), f"proximity bonus must be {bonus}, got {got}")
    _assert(
        math.isclose(score_mission_for_user(Mission(id="g", geo=NEAR_POINT, created_at=_days_ago(10)), nobody, NOW), 10.0),
        "missing user location must give no proximity bonus",
    )

    for max_p, current, bonus in ((20, 2, 5), (5, 4, 1), (5, 5, 0), (5, 9, 0)):
        mission = Mission(id="slots", max_participants=max_p, current_participants=current, created_at=_days_ago(10))
        got = score_mission_for_user(mission, nobody, NOW) - 5.0
        _assert(math.isclose(got, bonus), f"{current}/{max_p} slots must add {bonus}, got {got}")

    fresh = Mission(id="fresh", created_at=_days_ago(0.5))
    _assert(math.isclose(score_mission_for_user(fresh, nobody, NOW), 13.0), "fresh mission must add 3")
    undated = Mission(id="undated")
    _assert(math.isclose(score_mission_for_user(undated, nobody, NOW), 10.0), "missing createdAt adds nothing")

    high = Mission(id="high", priority="HIGH", priority_score=80, created_at=_days_ago(10))
    _assert(math.isclose(score_mission_for_user(high, nobody, NOW), 51.0), "HIGH/80 must add 25 + 16")


def _check_ranking() -> None:
    user = UserContext(user_id="u6", interests=["food"], location=USER_POINT)
    missions = [
        Mission(id="low", priority="LOW", priority_score=30, created_at=_days_ago(5)),
        Mission(id="tie-a", created_at=_days_ago(5)),
        Mission(id="best", category="food", priority="HIGH", priority_score=90, geo=NEAR_POINT, created_at=_days_ago(5)),
        Mission(id="tie-b", created_at=_days_ago(5)),
        Mission(id="mid", priority="MEDIUM", priority_score=50, created_at=_days_ago(5)),
    ]
    ranked = rank_missions_for_user(missions, user, max_results=10, now=NOW)
    order = [item.mission.id for item in ranked]
    _assert(order == ["best", "mid", "low", "tie-a", "tie-b"], f"unexpected order: {order}")
    _assert(
        all(ranked[i].score >= ranked[i + 1].score for i in range(len(ranked) - 1)),
        "scores must be non-increasing",
    )

    top2 = rank_missions_for_user(missions, user, max_results=2, now=NOW)
    _assert([item.mission.id for item in top2] == ["best", "mid"], "truncation must keep the top N")
    _assert(rank_missions_for_user(missions, user, max_results=0, now=NOW) == [], "N=0 must return nothing")
    _assert(rank_missions_for_user([], user, now=NOW) == [], "empty pool must return nothing")


def _check_geo_filter() -> None:
    user = UserContext(user_id="u7", city="Berlin", country="DE")
    missions = [
        Mission(id="berlin", geo_scope="CITY", city="Berlin", country="DE", created_at=_days_ago(5)),
        Mission(id="paris", geo_scope="CITY", city="Paris", country="FR", created_at=_days_ago(5)),
        Mission(id="world", geo_scope="GLOBAL", created_at=_days_ago(5)),
    ]
    everything = rank_missions_for_user(missions, user, now=NOW)
    _assert(len(everything) == 3, "scope is ignored unless enforced")
    visible = rank_missions_for_user(missions, user, now=NOW, enforce_geo_scope=True)
    _assert({item.mission.id for item in visible} == {"berlin", "world"}, "enforced scope must drop Paris")


def main() -> None:
    _check_worked_example()
    _check_components()
    _check_ranking()
    _check_geo_filter()
    print("OK: mission ranking smoke passed.")


if __name__ == "__main__":
    main()
