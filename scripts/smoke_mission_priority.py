#!/usr/bin/env python3
"""
Mission priority scoring smoke-check.

What it validates:
- the documented worked example (98 -> HIGH)
- every attribute band adds exactly its increment
- score is clamped to 0..100 and the bucket follows the thresholds
- same input gives the same result

Run:
  python3 scripts/smoke_mission_priority.py
"""

from __future__ import annotations

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

from missions.models import Mission, Reward  # noqa: E402
from missions.priority import calculate_mission_priority, priority_bucket  # noqa: E402


NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def _assert(cond: bool, message: str) -> None:
    if not cond:
        raise AssertionError(message)


def _score(mission: Mission) -> int:
    return calculate_mission_priority(mission, NOW).priority_score


def _check_worked_example() -> None:
    mission = Mission(
        reward=Reward(points=1200),
        budget=1200,
        goal="SALES",
        max_participants=5,
        valid_until=(NOW + timedelta(days=2)).isoformat(),
        approval_required=True,
        auto_approve=False,
    )
    result = calculate_mission_priority(mission, NOW)
    _assert(result.priority_score == 98, f"worked example must score 98, got {result.priority_score}")
    _assert(result.priority == "HIGH", f"worked example must be HIGH, got {result.priority}")
    _assert(result.to_dict() == {"priority": "HIGH", "priorityScore": 98}, "to_dict must use camelCase keys")
    _assert(calculate_mission_priority(mission, NOW) == result, "scoring must be deterministic")


def _check_bands() -> None:
    base = _score(Mission())
    _assert(base == 50, f"empty mission must score the base 50, got {base}")

    for points, bonus in ((1000, 15), (999, 10), (500, 10), (200, 5), (199, 0)):
        got = _score(Mission(reward=Reward(points=points))) - base
        _assert(got == bonus, f"reward {points} must add {bonus}, got {got}")

    for budget, bonus in ((1000, 10), (500, 5), (499, 0)):
        got = _score(Mission(budget=budget)) - base
        _assert(got == bonus, f"budget {budget} must add {bonus}, got {got}")

    for goal, bonus in (("SALES", 10), ("GROWTH", 8), ("TRAFFIC", 6), ("CONTENT", 4), ("OTHER", 0)):
        got = _score(Mission(goal=goal)) - base
        _assert(got == bonus, f"goal {goal} must add {bonus}, got {got}")

    _assert(_score(Mission(max_participants=10)) - base == 8, "10 slots must count as scarce")
    _assert(_score(Mission(max_participants=11)) == base, "11 slots are not scarce")
    _assert(_score(Mission(max_participants=0)) == base, "0 means unlimited, not scarce")

    for days, bonus in ((1, 10), (3, 10), (5, 5), (7, 5), (8, 0), (-2, 10)):
        mission = Mission(valid_until=(NOW + timedelta(days=days)).isoformat())
        got = _score(mission) - base
        _assert(got == bonus, f"expiry in {days} days must add {bonus}, got {got}")

    _assert(_score(Mission(approval_required=True)) - base == -5, "manual approval must cost 5")
    _assert(
        _score(Mission(approval_required=True, auto_approve=True)) == base,
        "auto-approved missions carry no friction penalty",
    )
    _assert(_score(Mission(target_level=["PRO", "MEMBER"])) - base == 5, "PRO targeting must add 5")


def _check_clamp_and_buckets() -> None:
    everything = Mission(
        reward=Reward(points=5000),
        budget=5000,
        goal="SALES",
        max_participants=3,
        valid_until=(NOW + timedelta(hours=6)).isoformat(),
        target_level=["PRO"],
    )
    result = calculate_mission_priority(everything, NOW)
    _assert(result.priority_score == 100, f"score must be clamped to 100, got {result.priority_score}")
    _assert(result.priority == "HIGH", "clamped score must be HIGH")

    for score, bucket in ((100, "HIGH"), (70, "HIGH"), (69, "MEDIUM"), (40, "MEDIUM"), (39, "LOW"), (0, "LOW")):
        _assert(priority_bucket(score) == bucket, f"score {score} must map to {bucket}")

    low = calculate_mission_priority(Mission(approval_required=True), NOW)
    _assert(low.priority == "MEDIUM" and low.priority_score == 45, "approval-only mission must be MEDIUM 45")


def main() -> None:
    _check_worked_example()
    _check_bands()
    _check_clamp_and_buckets()
    print("OK: mission priority smoke passed.")


if __name__ == "__main__":
    main()
