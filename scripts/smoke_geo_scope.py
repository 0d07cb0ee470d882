#!/usr/bin/env python3
"""
Geographic scope smoke-check.

What it validates:
- online businesses are GLOBAL for every tier
- physical/hybrid tier table (FREE city .. PLATINUM global)
- visibility predicate per scope, failing closed on missing fields
- Haversine distance is symmetric, zero on the same point, and realistic

Run:
  python3 scripts/smoke_geo_scope.py
"""

from __future__ import annotations

import math
import sys
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

from missions.geo import distance_km, get_geo_scope, haversine_km, is_mission_visible_to_user  # noqa: E402
from missions.models import GeoPoint, Mission, UserContext  # noqa: E402


def _assert(cond: bool, message: str) -> None:
    if not cond:
        raise AssertionError(message)


def _check_scope_table() -> None:
    for tier in ("FREE", "SILVER", "GOLD", "PLATINUM", "", None, "unknown"):
        _assert(get_geo_scope("ONLINE", tier) == "GLOBAL", f"ONLINE/{tier!r} must be GLOBAL")
    _assert(get_geo_scope("online", "free") == "GLOBAL", "business type must be case-insensitive")

    expected = {"FREE": "CITY", "SILVER": "REGION", "GOLD": "COUNTRY", "PLATINUM": "GLOBAL"}
    for business_type in ("PHYSICAL", "HYBRID"):
        for tier, scope in expected.items():
            got = get_geo_scope(business_type, tier)
            _assert(got == scope, f"{business_type}/{tier} must be {scope}, got {got}")
    _assert(get_geo_scope("PHYSICAL", "DIAMOND") == "CITY", "unknown tier must fall back to CITY")
    _assert(get_geo_scope(None, None) == "CITY", "missing inputs must fall back to CITY")


def _check_visibility() -> None:
    berlin_user = UserContext(user_id="u1", city="Berlin", country="DE")
    nowhere_user = UserContext(user_id="u2")

    city = Mission(geo_scope="CITY", city="Berlin", country="DE")
    _assert(is_mission_visible_to_user(city, berlin_user), "same city must be visible")
    _assert(
        not is_mission_visible_to_user(city, UserContext(city="Munich", country="DE")),
        "other city must not be visible",
    )
    _assert(not is_mission_visible_to_user(city, nowhere_user), "missing user city must fail closed")
    _assert(
        not is_mission_visible_to_user(Mission(geo_scope="CITY"), berlin_user),
        "missing mission city must fail closed",
    )

    for scope in ("REGION", "COUNTRY"):
        mission = Mission(geo_scope=scope, city="Hamburg", country="DE")
        _assert(is_mission_visible_to_user(mission, berlin_user), f"{scope} must match on country")
        _assert(
            not is_mission_visible_to_user(mission, UserContext(city="Vienna", country="AT")),
            f"{scope} must reject other countries",
        )
        _assert(not is_mission_visible_to_user(mission, nowhere_user), f"{scope} must fail closed")

    multi = Mission(geo_scope="MULTI_COUNTRY", target_countries=["AT", "CH"])
    _assert(is_mission_visible_to_user(multi, UserContext(country="CH")), "listed country must be visible")
    _assert(not is_mission_visible_to_user(multi, berlin_user), "unlisted country must not be visible")
    _assert(not is_mission_visible_to_user(multi, nowhere_user), "MULTI_COUNTRY must fail closed")

    world = Mission(geo_scope="GLOBAL")
    _assert(is_mission_visible_to_user(world, nowhere_user), "GLOBAL must always be visible")

    unscoped = Mission(city="Berlin")
    _assert(is_mission_visible_to_user(unscoped, berlin_user), "missing scope must behave like CITY")
    _assert(
        not is_mission_visible_to_user(unscoped, UserContext(city="Paris", country="FR")),
        "missing scope must not widen visibility",
    )


def _check_haversine() -> None:
    berlin = GeoPoint(52.5200, 13.4050)
    paris = GeoPoint(48.8566, 2.3522)

    _assert(distance_km(berlin, berlin) == 0.0, "distance to self must be 0")
    forward = distance_km(berlin, paris)
    backward = distance_km(paris, berlin)
    _assert(math.isclose(forward, backward, rel_tol=1e-12), f"distance must be symmetric: {forward} vs {backward}")
    _assert(870.0 < forward < 885.0, f"Berlin-Paris must be ~878km, got {forward:.1f}")

    quarter = haversine_km(0.0, 0.0, 0.0, 90.0)
    _assert(math.isclose(quarter, 6371.0 * math.pi / 2, rel_tol=1e-9), "quarter equator must use R=6371")

    _assert(GeoPoint.from_value({"lat": 91, "lon": 0}) is None, "latitude out of range must be rejected")
    _assert(GeoPoint.from_value([1.5, 2.5]) == GeoPoint(1.5, 2.5), "pairs must parse as lat/lon")
    detailed = GeoPoint.from_value({"lat": 50.45, "lng": 30.52, "address": "Khreshchatyk 1", "district": "Pechersk"})
    _assert(
        detailed.to_document()
        == {"latitude": 50.45, "longitude": 30.52, "address": "Khreshchatyk 1", "district": "Pechersk"},
        f"address details must survive parsing: {detailed.to_document()}",
    )


def main() -> None:
    _check_scope_table()
    _check_visibility()
    _check_haversine()
    print("OK: geo scope smoke passed.")


if __name__ == "__main__":
    main()
