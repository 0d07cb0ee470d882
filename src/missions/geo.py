"""Geographic scope resolution and great-circle distance."""

from __future__ import annotations

import math

from missions.models import (
    BUSINESS_TYPE_ONLINE,
    GEO_SCOPE_CITY,
    GEO_SCOPE_COUNTRY,
    GEO_SCOPE_GLOBAL,
    GEO_SCOPE_MULTI_COUNTRY,
    GEO_SCOPE_REGION,
    GeoPoint,
    Mission,
    UserContext,
)

EARTH_RADIUS_KM = 6371.0

GEO_SCOPE_BY_TIER: dict[str, str] = {
    "FREE": GEO_SCOPE_CITY,
    "SILVER": GEO_SCOPE_REGION,
    "GOLD": GEO_SCOPE_COUNTRY,
    "PLATINUM": GEO_SCOPE_GLOBAL,
}


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in kilometres."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) * math.sin(d_lat / 2)
        + math.cos(math.radians(lat1))
        * math.cos(math.radians(lat2))
        * math.sin(d_lon / 2)
        * math.sin(d_lon / 2)
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def distance_km(a: GeoPoint, b: GeoPoint) -> float:
    return haversine_km(a.latitude, a.longitude, b.latitude, b.longitude)


def get_geo_scope(business_type: str | None, subscription_tier: str | None) -> str:
    """Visibility radius for a business's missions.

    Online businesses reach everyone. Physical and hybrid businesses widen
    with tier; an unknown tier gets the narrowest scope.
    """
    if str(business_type or "").strip().upper() == BUSINESS_TYPE_ONLINE:
        return GEO_SCOPE_GLOBAL
    tier = str(subscription_tier or "").strip().upper()
    return GEO_SCOPE_BY_TIER.get(tier, GEO_SCOPE_CITY)


def _same(a: str | None, b: str | None) -> bool:
    return bool(a) and bool(b) and a == b


def is_mission_visible_to_user(mission: Mission, user: UserContext) -> bool:
    """Whether ``user`` falls inside the mission's geographic scope.

    REGION is checked as a country match: there is no regional granularity.
    Missing location fields mean "not visible" for every scope but GLOBAL.
    A mission without a stored scope is treated as CITY.
    """
    scope = mission.geo_scope or GEO_SCOPE_CITY
    if scope == GEO_SCOPE_GLOBAL:
        return True
    if scope == GEO_SCOPE_CITY:
        return _same(mission.city, user.city)
    if scope in (GEO_SCOPE_REGION, GEO_SCOPE_COUNTRY):
        return _same(mission.country, user.country)
    if scope == GEO_SCOPE_MULTI_COUNTRY:
        return bool(user.country) and user.country in mission.target_countries
    return False
