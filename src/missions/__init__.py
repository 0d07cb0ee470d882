"""Missions module entrypoints: scoring, ranking, geo scope and the service."""

from missions.geo import get_geo_scope, haversine_km, is_mission_visible_to_user
from missions.maturity import get_max_participants_by_subscription, get_maturity_boost
from missions.priority import calculate_mission_priority
from missions.ranking import rank_missions_for_user, score_mission_for_user
from missions.service import MissionService

__all__ = [
    "MissionService",
    "calculate_mission_priority",
    "get_geo_scope",
    "get_max_participants_by_subscription",
    "get_maturity_boost",
    "haversine_km",
    "is_mission_visible_to_user",
    "rank_missions_for_user",
    "score_mission_for_user",
]
