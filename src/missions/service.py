"""Mission lifecycle, recommendations and participation review."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from config import CFG, Config
from database import utc_now_iso
from missions.geo import get_geo_scope
from missions.maturity import get_max_participants_by_subscription, get_maturity_boost
from missions.models import (
    LIFECYCLE_ACTIVE,
    LIFECYCLE_COMPLETED,
    LIFECYCLE_DRAFT,
    LIFECYCLE_PAUSED,
    PARTICIPATION_APPROVED,
    PARTICIPATION_PENDING,
    PARTICIPATION_PENDING_APPROVAL,
    PARTICIPATION_REJECTED,
    USERS_COLLECTION,
    GeoPoint,
    Mission,
    Participation,
    UserContext,
)
from missions.priority import BASE_SCORE, calculate_mission_priority
from missions.ranking import ScoredMission, rank_missions_for_user
from missions.repository import MissionRepository
from results import OperationResult, error_message

logger = logging.getLogger(__name__)

DEFAULT_TRIGGER_TYPE = "MANUAL"


def _without_none(value: Any) -> Any:
    """Recursively drop ``None`` entries from mappings."""
    if isinstance(value, dict):
        return {key: _without_none(item) for key, item in value.items() if item is not None}
    if isinstance(value, list):
        return [_without_none(item) for item in value]
    return value


@dataclass(slots=True)
class MissionStats:
    total_missions: int = 0
    active_missions: int = 0
    completed_missions: int = 0
    total_applications: int = 0
    # Counts APPROVED participations; the field name is kept for existing dashboards.
    pending_reviews: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "totalMissions": self.total_missions,
            "activeMissions": self.active_missions,
            "completedMissions": self.completed_missions,
            "totalApplications": self.total_applications,
            "pendingReviews": self.pending_reviews,
        }


class MissionService:
    """Mission operations; store failures come back as negative results."""

    def __init__(self, repository: MissionRepository | None = None, cfg: Config | None = None) -> None:
        self.repository = repository or MissionRepository()
        self.cfg = cfg or CFG

    def build_new_mission_document(self, data: dict[str, Any]) -> dict[str, Any]:
        """Document for a new DRAFT mission, priority computed once from the input."""
        payload = dict(data)
        payload.pop("id", None)
        subscription_tier = payload.pop("subscriptionTier", None)
        draft = Mission.from_document(None, payload)

        if draft.priority:
            priority = draft.priority
            priority_score = draft.priority_score or BASE_SCORE
        else:
            computed = calculate_mission_priority(draft)
            priority, priority_score = computed.priority, computed.priority_score

        if not draft.geo_scope and subscription_tier:
            draft.geo_scope = get_geo_scope(draft.business_type, subscription_tier)

        draft.current_participants = 0
        draft.lifecycle_status = LIFECYCLE_DRAFT
        draft.created_at = utc_now_iso()
        draft.is_active = False
        draft.priority = priority
        draft.priority_score = priority_score
        draft.trigger_type = draft.trigger_type or DEFAULT_TRIGGER_TYPE
        return _without_none(draft.to_document())

    async def create_mission(self, data: dict[str, Any]) -> OperationResult:
        try:
            document = self.build_new_mission_document(data)
            mission_id = await self.repository.add_mission(document)
        except Exception as error:
            logger.exception("Error creating mission")
            return OperationResult.fail(error_message(error, "Failed to create mission"))
        logger.info(
            "Mission %s created for business %s: priority=%s score=%s",
            mission_id,
            document.get("businessId"),
            document.get("priority"),
            document.get("priorityScore"),
        )
        return OperationResult.ok(mission_id)

    async def get_mission(self, mission_id: str) -> Mission | None:
        try:
            return await self.repository.get_mission(mission_id)
        except Exception:
            logger.exception("Error fetching mission %s", mission_id)
            return None

    async def update_mission(self, mission_id: str, updates: dict[str, Any]) -> OperationResult:
        try:
            await self.repository.update_mission(mission_id, _without_none(dict(updates)))
        except Exception as error:
            logger.exception("Error updating mission %s", mission_id)
            return OperationResult.fail(error_message(error, "Failed to update mission"))
        return OperationResult.ok(mission_id)

    async def publish_mission(self, mission_id: str) -> OperationResult:
        result = await self.update_mission(mission_id, {"lifecycleStatus": LIFECYCLE_ACTIVE, "isActive": True})
        if result.success:
            logger.info("Mission %s published", mission_id)
        return result

    async def toggle_mission_status(self, mission_id: str, pause: bool) -> OperationResult:
        return await self.update_mission(
            mission_id,
            {
                "lifecycleStatus": LIFECYCLE_PAUSED if pause else LIFECYCLE_ACTIVE,
                "isActive": not pause,
            },
        )

    async def delete_mission(self, mission_id: str) -> OperationResult:
        try:
            deleted = await self.repository.delete_mission(mission_id)
        except Exception as error:
            logger.exception("Error deleting mission %s", mission_id)
            return OperationResult.fail(error_message(error, "Failed to delete mission"))
        if not deleted:
            return OperationResult.fail("Mission not found")
        logger.info("Mission %s deleted", mission_id)
        return OperationResult.ok(mission_id)

    async def get_missions_by_business(self, business_id: str, status: str | None = None) -> list[Mission]:
        try:
            return await self.repository.list_missions_by_business(
                business_id,
                status=status.upper() if status else None,
            )
        except Exception:
            logger.exception("Error fetching missions for business %s", business_id)
            return []

    async def get_active_missions(self, category: str | None = None, max_results: int = 20) -> list[Mission]:
        try:
            return await self.repository.list_active_missions(category=category, limit=max_results)
        except Exception:
            logger.exception("Error fetching active missions")
            return []

    async def _load_user_context(
        self,
        user_id: str,
        interests: list[str] | None,
        level: str | None,
        location: GeoPoint | None,
    ) -> UserContext:
        user = UserContext(
            user_id=user_id,
            interests=list(interests or []),
            level=level.upper() if level else None,
            location=location,
        )
        if self.cfg.recommendation_enforce_geo_scope:
            profile = await self.repository.store.get(USERS_COLLECTION, user_id) or {}
            stored = UserContext.from_document(user_id, profile)
            user.city = stored.city
            user.country = stored.country
        return user

    async def recommend_missions(
        self,
        user_id: str,
        interests: list[str] | None = None,
        level: str | None = None,
        location: GeoPoint | None = None,
        max_results: int | None = None,
    ) -> list[ScoredMission]:
        """Rank the active mission pool for one user, keeping the scores."""
        limit = self.cfg.recommendation_max_results if max_results is None else max_results
        try:
            user = await self._load_user_context(user_id, interests, level, location)
            pool = await self.repository.list_active_missions(limit=self.cfg.recommendation_pool_size)
            return rank_missions_for_user(
                pool,
                user,
                max_results=limit,
                enforce_geo_scope=self.cfg.recommendation_enforce_geo_scope,
            )
        except Exception:
            logger.exception("Error fetching missions for user %s", user_id)
            return []

    async def get_missions_for_user(
        self,
        user_id: str,
        interests: list[str] | None = None,
        level: str | None = None,
        location: GeoPoint | None = None,
        max_results: int | None = None,
    ) -> list[Mission]:
        scored = await self.recommend_missions(user_id, interests, level, location, max_results)
        return [item.mission for item in scored]

    async def apply_to_mission(self, mission_id: str, user_id: str) -> OperationResult:
        try:
            mission = await self.repository.get_mission(mission_id)
            if mission is None or not mission.business_id:
                return OperationResult.fail("Mission not found or missing businessId")
            participation = Participation(
                id=None,
                mission_id=mission_id,
                user_id=user_id,
                business_id=mission.business_id,
                status=PARTICIPATION_PENDING,
                submitted_at=utc_now_iso(),
            )
            participation_id = await self.repository.add_participation(participation)
        except Exception as error:
            logger.exception("Error applying user %s to mission %s", user_id, mission_id)
            return OperationResult.fail(error_message(error, "Failed to apply to mission"))
        logger.info("User %s applied to mission %s (participation %s)", user_id, mission_id, participation_id)
        return OperationResult.ok(participation_id)

    async def submit_mission_proof(
        self,
        participation_id: str,
        proof_url: str | None = None,
        proof_text: str | None = None,
    ) -> OperationResult:
        fields = _without_none(
            {
                "proofUrl": proof_url,
                "proofText": proof_text,
                "status": PARTICIPATION_PENDING_APPROVAL,
                "submittedAt": utc_now_iso(),
            }
        )
        try:
            await self.repository.update_participation(participation_id, fields)
        except Exception as error:
            logger.exception("Error submitting proof for participation %s", participation_id)
            return OperationResult.fail(error_message(error, "Failed to submit proof"))
        return OperationResult.ok(participation_id)

    async def review_participation(
        self,
        participation_id: str,
        approved: bool,
        feedback: str | None = None,
    ) -> OperationResult:
        fields = _without_none(
            {
                "status": PARTICIPATION_APPROVED if approved else PARTICIPATION_REJECTED,
                "reviewedAt": utc_now_iso(),
                "feedback": feedback,
            }
        )
        mission = None
        try:
            if approved:
                mission = await self.repository.approve_participation(participation_id, fields)
            else:
                await self.repository.update_participation(participation_id, fields)
        except Exception as error:
            logger.exception("Error reviewing participation %s", participation_id)
            return OperationResult.fail(error_message(error, "Failed to review participation"))
        if mission is not None:
            logger.info(
                "Mission %s participants: %s/%s (%s)",
                mission.id,
                mission.current_participants,
                mission.max_participants or "unlimited",
                mission.lifecycle_status,
            )
        return OperationResult.ok(participation_id)

    async def get_mission_participations(self, mission_id: str, status: str | None = None) -> list[Participation]:
        try:
            return await self.repository.list_participations(
                mission_id=mission_id,
                status=status.upper() if status else None,
            )
        except Exception:
            logger.exception("Error fetching participations for mission %s", mission_id)
            return []

    async def get_user_participations(self, user_id: str, status: str | None = None) -> list[Participation]:
        try:
            return await self.repository.list_participations(
                user_id=user_id,
                status=status.upper() if status else None,
            )
        except Exception:
            logger.exception("Error fetching participations for user %s", user_id)
            return []

    async def get_mission_stats(self, business_id: str) -> MissionStats:
        stats = MissionStats()
        try:
            missions = await self.repository.list_missions_by_business(business_id)
            for mission in missions:
                if mission.lifecycle_status == LIFECYCLE_ACTIVE:
                    stats.active_missions += 1
                elif mission.lifecycle_status == LIFECYCLE_COMPLETED:
                    stats.completed_missions += 1
                if not mission.id:
                    continue
                participations = await self.repository.list_participations(mission_id=mission.id)
                stats.total_applications += len(participations)
                stats.pending_reviews += sum(1 for item in participations if item.status == PARTICIPATION_APPROVED)
            stats.total_missions = len(missions)
        except Exception:
            logger.exception("Error fetching mission stats for business %s", business_id)
            return MissionStats()
        return stats

    async def get_business_planning(self, business_id: str, mission_goal: str | None = None) -> dict[str, Any] | None:
        """Participant cap and maturity boosts for a business's mission form.

        ``goalBoost`` scores ``mission_goal`` against the business's main goal.
        """
        try:
            profile = await self.repository.store.get(USERS_COLLECTION, business_id)
        except Exception:
            logger.exception("Error fetching business profile %s", business_id)
            return None
        if profile is None:
            return None
        tier = profile.get("subscriptionLevel")
        maturity = get_maturity_boost(profile)
        return {
            "businessId": business_id,
            "subscriptionLevel": tier or "FREE",
            "maxParticipants": get_max_participants_by_subscription(tier),
            "maturity": maturity.to_dict(),
            "goalBoost": maturity.goal_boost(mission_goal),
        }
