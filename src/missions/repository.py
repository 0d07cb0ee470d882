"""Persistence helpers for the missions module."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from database import DocumentNotFoundError, DocumentStore, Filter
from missions.models import (
    LIFECYCLE_ACTIVE,
    LIFECYCLE_COMPLETED,
    MISSIONS_COLLECTION,
    PARTICIPATION_APPROVED,
    PARTICIPATIONS_COLLECTION,
    Mission,
    Participation,
)


class MissionRepository:
    """Mission and participation reads/writes over the document store."""

    def __init__(self, store: DocumentStore | None = None) -> None:
        self.store = store or DocumentStore()

    async def add_mission(self, data: Mapping[str, Any]) -> str:
        return await self.store.add(MISSIONS_COLLECTION, data)

    async def get_mission(self, mission_id: str) -> Mission | None:
        data = await self.store.get(MISSIONS_COLLECTION, mission_id)
        if data is None:
            return None
        return Mission.from_document(mission_id, data)

    async def update_mission(self, mission_id: str, fields: Mapping[str, Any]) -> None:
        await self.store.update(MISSIONS_COLLECTION, mission_id, fields)

    async def delete_mission(self, mission_id: str) -> bool:
        return await self.store.delete(MISSIONS_COLLECTION, mission_id)

    async def list_missions_by_business(self, business_id: str, *, status: str | None = None) -> list[Mission]:
        filters: list[Filter] = [("businessId", "==", business_id)]
        if status:
            filters.append(("lifecycleStatus", "==", status))
        docs = await self.store.query(MISSIONS_COLLECTION, filters, order_by="createdAt", descending=True)
        return [Mission.from_document(doc.id, doc.data) for doc in docs]

    async def list_active_missions(self, *, category: str | None = None, limit: int = 20) -> list[Mission]:
        filters: list[Filter] = [
            ("lifecycleStatus", "==", LIFECYCLE_ACTIVE),
            ("isActive", "==", True),
        ]
        if category:
            filters.append(("category", "==", category))
        docs = await self.store.query(
            MISSIONS_COLLECTION,
            filters,
            order_by="createdAt",
            descending=True,
            limit=limit,
        )
        return [Mission.from_document(doc.id, doc.data) for doc in docs]

    async def add_participation(self, participation: Participation) -> str:
        return await self.store.add(PARTICIPATIONS_COLLECTION, participation.to_document())

    async def approve_participation(self, participation_id: str, fields: Mapping[str, Any]) -> Mission | None:
        """Apply an approval and count it against the mission's capacity.

        A mission that reaches maxParticipants becomes COMPLETED and inactive.
        Returns the updated mission, or None when nothing was counted (already
        approved, or the mission is gone).
        """
        async with self.store.transaction() as tx:
            current = await tx.get(PARTICIPATIONS_COLLECTION, participation_id)
            if current is None:
                raise DocumentNotFoundError(f"{PARTICIPATIONS_COLLECTION}/{participation_id} not found")
            await tx.update(PARTICIPATIONS_COLLECTION, participation_id, fields)
            if str(current.get("status") or "").upper() == PARTICIPATION_APPROVED:
                return None
            mission_id = str(current.get("missionId") or "")
            data = await tx.get(MISSIONS_COLLECTION, mission_id) if mission_id else None
            if data is None:
                return None

            mission = Mission.from_document(mission_id, data)
            mission.current_participants += 1
            updates: dict[str, Any] = {"currentParticipants": mission.current_participants}
            if mission.max_participants and mission.current_participants >= mission.max_participants:
                mission.lifecycle_status = LIFECYCLE_COMPLETED
                mission.is_active = False
                updates.update({"lifecycleStatus": LIFECYCLE_COMPLETED, "isActive": False})
            await tx.update(MISSIONS_COLLECTION, mission_id, updates)
        return mission

    async def update_participation(self, participation_id: str, fields: Mapping[str, Any]) -> None:
        await self.store.update(PARTICIPATIONS_COLLECTION, participation_id, fields)

    async def list_participations(
        self,
        *,
        mission_id: str | None = None,
        user_id: str | None = None,
        status: str | None = None,
    ) -> list[Participation]:
        filters: list[Filter] = []
        if mission_id:
            filters.append(("missionId", "==", mission_id))
        if user_id:
            filters.append(("userId", "==", user_id))
        if status:
            filters.append(("status", "==", status))
        docs = await self.store.query(
            PARTICIPATIONS_COLLECTION,
            filters,
            order_by="submittedAt",
            descending=True,
        )
        return [Participation.from_document(doc.id, doc.data) for doc in docs]
