"""Mission domain models and document mapping."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

PRIORITY_HIGH = "HIGH"
PRIORITY_MEDIUM = "MEDIUM"
PRIORITY_LOW = "LOW"
PRIORITIES = (PRIORITY_HIGH, PRIORITY_MEDIUM, PRIORITY_LOW)

BUSINESS_TYPE_ONLINE = "ONLINE"

GEO_SCOPE_CITY = "CITY"
GEO_SCOPE_REGION = "REGION"
GEO_SCOPE_COUNTRY = "COUNTRY"
GEO_SCOPE_MULTI_COUNTRY = "MULTI_COUNTRY"
GEO_SCOPE_GLOBAL = "GLOBAL"
GEO_SCOPES = {GEO_SCOPE_CITY, GEO_SCOPE_REGION, GEO_SCOPE_COUNTRY, GEO_SCOPE_MULTI_COUNTRY, GEO_SCOPE_GLOBAL}

LIFECYCLE_DRAFT = "DRAFT"
LIFECYCLE_ACTIVE = "ACTIVE"
LIFECYCLE_PAUSED = "PAUSED"
LIFECYCLE_COMPLETED = "COMPLETED"

PARTICIPATION_PENDING = "PENDING"
PARTICIPATION_PENDING_APPROVAL = "PENDING_APPROVAL"
PARTICIPATION_APPROVED = "APPROVED"
PARTICIPATION_REJECTED = "REJECTED"
PARTICIPATION_STATUSES = {
    PARTICIPATION_PENDING,
    PARTICIPATION_PENDING_APPROVAL,
    PARTICIPATION_APPROVED,
    PARTICIPATION_REJECTED,
}

MISSIONS_COLLECTION = "missions"
PARTICIPATIONS_COLLECTION = "participations"
USERS_COLLECTION = "users"


def _as_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _as_upper(value: Any) -> str | None:
    text = _as_str(value)
    return text.upper() if text else None


def _as_int(value: Any, default: int | None = None) -> int | None:
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _as_str_list(value: Any) -> list[str] | None:
    if value is None:
        return None
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple, set)):
        return None
    return [str(item).strip() for item in value if str(item).strip()]


def _as_upper_list(value: Any) -> list[str] | None:
    items = _as_str_list(value)
    return [item.upper() for item in items] if items is not None else None


def _drop_none(data: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in data.items() if value is not None}


@dataclass(slots=True)
class GeoPoint:
    latitude: float
    longitude: float
    # address, city, district and other descriptive keys
    extra: dict[str, Any] = field(default_factory=dict)

    COORDINATE_KEYS = frozenset({"latitude", "longitude", "lat", "lon", "lng"})

    @classmethod
    def from_value(cls, raw: Any) -> "GeoPoint | None":
        """Accept ``{latitude, longitude}`` / ``{lat, lon}`` mappings or a pair."""
        if raw is None:
            return None
        if isinstance(raw, GeoPoint):
            return raw
        extra: dict[str, Any] = {}
        if isinstance(raw, dict):
            lat = _as_float(raw.get("latitude", raw.get("lat")))
            lon = _as_float(raw.get("longitude", raw.get("lon", raw.get("lng"))))
            extra = {key: value for key, value in raw.items() if key not in cls.COORDINATE_KEYS}
        elif isinstance(raw, (list, tuple)) and len(raw) == 2:
            lat, lon = _as_float(raw[0]), _as_float(raw[1])
        else:
            return None
        if lat is None or lon is None:
            return None
        if not (-90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0):
            return None
        return cls(latitude=lat, longitude=lon, extra=extra)

    def to_document(self) -> dict[str, Any]:
        data = dict(self.extra)
        data.update({"latitude": self.latitude, "longitude": self.longitude})
        return data


@dataclass(slots=True)
class Reward:
    points: int = 0
    type: str = "POINTS"
    item_description: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    KNOWN_KEYS = frozenset({"points", "type", "itemDescription"})

    @classmethod
    def from_value(cls, raw: Any) -> "Reward | None":
        if not isinstance(raw, dict):
            return None
        return cls(
            points=_as_int(raw.get("points"), 0) or 0,
            type=_as_str(raw.get("type")) or "POINTS",
            item_description=_as_str(raw.get("itemDescription")),
            extra={key: value for key, value in raw.items() if key not in cls.KNOWN_KEYS},
        )

    def to_document(self) -> dict[str, Any]:
        data = dict(self.extra)
        data.update(
            _drop_none({"type": self.type, "points": self.points, "itemDescription": self.item_description})
        )
        return data


@dataclass(slots=True)
class Mission:
    id: str | None = None
    business_id: str = ""
    business_name: str | None = None
    title: str = ""
    description: str = ""
    mission_type: str | None = None
    category: str | None = None
    target_categories: list[str] = field(default_factory=list)
    target_level: list[str] | None = None  # None: open to every level
    goal: str | None = None
    reward: Reward | None = None
    budget: float | None = None
    max_participants: int | None = None
    current_participants: int = 0
    approval_required: bool = False
    auto_approve: bool = False
    valid_until: str | None = None
    created_at: str | None = None
    city: str | None = None
    country: str | None = None
    business_type: str | None = None
    geo_scope: str | None = None
    target_countries: list[str] = field(default_factory=list)
    geo: GeoPoint | None = None
    lifecycle_status: str = LIFECYCLE_DRAFT
    is_active: bool = False
    priority: str | None = None
    priority_score: float | None = None
    trigger_type: str = "MANUAL"
    extra: dict[str, Any] = field(default_factory=dict)

    # Document keys mapped onto typed fields; everything else is kept in ``extra``.
    KNOWN_KEYS = frozenset(
        {
            "id", "businessId", "businessName", "title", "description", "type", "category",
            "targetCategories", "targetLevel", "goal", "reward", "budget", "maxParticipants",
            "currentParticipants", "approvalRequired", "autoApprove", "validUntil", "createdAt",
            "city", "country", "businessType", "geoScope", "targetCountries", "geo",
            "lifecycleStatus", "isActive", "priority", "priorityScore", "triggerType",
        }
    )

    @classmethod
    def from_document(cls, doc_id: str | None, data: dict[str, Any]) -> "Mission":
        priority = _as_upper(data.get("priority"))
        if priority is not None and priority not in PRIORITIES:
            logger.warning("Mission %s has unknown priority %r", doc_id, priority)
            priority = None
        geo_scope = _as_upper(data.get("geoScope"))
        if geo_scope is not None and geo_scope not in GEO_SCOPES:
            logger.warning("Mission %s has unknown geoScope %r", doc_id, geo_scope)
            geo_scope = None
        return cls(
            id=doc_id or _as_str(data.get("id")),
            business_id=_as_str(data.get("businessId")) or "",
            business_name=_as_str(data.get("businessName")),
            title=str(data.get("title") or ""),
            description=str(data.get("description") or ""),
            mission_type=_as_upper(data.get("type")),
            category=_as_str(data.get("category")),
            target_categories=_as_str_list(data.get("targetCategories")) or [],
            target_level=_as_upper_list(data.get("targetLevel")),
            goal=_as_upper(data.get("goal")),
            reward=Reward.from_value(data.get("reward")),
            budget=_as_float(data.get("budget")),
            max_participants=_as_int(data.get("maxParticipants")),
            current_participants=_as_int(data.get("currentParticipants"), 0) or 0,
            approval_required=bool(data.get("approvalRequired")),
            auto_approve=bool(data.get("autoApprove")),
            valid_until=_as_str(data.get("validUntil")),
            created_at=_as_str(data.get("createdAt")),
            city=_as_str(data.get("city")),
            country=_as_str(data.get("country")),
            business_type=_as_upper(data.get("businessType")),
            geo_scope=geo_scope,
            target_countries=_as_str_list(data.get("targetCountries")) or [],
            geo=GeoPoint.from_value(data.get("geo")),
            lifecycle_status=_as_upper(data.get("lifecycleStatus")) or LIFECYCLE_DRAFT,
            is_active=bool(data.get("isActive")),
            priority=priority,
            priority_score=_as_float(data.get("priorityScore")),
            trigger_type=_as_upper(data.get("triggerType")) or "MANUAL",
            extra={key: value for key, value in data.items() if key not in cls.KNOWN_KEYS},
        )

    def to_document(self) -> dict[str, Any]:
        """Store representation; ``None`` values are dropped."""
        data = dict(self.extra)
        data.update(
            _drop_none(
                {
                    "businessId": self.business_id,
                    "businessName": self.business_name,
                    "title": self.title,
                    "description": self.description,
                    "type": self.mission_type,
                    "category": self.category,
                    "targetCategories": list(self.target_categories),
                    "targetLevel": list(self.target_level) if self.target_level is not None else None,
                    "goal": self.goal,
                    "reward": self.reward.to_document() if self.reward else None,
                    "budget": self.budget,
                    "maxParticipants": self.max_participants,
                    "currentParticipants": self.current_participants,
                    "approvalRequired": self.approval_required,
                    "autoApprove": self.auto_approve,
                    "validUntil": self.valid_until,
                    "createdAt": self.created_at,
                    "city": self.city,
                    "country": self.country,
                    "businessType": self.business_type,
                    "geoScope": self.geo_scope,
                    "targetCountries": list(self.target_countries),
                    "geo": self.geo.to_document() if self.geo else None,
                    "lifecycleStatus": self.lifecycle_status,
                    "isActive": self.is_active,
                    "priority": self.priority,
                    "priorityScore": self.priority_score,
                    "triggerType": self.trigger_type,
                }
            )
        )
        return data

    def to_dict(self) -> dict[str, Any]:
        """API representation: the store document plus its id."""
        data = self.to_document()
        data["id"] = self.id
        return data


@dataclass(slots=True)
class Participation:
    id: str | None
    mission_id: str
    user_id: str
    business_id: str
    status: str = PARTICIPATION_PENDING
    submitted_at: str | None = None
    reviewed_at: str | None = None
    feedback: str | None = None
    proof_url: str | None = None
    proof_text: str | None = None

    @classmethod
    def from_document(cls, doc_id: str | None, data: dict[str, Any]) -> "Participation":
        status = _as_upper(data.get("status")) or PARTICIPATION_PENDING
        if status not in PARTICIPATION_STATUSES:
            logger.warning("Participation %s has unknown status %r", doc_id, status)
        return cls(
            id=doc_id,
            mission_id=_as_str(data.get("missionId")) or "",
            user_id=_as_str(data.get("userId")) or "",
            business_id=_as_str(data.get("businessId")) or "",
            status=status,
            submitted_at=_as_str(data.get("submittedAt")),
            reviewed_at=_as_str(data.get("reviewedAt")),
            feedback=_as_str(data.get("feedback")),
            proof_url=_as_str(data.get("proofUrl")),
            proof_text=_as_str(data.get("proofText")),
        )

    def to_document(self) -> dict[str, Any]:
        return _drop_none(
            {
                "missionId": self.mission_id,
                "userId": self.user_id,
                "businessId": self.business_id,
                "status": self.status,
                "submittedAt": self.submitted_at,
                "reviewedAt": self.reviewed_at,
                "feedback": self.feedback,
                "proofUrl": self.proof_url,
                "proofText": self.proof_text,
            }
        )

    def to_dict(self) -> dict[str, Any]:
        data = self.to_document()
        data["id"] = self.id
        return data


@dataclass(slots=True)
class UserContext:
    """Per-user signals the ranker and the scope check consume."""

    user_id: str = ""
    interests: list[str] = field(default_factory=list)
    level: str | None = None
    location: GeoPoint | None = None
    city: str | None = None
    country: str | None = None

    @classmethod
    def from_document(cls, user_id: str, data: dict[str, Any]) -> "UserContext":
        return cls(
            user_id=user_id,
            interests=_as_str_list(data.get("interests")) or [],
            level=_as_upper(data.get("level")),
            location=GeoPoint.from_value(data.get("location") or data.get("geo")),
            city=_as_str(data.get("city")),
            country=_as_str(data.get("country")),
        )
