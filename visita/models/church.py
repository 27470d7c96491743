"""
VISITA Church Registry
Church domain types.

Types:
    - ChurchStatus / Diocese / Classification / Role: closed value sets
    - ChurchRecord: one heritage site's administrative lifecycle
    - Actor: the staff member performing an action
    - TransitionDescriptor: ephemeral record of a requested status change
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

CHURCHES = "churches"
STATUS_AUDIT = "church_status_audit"
FEEDBACK = "feedback"


class ChurchStatus(str, Enum):
    DRAFT = "draft"
    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    HERITAGE_REVIEW = "heritage_review"
    APPROVED = "approved"
    NEEDS_REVISION = "needs_revision"
    REJECTED = "rejected"


class Diocese(str, Enum):
    TAGBILARAN = "tagbilaran"
    TALIBON = "talibon"


class Classification(str, Enum):
    """Heritage designation. ICP and NCT route through heritage review."""
    NON_HERITAGE = "non_heritage"
    ICP = "icp"    # Important Cultural Property
    NCT = "nct"    # National Cultural Treasure

    @property
    def is_heritage(self) -> bool:
        return self in (Classification.ICP, Classification.NCT)


class Role(str, Enum):
    PARISH = "parish"
    DIOCESAN_OFFICE = "diocesan_office"
    HERITAGE_REVIEWER = "heritage_reviewer"


# Heritage reviewers (museum staff) serve both dioceses
CROSS_DIOCESE_ROLES = frozenset({Role.HERITAGE_REVIEWER.value})


CHURCH_STATUSES = {s.value for s in ChurchStatus}
DIOCESES = {d.value for d in Diocese}
CLASSIFICATIONS = {c.value for c in Classification}
ROLES = {r.value for r in Role}


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def parse_timestamp(value) -> datetime | None:
    """Parse an ISO-8601 string (or pass through a datetime) as UTC-aware."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(str(value))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


@dataclass(frozen=True)
class Actor:
    """Staff member performing an action."""
    id: str
    display_name: str
    role: str
    diocese: str | None = None

    def to_dict(self) -> dict:
        return {"uid": self.id, "name": self.display_name, "role": self.role}


@dataclass
class ChurchRecord:
    id: str
    name: str
    diocese: str
    status: str = ChurchStatus.DRAFT.value
    classification: str = Classification.NON_HERITAGE.value
    created_by: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_heritage(self) -> bool:
        return Classification(self.classification).is_heritage

    def to_document(self) -> dict:
        """Store shape (camelCase keys, ISO timestamps)."""
        return {
            "name": self.name,
            "status": self.status,
            "diocese": self.diocese,
            "classification": self.classification,
            "createdBy": self.created_by,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }

    @classmethod
    def from_document(cls, doc: dict) -> "ChurchRecord":
        return cls(
            id=doc["id"],
            name=doc.get("name", ""),
            diocese=doc.get("diocese", ""),
            status=doc.get("status", ChurchStatus.DRAFT.value),
            classification=doc.get("classification", Classification.NON_HERITAGE.value),
            created_by=doc.get("createdBy"),
            created_at=parse_timestamp(doc.get("createdAt")),
            updated_at=parse_timestamp(doc.get("updatedAt")),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status,
            "diocese": self.diocese,
            "classification": self.classification,
            "is_heritage": self.is_heritage,
            "created_by": self.created_by,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


@dataclass(frozen=True)
class TransitionDescriptor:
    """What was requested: consumed by the notification engine, never stored as-is."""
    church_id: str
    church_name: str
    from_status: str
    to_status: str
    actor: Actor
    diocese: str
    note: str | None = None

    def template_values(self) -> dict:
        """Placeholder values for notification templates."""
        values = {
            "churchId": self.church_id,
            "churchName": self.church_name,
            "fromStatus": self.from_status,
            "toStatus": self.to_status,
            "actorName": self.actor.display_name,
            "actorRole": self.actor.role,
            "diocese": self.diocese,
        }
        if self.note:
            values["note"] = self.note
        return values


@dataclass
class StatusChangeAudit:
    """Append-only audit entry for an applied status change."""
    church_id: str
    from_status: str
    to_status: str
    changed_by: Actor
    diocese: str | None = None
    note: str | None = None
    is_automated: bool = False
    metadata: dict = field(default_factory=dict)

    def to_document(self, timestamp: datetime) -> dict:
        return {
            "churchId": self.church_id,
            "fromStatus": self.from_status,
            "toStatus": self.to_status,
            "changedBy": self.changed_by.to_dict(),
            "diocese": self.diocese,
            "note": self.note,
            "isAutomated": self.is_automated,
            "metadata": self.metadata,
            "timestamp": timestamp.isoformat(),
        }
