"""
VISITA Church Registry
Notification domain types.

Types:
    - NotificationType / NotificationPriority: closed value sets
    - Recipients: ByUser | ByRole | ByRoleAndParish (stored targeting rule)
    - NotificationRecord: the unit of delivery, with per-viewer read tracking
    - ViewingUser: principal against which recipient rules are evaluated
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Union

from visita.models.church import parse_timestamp

NOTIFICATIONS = "notifications"


class NotificationType(str, Enum):
    CHURCH_SUBMITTED = "church_submitted"
    HERITAGE_REVIEW_ASSIGNED = "heritage_review_assigned"
    HERITAGE_VALIDATED = "heritage_validated"
    REVISION_REQUESTED = "revision_requested"
    CHURCH_APPROVED = "church_approved"
    CHURCH_UNPUBLISHED = "church_unpublished"
    WORKFLOW_ERROR = "workflow_error"
    SYSTEM_NOTIFICATION = "system_notification"
    ACCOUNT_PENDING_APPROVAL = "account_pending_approval"
    ACCOUNT_APPROVED = "account_approved"
    FEEDBACK_RECEIVED = "feedback_received"


class NotificationPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


NOTIFICATION_TYPES = {t.value for t in NotificationType}
NOTIFICATION_PRIORITIES = {p.value for p in NotificationPriority}

# Types whose visibility is narrowed to one parish for parish viewers.
# Any type not listed here is diocese-wide for parish viewers.
PARISH_SCOPED_TYPES = frozenset({
    NotificationType.CHURCH_APPROVED.value,
    NotificationType.CHURCH_UNPUBLISHED.value,
    NotificationType.REVISION_REQUESTED.value,
    NotificationType.HERITAGE_REVIEW_ASSIGNED.value,
    NotificationType.HERITAGE_VALIDATED.value,
    NotificationType.ACCOUNT_PENDING_APPROVAL.value,
    NotificationType.FEEDBACK_RECEIVED.value,
})


# ── Recipient rules ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ByUser:
    """Explicit user ids."""
    user_ids: frozenset[str]

    def to_document(self) -> dict:
        return {"userIds": sorted(self.user_ids)}


@dataclass(frozen=True)
class ByRole:
    """Every holder of any of ``roles``, optionally narrowed to ``dioceses``."""
    roles: frozenset[str]
    dioceses: frozenset[str] = frozenset()

    def to_document(self) -> dict:
        doc = {"roles": sorted(self.roles)}
        if self.dioceses:
            doc["dioceses"] = sorted(self.dioceses)
        return doc


@dataclass(frozen=True)
class ByRoleAndParish:
    """Role/diocese rule further narrowed to a single parish."""
    roles: frozenset[str]
    dioceses: frozenset[str]
    parish_id: str

    def to_document(self) -> dict:
        return {
            "roles": sorted(self.roles),
            "dioceses": sorted(self.dioceses),
            "parishId": self.parish_id,
        }


Recipients = Union[ByUser, ByRole, ByRoleAndParish]


def by_user(*user_ids: str) -> ByUser:
    return ByUser(frozenset(user_ids))


def by_role(roles, dioceses=(), parish_id: str | None = None) -> Recipients:
    """Build the narrowest role rule for the given arguments."""
    roles = frozenset(roles)
    dioceses = frozenset(d for d in dioceses if d)
    if parish_id:
        return ByRoleAndParish(roles, dioceses, parish_id)
    return ByRole(roles, dioceses)


def recipients_from_document(doc: dict | None) -> Recipients:
    """Rebuild the tagged rule from its stored shape.

    Raises:
        ValueError: if the stored shape names neither users nor roles.
    """
    doc = doc or {}
    if doc.get("roles"):
        return by_role(doc["roles"], doc.get("dioceses") or (), doc.get("parishId"))
    if doc.get("userIds"):
        return ByUser(frozenset(doc["userIds"]))
    raise ValueError(f"Recipient rule names neither userIds nor roles: {doc!r}")


# ── Records ──────────────────────────────────────────────────────────────────


@dataclass
class NotificationRecord:
    type: str
    priority: str
    title: str
    message: str
    recipients: Recipients
    created_at: datetime
    related_data: dict = field(default_factory=dict)
    read_by: frozenset[str] = frozenset()
    action_url: str | None = None
    metadata: dict = field(default_factory=dict)
    id: str | None = None

    def is_read_by(self, uid: str) -> bool:
        return uid in self.read_by

    def to_document(self) -> dict:
        return {
            "type": self.type,
            "priority": self.priority,
            "title": self.title,
            "message": self.message,
            "recipients": self.recipients.to_document(),
            "relatedData": self.related_data,
            "createdAt": self.created_at.isoformat(),
            "readBy": sorted(self.read_by),
            "actionUrl": self.action_url,
            "metadata": self.metadata,
        }

    @classmethod
    def from_document(cls, doc: dict) -> "NotificationRecord":
        created_at = parse_timestamp(doc.get("createdAt"))
        if created_at is None:
            raise ValueError("notification has no createdAt")
        return cls(
            id=doc.get("id"),
            type=doc["type"],
            priority=doc.get("priority", NotificationPriority.MEDIUM.value),
            title=doc.get("title", ""),
            message=doc.get("message", ""),
            recipients=recipients_from_document(doc.get("recipients")),
            created_at=created_at,
            related_data=doc.get("relatedData") or {},
            read_by=frozenset(doc.get("readBy") or ()),
            action_url=doc.get("actionUrl"),
            metadata=doc.get("metadata") or {},
        )

    def to_dict(self, viewer_uid: str | None = None) -> dict:
        data = {"id": self.id, **self.to_document()}
        if viewer_uid is not None:
            data["is_read"] = self.is_read_by(viewer_uid)
        return data

    def __repr__(self):
        return f"<NotificationRecord {self.id}: {self.type} {self.title[:40]!r}>"


@dataclass(frozen=True)
class ViewingUser:
    uid: str
    role: str
    diocese: str | None = None
    parish_id: str | None = None

    @classmethod
    def from_profile(cls, profile: dict) -> "ViewingUser":
        return cls(
            uid=profile["id"],
            role=profile.get("role", ""),
            diocese=profile.get("diocese"),
            parish_id=profile.get("parishId"),
        )
