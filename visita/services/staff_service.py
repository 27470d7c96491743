"""
Staff registration and approval.

New staff register into a ``pending`` profile. Approval flips the profile to
``active``. Both steps announce themselves through the notification engine;
those notifications are best-effort and never fail the registration.

Approval rules:
    - diocesan_office approves anyone in its own diocese
    - an active parish account approves parish staff of the same parish
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timezone

from visita.core.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from visita.models.church import DIOCESES, ROLES, Actor, Role
from visita.models.notification import ViewingUser
from visita.models.staff import USERS, StaffStatus, actor_from_profile
from visita.services.notification_engine import NotificationEngine
from visita.store import EQUALS, Filter

logger = logging.getLogger(__name__)

_REQUIRED = ("name", "email", "role", "diocese")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StaffService:
    def __init__(self, store, engine: NotificationEngine, *,
                 clock: Callable[[], datetime] | None = None) -> None:
        self.store = store
        self.engine = engine
        self.clock = clock or _utcnow

    # ── Lookup ──────────────────────────────────────────────────────────

    def get_profile(self, uid: str) -> dict | None:
        if not uid:
            return None
        return self.store.get(USERS, uid)

    def get_active_profile(self, uid: str) -> dict | None:
        profile = self.get_profile(uid)
        if profile is None or profile.get("status") != StaffStatus.ACTIVE.value:
            return None
        return profile

    def get_viewing_user(self, uid: str) -> ViewingUser | None:
        """Active staff member ``uid`` as a notification viewer, or None."""
        profile = self.get_active_profile(uid)
        return ViewingUser.from_profile(profile) if profile else None

    def get_actor(self, uid: str) -> Actor | None:
        profile = self.get_active_profile(uid)
        return actor_from_profile(profile) if profile else None

    def _parish_approvers(self, parish_id: str) -> list[str]:
        docs = self.store.query(USERS, [
            Filter("parishId", EQUALS, parish_id),
            Filter("role", EQUALS, Role.PARISH.value),
            Filter("status", EQUALS, StaffStatus.ACTIVE.value),
        ])
        return [doc["id"] for doc in docs]

    # ── Registration ────────────────────────────────────────────────────

    def register_staff(self, data: dict) -> dict:
        """Create a pending staff profile and notify whoever can approve it."""
        missing = [f for f in _REQUIRED if not str(data.get(f) or "").strip()]
        if missing:
            raise ValidationError(
                f"Missing required field(s): {', '.join(missing)}",
                details={f: "required" for f in missing},
            )
        role = data["role"]
        if role not in ROLES:
            raise ValidationError(f"role must be one of {sorted(ROLES)}", details={"role": role})
        if data["diocese"] not in DIOCESES:
            raise ValidationError(
                f"diocese must be one of {sorted(DIOCESES)}", details={"diocese": data["diocese"]},
            )
        if role == Role.PARISH.value and not data.get("parishId"):
            raise ValidationError("parishId is required for parish staff",
                                  details={"parishId": "required"})

        uid = data.get("uid") or uuid.uuid4().hex
        if self.store.get(USERS, uid) is not None:
            raise ConflictError("Staff", "uid", uid)

        now = self.clock()
        profile = {
            "name": data["name"].strip(),
            "email": data["email"].strip().lower(),
            "role": role,
            "diocese": data["diocese"],
            "parishId": data.get("parishId"),
            "parishName": data.get("parishName"),
            "position": data.get("position"),
            "status": StaffStatus.PENDING.value,
            "createdAt": now.isoformat(),
        }
        self.store.create(USERS, profile, doc_id=uid, created_at=now)
        profile = {**profile, "id": uid}
        logger.info("Staff %s registered as %s (pending)", uid, role, extra={"user_id": uid})

        approvers = []
        if role == Role.PARISH.value:
            approvers = [a for a in self._parish_approvers(profile["parishId"]) if a != uid]
        result = self.engine.notify_account_pending_approval({**profile, "uid": uid}, approvers)
        if not result.ok:
            logger.warning("Registration notice for %s not delivered: %s",
                           uid, [f.to_dict() for f in result.failures], extra={"user_id": uid})
        return profile

    # ── Approval ────────────────────────────────────────────────────────

    def _can_approve(self, approver: dict, staff: dict) -> bool:
        if approver.get("role") == Role.DIOCESAN_OFFICE.value:
            return approver.get("diocese") == staff.get("diocese")
        if approver.get("role") == Role.PARISH.value and staff.get("role") == Role.PARISH.value:
            return bool(staff.get("parishId")) and approver.get("parishId") == staff.get("parishId")
        return False

    def approve_staff(self, uid: str, approver_uid: str) -> dict:
        """Activate a pending profile. Approving an active profile is a no-op."""
        staff = self.get_profile(uid)
        if staff is None:
            raise NotFoundError(resource="Staff", resource_id=uid)
        approver = self.get_active_profile(approver_uid)
        if approver is None or not self._can_approve(approver, staff):
            raise PermissionDeniedError(f"Not allowed to approve staff account '{uid}'")
        if staff.get("status") == StaffStatus.ACTIVE.value:
            return staff

        actor = actor_from_profile(approver)
        updated = self.store.update(USERS, uid, {
            "status": StaffStatus.ACTIVE.value,
            "approvedBy": actor.to_dict(),
            "approvedAt": self.clock().isoformat(),
        })
        logger.info("Staff %s approved by %s", uid, actor.id, extra={"user_id": actor.id})

        result = self.engine.notify_account_approved(uid, actor)
        if not result.ok:
            logger.warning("Approval notice for %s not delivered", uid, extra={"user_id": uid})
        return updated
