"""
Church Workflow Service

The only writer of a church's ``status``. Every change goes through the
state machine first; a rejected change raises TransitionError and leaves
the record untouched.

Order of operations for an applied change:
    1. load church
    2. validate (role, table, note, heritage condition)  → TransitionError
    3. write status (own commit)
    4. append audit entry (best-effort)
    5. hand the TransitionDescriptor to the notification engine (best-effort)

Steps 4 and 5 never undo step 3. Concurrent writers are last-write-wins.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone

from visita.core.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    TransitionError,
    ValidationError,
)
from visita.models.church import (
    CHURCH_STATUSES,
    CHURCHES,
    CLASSIFICATIONS,
    CROSS_DIOCESE_ROLES,
    DIOCESES,
    STATUS_AUDIT,
    Actor,
    ChurchRecord,
    ChurchStatus,
    Classification,
    Role,
    StatusChangeAudit,
    TransitionDescriptor,
)
from visita.services.notification_engine import DeliveryResult, NotificationEngine
from visita.services.workflow_state_machine import (
    ChurchWorkflowStateMachine,
    TransitionContext,
)
from visita.store import EQUALS, Filter

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ChurchWorkflowService:
    """Applies church status changes and triggers their notifications."""

    def __init__(
        self,
        store,
        engine: NotificationEngine,
        state_machine: ChurchWorkflowStateMachine | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.engine = engine
        self.state_machine = state_machine or ChurchWorkflowStateMachine()
        self.clock = clock or _utcnow

    # ── Reads ───────────────────────────────────────────────────────────

    def get_church(self, church_id: str) -> ChurchRecord:
        doc = self.store.get(CHURCHES, church_id)
        if doc is None:
            raise NotFoundError(resource="Church", resource_id=church_id)
        return ChurchRecord.from_document(doc)

    def list_churches(self, *, diocese: str | None = None, status: str | None = None,
                      limit: int | None = None) -> list[ChurchRecord]:
        filters = []
        if diocese:
            filters.append(Filter("diocese", EQUALS, diocese))
        if status:
            filters.append(Filter("status", EQUALS, status))
        docs = self.store.query(CHURCHES, filters, limit=limit)
        return [ChurchRecord.from_document(doc) for doc in docs]

    def list_next_actions(self, church_id: str, role: str) -> dict:
        church = self.get_church(church_id)
        return {
            "church_id": church.id,
            "status": church.status,
            "status_info": self.state_machine.status_info(church.status),
            "actions": self.state_machine.next_actions(
                church.status, role, is_heritage=church.is_heritage,
            ),
        }

    # ── Create ──────────────────────────────────────────────────────────

    def create_church(
        self,
        name: str,
        diocese: str,
        actor: Actor,
        *,
        classification: str = Classification.NON_HERITAGE.value,
        church_id: str | None = None,
    ) -> ChurchRecord:
        """Register a church in ``draft``. Only parish accounts create churches."""
        if actor.role != Role.PARISH.value:
            raise PermissionDeniedError("Only parish accounts can register a church")

        name = (name or "").strip()
        if not name:
            raise ValidationError("name is required", details={"name": "required"})
        if diocese not in DIOCESES:
            raise ValidationError(
                f"diocese must be one of {sorted(DIOCESES)}", details={"diocese": diocese},
            )
        if classification not in CLASSIFICATIONS:
            raise ValidationError(
                f"classification must be one of {sorted(CLASSIFICATIONS)}",
                details={"classification": classification},
            )
        if actor.diocese and actor.diocese != diocese:
            raise PermissionDeniedError("Parish accounts can only register churches in their own diocese")
        if church_id and self.store.get(CHURCHES, church_id) is not None:
            raise ConflictError("Church", "id", church_id)

        now = self.clock()
        church = ChurchRecord(
            id=church_id or "",
            name=name,
            diocese=diocese,
            status=ChurchStatus.DRAFT.value,
            classification=classification,
            created_by=actor.id,
            created_at=now,
            updated_at=now,
        )
        church.id = self.store.create(
            CHURCHES, church.to_document(), doc_id=church_id, created_at=now,
        )
        logger.info("Church %s (%s) registered as draft by %s", church.id, name, actor.id,
                    extra={"church_id": church.id, "user_id": actor.id})
        return church

    # ── Transitions ─────────────────────────────────────────────────────

    def _check(self, church: ChurchRecord, to_status: str, actor: Actor, note: str | None) -> None:
        if to_status not in CHURCH_STATUSES:
            raise ValidationError(
                f"to_status must be one of {sorted(CHURCH_STATUSES)}",
                details={"to_status": to_status},
            )
        if (actor.diocese and actor.role not in CROSS_DIOCESE_ROLES
                and actor.diocese != church.diocese):
            raise TransitionError(
                church.status, to_status, actor.role,
                f"Church '{church.id}' belongs to diocese '{church.diocese}'",
            )
        check = self.state_machine.validate(TransitionContext(
            current_status=church.status,
            target_status=to_status,
            actor_role=actor.role,
            is_heritage=church.is_heritage,
            note=note,
        ))
        if not check.valid:
            logger.info(
                "Rejected transition %s → %s on church %s by %s: %s",
                church.status, to_status, church.id, actor.id, check.reason,
                extra={"church_id": church.id, "user_id": actor.id},
            )
            raise TransitionError(church.status, to_status, actor.role, check.reason)

    def _write_status(self, church: ChurchRecord, to_status: str, actor: Actor,
                      note: str | None) -> ChurchRecord:
        now = self.clock()
        doc = self.store.update(CHURCHES, church.id, {
            "status": to_status,
            "updatedAt": now.isoformat(),
            "lastStatusChange": {
                "fromStatus": church.status,
                "toStatus": to_status,
                "changedBy": actor.to_dict(),
                "note": note,
                "at": now.isoformat(),
            },
        })
        return ChurchRecord.from_document(doc)

    def _record_audit(self, audit: StatusChangeAudit) -> None:
        try:
            self.store.create(STATUS_AUDIT, audit.to_document(self.clock()))
        except Exception as exc:  # noqa: BLE001
            logger.error("Failed to write status audit for church %s: %s", audit.church_id, exc,
                         extra={"church_id": audit.church_id})

    def _report_delivery(self, descriptor: TransitionDescriptor, result: DeliveryResult) -> None:
        if result.ok:
            return
        logger.warning(
            "%d notification(s) failed for church %s (%s → %s): %s",
            len(result.failures), descriptor.church_id,
            descriptor.from_status, descriptor.to_status,
            "; ".join(f.error for f in result.failures),
            extra={"church_id": descriptor.church_id},
        )
        # One attempt to flag the problem; its own failure is only logged
        flagged = self.engine.notify_workflow_error(
            descriptor, "; ".join(f"{f.notification_type}: {f.error}" for f in result.failures),
        )
        if not flagged.ok:
            logger.error("Could not raise workflow_error for church %s", descriptor.church_id,
                         extra={"church_id": descriptor.church_id})

    def apply_transition(self, church_id: str, to_status: str, actor: Actor,
                         note: str | None = None) -> ChurchRecord:
        """Validate and apply a status change, then fan out its notifications.

        ``approved`` to ``draft`` is handled as an unpublish with ``note`` as the reason.

        Raises:
            NotFoundError: no such church.
            ValidationError: ``to_status`` is not a known status.
            TransitionError: the change is not legal for this actor; the
                record is unchanged.
        """
        church = self.get_church(church_id)
        if church.status == ChurchStatus.APPROVED.value and to_status == ChurchStatus.DRAFT.value:
            # Unpublishing carries its own notices and audit metadata
            return self.unpublish_church(church_id, actor, note or "")
        self._check(church, to_status, actor, note)

        from_status = church.status
        updated = self._write_status(church, to_status, actor, note)
        logger.info("Church %s moved %s → %s by %s", church_id, from_status, to_status, actor.id,
                    extra={"church_id": church_id, "user_id": actor.id})

        self._record_audit(StatusChangeAudit(
            church_id=church_id,
            from_status=from_status,
            to_status=to_status,
            changed_by=actor,
            diocese=church.diocese,
            note=note,
        ))

        descriptor = TransitionDescriptor(
            church_id=church_id,
            church_name=church.name,
            from_status=from_status,
            to_status=to_status,
            actor=actor,
            diocese=church.diocese,
            note=note,
        )
        self._report_delivery(descriptor, self.engine.notify_status_change(descriptor))
        return updated

    def unpublish_church(self, church_id: str, actor: Actor, reason: str) -> ChurchRecord:
        """Take an approved church offline (back to ``draft``) with a required reason."""
        church = self.get_church(church_id)
        self._check(church, ChurchStatus.DRAFT.value, actor, reason)

        updated = self._write_status(church, ChurchStatus.DRAFT.value, actor, reason)
        logger.info("Church %s unpublished by %s", church_id, actor.id,
                    extra={"church_id": church_id, "user_id": actor.id})

        self._record_audit(StatusChangeAudit(
            church_id=church_id,
            from_status=church.status,
            to_status=updated.status,
            changed_by=actor,
            diocese=church.diocese,
            note=reason,
            metadata={"action": "unpublish"},
        ))

        result = self.engine.notify_church_unpublished(updated, reason, actor)
        if not result.ok:
            logger.warning("Unpublish notifications for church %s partially failed: %s",
                           church_id, [f.to_dict() for f in result.failures],
                           extra={"church_id": church_id})
        return updated
