"""
Notification Fan-out Engine

Turns a classified status change (or a direct event such as a new staff
registration or visitor feedback) into zero or more persisted
NotificationRecords.

Delivery is a best-effort side channel:
  - every record is persisted independently; one failed write never stops
    the others
  - nothing here raises on a delivery problem; failures come back in the
    DeliveryResult for the caller to log and discard
  - the engine never touches a church's status

Construct one engine per application (see ``visita.create_app``) or per
test; it holds its own template table and has no module-level state.

Usage:
    engine = NotificationEngine(store)
    result = engine.notify_status_change(descriptor)
    if result.failures:
        logger.warning("...")
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone

from visita.core.exceptions import ValidationError
from visita.models.church import ChurchRecord, Role, TransitionDescriptor
from visita.models.notification import (
    NOTIFICATION_PRIORITIES,
    NOTIFICATION_TYPES,
    NOTIFICATIONS,
    NotificationRecord,
    NotificationType,
    Recipients,
    by_role,
    by_user,
)
from visita.services.notification_templates import (
    ACTION_URLS,
    DEFAULT_TEMPLATES,
    NotificationTemplate,
    action_url_for,
)
from visita.services.workflow_state_machine import TransitionKind, classify_transition

logger = logging.getLogger(__name__)

PARISH = Role.PARISH.value
DIOCESAN_OFFICE = Role.DIOCESAN_OFFICE.value
HERITAGE_REVIEWER = Role.HERITAGE_REVIEWER.value

_T = NotificationType

# One row per TransitionKind: (notification type, recipient roles)
DERIVATIONS: dict[TransitionKind, tuple[tuple[str, frozenset[str]], ...]] = {
    TransitionKind.SUBMITTED_FOR_REVIEW: (
        (_T.CHURCH_SUBMITTED.value, frozenset({DIOCESAN_OFFICE})),
    ),
    TransitionKind.FORWARDED_TO_HERITAGE_REVIEW: (
        (_T.HERITAGE_REVIEW_ASSIGNED.value, frozenset({HERITAGE_REVIEWER})),
    ),
    TransitionKind.HERITAGE_VALIDATED: (
        (_T.HERITAGE_VALIDATED.value, frozenset({DIOCESAN_OFFICE})),
        (_T.CHURCH_APPROVED.value, frozenset({PARISH})),
    ),
    TransitionKind.APPROVED_DIRECTLY: (
        (_T.CHURCH_APPROVED.value, frozenset({PARISH})),
    ),
    TransitionKind.REVISION_REQUESTED: (
        (_T.REVISION_REQUESTED.value, frozenset({PARISH})),
    ),
    TransitionKind.UNCLASSIFIED: (),
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class NotificationIntent:
    """A notification to build: which type, addressed to which roles."""
    type: str
    roles: frozenset[str]


@dataclass(frozen=True)
class DeliveryFailure:
    notification_type: str
    error: str

    def to_dict(self) -> dict:
        return {"type": self.notification_type, "error": self.error}


@dataclass
class DeliveryResult:
    """Outcome of one fan-out: ids written plus every failure encountered."""
    kind: str | None = None
    created_ids: list[str] = field(default_factory=list)
    failures: list[DeliveryFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def merge(self, other: "DeliveryResult") -> "DeliveryResult":
        self.created_ids.extend(other.created_ids)
        self.failures.extend(other.failures)
        return self

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "created": len(self.created_ids),
            "notification_ids": list(self.created_ids),
            "failures": [f.to_dict() for f in self.failures],
        }


class NotificationEngine:
    """Derives, builds and persists notification records."""

    def __init__(
        self,
        store,
        *,
        templates: dict[str, NotificationTemplate] | None = None,
        action_urls: dict[str, str] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.templates = dict(DEFAULT_TEMPLATES if templates is None else templates)
        self.action_urls = dict(ACTION_URLS if action_urls is None else action_urls)
        self.clock = clock or _utcnow

    # ── Derivation ──────────────────────────────────────────────────────

    def derive_notifications(
        self, kind: TransitionKind, descriptor: TransitionDescriptor,
    ) -> list[NotificationIntent]:
        """Static mapping from transition kind to notification intents."""
        return [NotificationIntent(ntype, roles) for ntype, roles in DERIVATIONS.get(kind, ())]

    @staticmethod
    def recipients_for(intent: NotificationIntent, descriptor: TransitionDescriptor) -> Recipients:
        """Role rule in the descriptor's diocese; parish-facing rules are pinned to the church."""
        parish_id = descriptor.church_id if PARISH in intent.roles else None
        return by_role(intent.roles, [descriptor.diocese], parish_id)

    def _template(self, notification_type: str) -> NotificationTemplate:
        template = self.templates.get(notification_type)
        if template is None:
            raise LookupError(f"No template registered for notification type {notification_type!r}")
        return template

    def build_record(
        self, intent: NotificationIntent, descriptor: TransitionDescriptor,
    ) -> NotificationRecord:
        template = self._template(intent.type)
        title, message = template.render(descriptor.template_values())
        return NotificationRecord(
            type=intent.type,
            priority=template.priority,
            title=title,
            message=message,
            recipients=self.recipients_for(intent, descriptor),
            created_at=self.clock(),
            related_data=_related_data(descriptor),
            action_url=action_url_for(intent.type, descriptor.church_id, self.action_urls),
            metadata={"diocese": descriptor.diocese, "note": descriptor.note},
        )

    # ── Persistence ─────────────────────────────────────────────────────

    def _persist(self, record: NotificationRecord) -> str:
        record.id = self.store.create(
            NOTIFICATIONS, record.to_document(), created_at=record.created_at,
        )
        logger.debug(
            "Created %s notification %s", record.type, record.id,
            extra={"notification_id": record.id, "notification_type": record.type},
        )
        return record.id

    def deliver(self, builders: Iterable[tuple[str, Callable[[], NotificationRecord]]],
                *, kind: str | None = None) -> DeliveryResult:
        """Build and persist each record independently, collecting failures."""
        result = DeliveryResult(kind=kind)
        for notification_type, build in builders:
            try:
                result.created_ids.append(self._persist(build()))
            except Exception as exc:  # noqa: BLE001
                logger.warning("Failed to deliver %s notification: %s", notification_type, exc,
                               extra={"notification_type": notification_type})
                result.failures.append(DeliveryFailure(notification_type, str(exc)))
        return result

    def notify_status_change(
        self,
        descriptor: TransitionDescriptor,
        kind: TransitionKind | None = None,
    ) -> DeliveryResult:
        """Fan out the notifications for one applied status change."""
        try:
            if kind is None:
                kind = classify_transition(
                    descriptor.from_status, descriptor.to_status, descriptor.actor.role,
                )
            intents = self.derive_notifications(kind, descriptor)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Could not derive notifications for church %s: %s",
                           descriptor.church_id, exc, extra={"church_id": descriptor.church_id})
            return DeliveryResult(failures=[DeliveryFailure("derivation", str(exc))])

        logger.info(
            "Status change %s → %s for church %s classified as %s (%d notification(s))",
            descriptor.from_status, descriptor.to_status, descriptor.church_id,
            kind.value, len(intents),
            extra={"church_id": descriptor.church_id, "transition_kind": kind.value},
        )
        return self.deliver(
            ((intent.type, lambda intent=intent: self.build_record(intent, descriptor))
             for intent in intents),
            kind=kind.value,
        )

    # ── Direct events ───────────────────────────────────────────────────

    def create_notification(
        self,
        notification_type: str,
        title: str,
        message: str,
        recipients: Recipients,
        *,
        priority: str = "medium",
        related_data: dict | None = None,
        action_url: str | None = None,
        metadata: dict | None = None,
    ) -> DeliveryResult:
        """Persist a single, already-worded notification.

        Raises:
            ValidationError: unknown type or priority (input errors, not delivery errors).
        """
        if notification_type not in NOTIFICATION_TYPES:
            raise ValidationError(
                f"type must be one of {sorted(NOTIFICATION_TYPES)}",
                details={"type": notification_type},
            )
        if priority not in NOTIFICATION_PRIORITIES:
            raise ValidationError(
                f"priority must be one of {sorted(NOTIFICATION_PRIORITIES)}",
                details={"priority": priority},
            )
        related = related_data or {}

        def _build() -> NotificationRecord:
            return NotificationRecord(
                type=notification_type,
                priority=priority,
                title=title,
                message=message,
                recipients=recipients,
                created_at=self.clock(),
                related_data=related,
                action_url=action_url or action_url_for(
                    notification_type, related.get("churchId"), self.action_urls,
                ),
                metadata=metadata or {},
            )

        return self.deliver([(notification_type, _build)])

    def _from_template(self, notification_type: str, values: dict, recipients: Recipients,
                       *, related_data: dict, church_id: str | None = None,
                       metadata: dict | None = None, priority: str | None = None,
                       action_url: str | None = None):
        def _build() -> NotificationRecord:
            template = self._template(notification_type)
            title, message = template.render(values)
            return NotificationRecord(
                type=notification_type,
                priority=priority or template.priority,
                title=title,
                message=message,
                recipients=recipients,
                created_at=self.clock(),
                related_data=related_data,
                action_url=action_url or action_url_for(notification_type, church_id, self.action_urls),
                metadata=metadata or {},
            )
        return notification_type, _build

    def notify_church_unpublished(self, church: ChurchRecord, reason: str, actor) -> DeliveryResult:
        """Tell the church's parish it was unpublished and confirm to the diocesan office."""
        related = {
            "churchId": church.id,
            "churchName": church.name,
            "fromStatus": "approved",
            "toStatus": church.status,
            "actionBy": actor.to_dict(),
        }
        values = {"churchName": church.name, "reason": reason}
        parish_notice = self._from_template(
            _T.CHURCH_UNPUBLISHED.value, values,
            by_role([PARISH], [church.diocese], church.id),
            related_data=related, church_id=church.id,
            metadata={"unpublishReason": reason},
        )
        confirmation = self._from_template(
            _T.SYSTEM_NOTIFICATION.value,
            {
                "title": f"Church Unpublished: {church.name}",
                "message": (
                    f'You have unpublished "{church.name}". Reason: {reason}. '
                    "The parish has been notified."
                ),
            },
            by_role([DIOCESAN_OFFICE], [church.diocese]),
            related_data=related,
            action_url=action_url_for(_T.CHURCH_APPROVED.value, church.id, self.action_urls),
            metadata={"unpublishReason": reason, "actionType": "church_unpublished_confirmation"},
        )
        return self.deliver([parish_notice, confirmation], kind="ChurchUnpublished")

    def notify_account_pending_approval(self, staff: dict,
                                        approver_uids: Iterable[str] = ()) -> DeliveryResult:
        """Announce a new staff registration to whoever can approve it.

        Parish staff are approved by the parish's current active staff when
        known, otherwise by any parish account pinned to the same parish.
        Diocesan and heritage staff are approved by the diocesan office.
        """
        approver_uids = [uid for uid in approver_uids if uid]
        if staff.get("role") == PARISH:
            if approver_uids:
                recipients = by_user(*approver_uids)
            else:
                recipients = by_role([PARISH], [staff.get("diocese")], staff.get("parishId"))
        else:
            recipients = by_role([DIOCESAN_OFFICE], [staff.get("diocese")])

        values = {
            "staffName": staff.get("name") or staff.get("email") or "New staff member",
            "position": staff.get("position") or staff.get("role") or "staff",
            "parishName": staff.get("parishName") or staff.get("diocese") or "",
        }
        related = {
            "churchId": staff.get("parishId"),
            "staffUid": staff.get("uid"),
            "staffEmail": staff.get("email"),
        }
        return self.deliver(
            [self._from_template(_T.ACCOUNT_PENDING_APPROVAL.value, values, recipients,
                                 related_data=related)],
            kind="AccountPendingApproval",
        )

    def notify_account_approved(self, staff_uid: str, actor) -> DeliveryResult:
        return self.deliver(
            [self._from_template(
                _T.ACCOUNT_APPROVED.value, {"actorName": actor.display_name}, by_user(staff_uid),
                related_data={"staffUid": staff_uid, "actionBy": actor.to_dict()},
            )],
            kind="AccountApproved",
        )

    def notify_feedback_received(self, church: ChurchRecord, feedback: dict) -> DeliveryResult:
        values = {
            "churchName": church.name,
            "rating": str(feedback.get("rating", "")),
            "comment": feedback.get("comment") or "",
        }
        return self.deliver(
            [self._from_template(
                _T.FEEDBACK_RECEIVED.value, values,
                by_role([PARISH], [church.diocese], church.id),
                related_data={"churchId": church.id, "churchName": church.name,
                              "feedbackId": feedback.get("id")},
                church_id=church.id,
            )],
            kind="FeedbackReceived",
        )

    def notify_workflow_error(self, descriptor: TransitionDescriptor, error: str) -> DeliveryResult:
        return self.deliver(
            [self._from_template(
                _T.WORKFLOW_ERROR.value, descriptor.template_values(),
                by_role([DIOCESAN_OFFICE], [descriptor.diocese]),
                related_data=_related_data(descriptor), church_id=descriptor.church_id,
                metadata={"error": error},
            )],
            kind="WorkflowError",
        )


def _related_data(descriptor: TransitionDescriptor) -> dict:
    return {
        "churchId": descriptor.church_id,
        "churchName": descriptor.church_name,
        "fromStatus": descriptor.from_status,
        "toStatus": descriptor.to_status,
        "actionBy": descriptor.actor.to_dict(),
    }
