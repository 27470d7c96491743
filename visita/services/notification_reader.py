"""
Notification Reader

Resolves which notifications a viewer sees. The store can filter on only one
array-membership predicate per query, so resolution is two-pass:

  1. Query by ``recipients.userIds`` ∋ uid, and separately by
     ``recipients.roles`` ∋ role (over-fetched to leave room for rejects).
  2. Merge by id, then apply the predicates the store could not express:
     diocese membership (except for heritage reviewers) and, for parish viewers on parish-scoped types,
     the parish pin.

Also owns per-viewer read state (``readBy`` only ever grows) and the bulk
clear, which is chunked to the store's batch limit with each chunk
committed on its own.
"""

from __future__ import annotations

import logging

from visita.core.exceptions import NotFoundError, ValidationError
from visita.models.church import CROSS_DIOCESE_ROLES, Role
from visita.models.notification import (
    NOTIFICATIONS,
    PARISH_SCOPED_TYPES,
    ByRole,
    ByRoleAndParish,
    ByUser,
    NotificationRecord,
    ViewingUser,
)
from visita.store import ARRAY_CONTAINS, Filter, StorePermissionDenied

logger = logging.getLogger(__name__)

PARISH = Role.PARISH.value


def passes_secondary_filters(record: NotificationRecord, viewer: ViewingUser) -> bool:
    """In-process half of the recipient predicate for role-addressed records."""
    rule = record.recipients
    if isinstance(rule, ByUser):
        return viewer.uid in rule.user_ids

    if isinstance(rule, (ByRole, ByRoleAndParish)):
        if viewer.role not in rule.roles:
            return False
        if rule.dioceses and viewer.role not in CROSS_DIOCESE_ROLES and viewer.diocese not in rule.dioceses:
            return False
        if record.type in PARISH_SCOPED_TYPES and viewer.role == PARISH:
            if isinstance(rule, ByRoleAndParish):
                scope = rule.parish_id
            else:
                scope = record.related_data.get("churchId")
            return scope is not None and scope == viewer.parish_id
        return True

    raise TypeError(f"Unknown recipient rule {type(rule).__name__}")


class NotificationReader:
    """Read model over the notifications collection for one store."""

    def __init__(
        self,
        store,
        *,
        overfetch_factor: int = 2,
        bulk_limit: int = 100,
        max_batch_writes: int | None = None,
    ) -> None:
        self.store = store
        self.overfetch_factor = max(1, overfetch_factor)
        self.bulk_limit = bulk_limit
        self.max_batch_writes = max_batch_writes or getattr(store, "max_batch_writes", 500)

    @staticmethod
    def _decode(doc: dict) -> NotificationRecord | None:
        try:
            return NotificationRecord.from_document(doc)
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Skipping malformed notification %s: %s", doc.get("id"), exc,
                           extra={"notification_id": doc.get("id")})
            return None

    def resolve_visible(
        self,
        viewer: ViewingUser | None,
        page_size: int = 20,
        unread_only: bool = False,
    ) -> list[NotificationRecord]:
        """Notifications ``viewer`` may see, newest first, at most ``page_size``.

        Permission problems degrade to an empty list.
        """
        if viewer is None or not viewer.uid or page_size <= 0:
            return []

        try:
            direct_docs = self.store.query(
                NOTIFICATIONS,
                [Filter("recipients.userIds", ARRAY_CONTAINS, viewer.uid)],
                limit=page_size,
            )
            role_docs = []
            if viewer.role:
                role_docs = self.store.query(
                    NOTIFICATIONS,
                    [Filter("recipients.roles", ARRAY_CONTAINS, viewer.role)],
                    limit=page_size * self.overfetch_factor,
                )
        except StorePermissionDenied as exc:
            logger.info("Notification read denied for %s; returning none: %s", viewer.uid, exc,
                        extra={"user_id": viewer.uid})
            return []

        merged: dict[str, NotificationRecord] = {}
        for doc in direct_docs:
            record = self._decode(doc)
            if record is None:
                continue
            if unread_only and record.is_read_by(viewer.uid):
                continue
            merged[record.id] = record

        rejected = 0
        for doc in role_docs:
            record = self._decode(doc)
            if record is None or record.id in merged:
                continue
            if not passes_secondary_filters(record, viewer):
                rejected += 1
                continue
            if unread_only and record.is_read_by(viewer.uid):
                continue
            merged[record.id] = record

        logger.debug(
            "Resolved notifications for %s: direct=%d role=%d rejected=%d",
            viewer.uid, len(direct_docs), len(role_docs), rejected,
            extra={"user_id": viewer.uid},
        )
        ordered = sorted(merged.values(), key=lambda r: r.created_at, reverse=True)
        return ordered[:page_size]

    def unread_count(self, viewer: ViewingUser | None) -> int:
        return len(self.resolve_visible(viewer, self.bulk_limit, unread_only=True))

    # ── Read state ──────────────────────────────────────────────────────

    def mark_read(self, notification_id: str, uid: str) -> NotificationRecord:
        """Add ``uid`` to the record's ``readBy``. Repeating the call is a no-op."""
        if not uid:
            raise ValidationError("uid is required to mark a notification as read")
        try:
            doc = self.store.array_union(NOTIFICATIONS, notification_id, "readBy", [uid])
        except NotFoundError:
            raise NotFoundError(resource="Notification", resource_id=notification_id) from None
        return NotificationRecord.from_document(doc)

    def mark_all_read(self, viewer: ViewingUser) -> int:
        """Mark every unread notification visible to ``viewer`` as read."""
        marked = 0
        for record in self.resolve_visible(viewer, self.bulk_limit, unread_only=True):
            try:
                self.mark_read(record.id, viewer.uid)
            except NotFoundError:
                # Cleared by another viewer between resolution and update
                logger.info("Notification %s vanished before it could be marked read", record.id,
                            extra={"notification_id": record.id})
                continue
            marked += 1
        return marked

    # ── Bulk clear ──────────────────────────────────────────────────────

    def clear_all(self, viewer: ViewingUser) -> int:
        """Delete the viewer's resolved notifications in independently committed chunks.

        A failure in one chunk propagates, but chunks committed before it stay
        deleted.
        """
        records = self.resolve_visible(viewer, self.bulk_limit)
        deleted = 0
        for start in range(0, len(records), self.max_batch_writes):
            chunk = records[start:start + self.max_batch_writes]
            batch = self.store.batch()
            for record in chunk:
                batch.delete(NOTIFICATIONS, record.id)
            batch.commit()
            deleted += len(chunk)
            logger.debug("Cleared %d notification(s) for %s (%d/%d)",
                         len(chunk), viewer.uid, deleted, len(records),
                         extra={"user_id": viewer.uid})
        if deleted:
            logger.info("Cleared %d notification(s) for %s", deleted, viewer.uid,
                        extra={"user_id": viewer.uid})
        return deleted
