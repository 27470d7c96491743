"""
VISITA Church Registry
Notification Blueprint.

Provides:
    - Visible-notification listing for the caller (role/diocese/parish scoped)
    - Unread count, mark one / all as read, clear all
    - Direct notification creation for the diocesan office

Listing degrades to an empty list for an unknown caller instead of failing.
"""

from __future__ import annotations

import logging

from flask import Blueprint, current_app, jsonify, request

from visita.auth import current_viewer, require_actor, require_profile, service
from visita.core.exceptions import PermissionDeniedError
from visita.models.church import Role
from visita.models.notification import (
    NOTIFICATION_TYPES,
    by_role,
    by_user,
)
from visita.utils.errors import E, api_error, register_error_handlers

logger = logging.getLogger(__name__)

notification_bp = Blueprint("notification_bp", __name__, url_prefix="/api/v1")
register_error_handlers(notification_bp)

_MAX_PAGE_SIZE = 100


def _page_size() -> int | None:
    raw = request.args.get("page_size")
    if raw is None:
        return current_app.config.get("NOTIFICATION_PAGE_SIZE", 20)
    try:
        size = int(raw)
    except ValueError:
        return None
    return size if 1 <= size <= _MAX_PAGE_SIZE else None


# ═══════════════════════════════════════════════════════════════════════════
#  READ SIDE
# ═══════════════════════════════════════════════════════════════════════════

@notification_bp.route("/notifications", methods=["GET"])
def list_notifications():
    """Notifications visible to the caller, newest first."""
    page_size = _page_size()
    if page_size is None:
        return api_error(E.VALIDATION_INVALID, f"page_size must be an integer from 1 to {_MAX_PAGE_SIZE}")
    unread_only = request.args.get("unread_only", "false").lower() in ("1", "true", "yes")

    viewer = current_viewer()
    records = service("notification_reader").resolve_visible(viewer, page_size, unread_only)
    uid = viewer.uid if viewer else None
    return jsonify({
        "items": [r.to_dict(uid) for r in records],
        "total": len(records),
    })


@notification_bp.route("/notifications/unread-count", methods=["GET"])
def unread_count():
    count = service("notification_reader").unread_count(current_viewer())
    return jsonify({"unread_count": count})


@notification_bp.route("/notifications/<nid>/read", methods=["POST"])
def mark_read(nid):
    """Mark one notification read for the caller (idempotent)."""
    profile = require_profile()
    record = service("notification_reader").mark_read(nid, profile["id"])
    return jsonify(record.to_dict(profile["id"]))


@notification_bp.route("/notifications/read-all", methods=["POST"])
def mark_all_read():
    require_profile()
    marked = service("notification_reader").mark_all_read(current_viewer())
    return jsonify({"marked": marked})


@notification_bp.route("/notifications", methods=["DELETE"])
def clear_all():
    require_profile()
    deleted = service("notification_reader").clear_all(current_viewer())
    return jsonify({"deleted": deleted})


# ═══════════════════════════════════════════════════════════════════════════
#  DIRECT CREATION
# ═══════════════════════════════════════════════════════════════════════════

@notification_bp.route("/notifications", methods=["POST"])
def create_notification():
    """Create a notification directly (diocesan office only).

    Body: { type?, title, message?, priority?, user_ids? | roles?, parish_id?,
            related_data?, action_url? }
    Role-addressed notifications are limited to the caller's diocese.
    """
    actor = require_actor()
    if actor.role != Role.DIOCESAN_OFFICE.value:
        raise PermissionDeniedError("Only the diocesan office can create notifications directly")

    data = request.get_json(silent=True) or {}
    title = (data.get("title") or "").strip()
    if not title:
        return api_error(E.VALIDATION_REQUIRED, "title is required")

    ntype = data.get("type", "system_notification")
    if ntype not in NOTIFICATION_TYPES:
        return api_error(E.VALIDATION_INVALID, f"type must be one of {sorted(NOTIFICATION_TYPES)}")

    user_ids = [u for u in data.get("user_ids") or [] if u]
    roles = [r for r in data.get("roles") or [] if r]
    if user_ids and roles:
        return api_error(E.VALIDATION_INVALID, "Provide either user_ids or roles, not both")
    if user_ids:
        recipients = by_user(*user_ids)
    elif roles:
        recipients = by_role(roles, [actor.diocese], data.get("parish_id"))
    else:
        return api_error(E.VALIDATION_REQUIRED, "user_ids or roles is required")

    result = service("notification_engine").create_notification(
        ntype,
        title,
        data.get("message", ""),
        recipients,
        priority=data.get("priority", "medium"),
        related_data=data.get("related_data"),
        action_url=data.get("action_url"),
        metadata={"createdBy": actor.to_dict()},
    )
    if not result.ok:
        logger.error("Direct notification by %s not stored: %s", actor.id,
                     [f.to_dict() for f in result.failures], extra={"user_id": actor.id})
        return api_error(E.INTERNAL, "Notification could not be stored")

    scope = "role" if roles else "user"
    logger.info("Direct %s notification by %s (%s-addressed)", ntype, actor.id, scope,
                extra={"user_id": actor.id, "notification_type": ntype})
    return jsonify(result.to_dict()), 201
