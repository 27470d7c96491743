"""
Church Workflow Blueprint.

Routes:
  GET    /churches                          – list (filters: diocese, status)
  POST   /churches                          – register a draft church
  GET    /churches/<cid>                    – church detail
  POST   /churches/<cid>/transition         – request a status change
  GET    /churches/<cid>/next-actions       – actions offered to the caller
  POST   /churches/<cid>/unpublish          – approved → draft with reason
  POST   /churches/<cid>/feedback           – visitor feedback (no identity)
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from visita.auth import current_profile, require_actor, service
from visita.models.church import CHURCH_STATUSES, DIOCESES
from visita.utils.errors import E, api_error, register_error_handlers

logger = logging.getLogger(__name__)

church_workflow_bp = Blueprint("church_workflow_bp", __name__, url_prefix="/api/v1")
register_error_handlers(church_workflow_bp)


# ═════════════════════════════════════════════════════════════════════════════
# CHURCHES
# ═════════════════════════════════════════════════════════════════════════════

@church_workflow_bp.route("/churches", methods=["GET"])
def list_churches():
    diocese = request.args.get("diocese")
    status = request.args.get("status")
    if diocese and diocese not in DIOCESES:
        return api_error(E.VALIDATION_INVALID, f"diocese must be one of {sorted(DIOCESES)}")
    if status and status not in CHURCH_STATUSES:
        return api_error(E.VALIDATION_INVALID, f"status must be one of {sorted(CHURCH_STATUSES)}")
    churches = service("churches").list_churches(diocese=diocese, status=status)
    return jsonify([c.to_dict() for c in churches])


@church_workflow_bp.route("/churches", methods=["POST"])
def create_church():
    """Register a church in draft.

    Body: { name, diocese?, classification? }
    A parish account's ``parishId`` becomes the church id.
    """
    actor = require_actor()
    profile = current_profile()
    data = request.get_json(silent=True) or {}

    if not (data.get("name") or "").strip():
        return api_error(E.VALIDATION_REQUIRED, "name is required")

    church = service("churches").create_church(
        data["name"],
        data.get("diocese") or actor.diocese,
        actor,
        classification=data.get("classification") or "non_heritage",
        church_id=profile.get("parishId"),
    )
    return jsonify(church.to_dict()), 201


@church_workflow_bp.route("/churches/<cid>", methods=["GET"])
def get_church(cid):
    return jsonify(service("churches").get_church(cid).to_dict())


# ═════════════════════════════════════════════════════════════════════════════
# WORKFLOW
# ═════════════════════════════════════════════════════════════════════════════

@church_workflow_bp.route("/churches/<cid>/transition", methods=["POST"])
def transition_church(cid):
    """Apply a status change. Body: { to_status, note? }

    409 when the change is not legal for the caller; the church is unchanged.
    """
    actor = require_actor()
    data = request.get_json(silent=True) or {}
    to_status = data.get("to_status")
    if not to_status:
        return api_error(E.VALIDATION_REQUIRED, "to_status is required")

    church = service("churches").apply_transition(cid, to_status, actor, note=data.get("note"))
    return jsonify(church.to_dict())


@church_workflow_bp.route("/churches/<cid>/next-actions", methods=["GET"])
def next_actions(cid):
    actor = require_actor()
    return jsonify(service("churches").list_next_actions(cid, actor.role))


@church_workflow_bp.route("/churches/<cid>/unpublish", methods=["POST"])
def unpublish_church(cid):
    """Body: { reason }"""
    actor = require_actor()
    data = request.get_json(silent=True) or {}
    reason = (data.get("reason") or "").strip()
    if not reason:
        return api_error(E.VALIDATION_REQUIRED, "reason is required")

    church = service("churches").unpublish_church(cid, actor, reason)
    return jsonify(church.to_dict())


# ═════════════════════════════════════════════════════════════════════════════
# FEEDBACK
# ═════════════════════════════════════════════════════════════════════════════

@church_workflow_bp.route("/churches/<cid>/feedback", methods=["POST"])
def submit_feedback(cid):
    """Visitor feedback. Body: { rating, comment?, visitor_name? }"""
    data = request.get_json(silent=True) or {}
    if data.get("rating") is None:
        return api_error(E.VALIDATION_REQUIRED, "rating is required")
    feedback = service("feedback").submit_feedback(cid, data)
    return jsonify(feedback), 201
