"""
Staff Blueprint.

Routes:
  POST   /staff/register          – self-registration (pending until approved)
  POST   /staff/<uid>/approve     – approve a pending account
  GET    /staff/me                – caller's active profile
"""

from __future__ import annotations

from flask import Blueprint, jsonify, request

from visita.auth import require_profile, service
from visita.utils.errors import register_error_handlers

staff_bp = Blueprint("staff_bp", __name__, url_prefix="/api/v1/staff")
register_error_handlers(staff_bp)


@staff_bp.route("/register", methods=["POST"])
def register():
    """Body: { uid?, name, email, role, diocese, parishId?, parishName?, position? }"""
    data = request.get_json(silent=True) or {}
    profile = service("staff").register_staff(data)
    return jsonify(profile), 201


@staff_bp.route("/<uid>/approve", methods=["POST"])
def approve(uid):
    approver = require_profile()
    profile = service("staff").approve_staff(uid, approver["id"])
    return jsonify(profile)


@staff_bp.route("/me", methods=["GET"])
def me():
    return jsonify(require_profile())
