"""
Request identity helpers.

The caller is named by the ``X-User-Id`` header and resolved against the
``users`` collection. Issuing or verifying credentials happens upstream;
this module only maps the id to an active staff profile.

Usage:
    from visita.auth import current_viewer, require_actor, service

    viewer = current_viewer()          # None when unknown
    actor = require_actor()            # AuthenticationError when unknown
    reader = service("notification_reader")
"""

from __future__ import annotations

from flask import current_app, g, request

from visita.core.exceptions import AuthenticationError
from visita.models.church import Actor
from visita.models.notification import ViewingUser
from visita.models.staff import actor_from_profile

USER_HEADER = "X-User-Id"


def service(name: str):
    """Service instance wired by the app factory."""
    return current_app.extensions["visita"][name]


def current_uid() -> str:
    return request.headers.get(USER_HEADER, "").strip()


def current_profile() -> dict | None:
    """Active profile of the caller, cached on ``g`` for the request.

    ``g`` can outlive a request when the app context was pushed by the
    caller, so the cache is keyed by uid and dropped by ``init_identity``.
    """
    uid = current_uid()
    cached = g.get("visita_profile")
    if cached is None or cached[0] != uid:
        cached = (uid, service("staff").get_active_profile(uid))
        g.visita_profile = cached
    return cached[1]


def current_viewer() -> ViewingUser | None:
    profile = current_profile()
    return ViewingUser.from_profile(profile) if profile else None


def require_profile() -> dict:
    profile = current_profile()
    if profile is None:
        raise AuthenticationError(f"{USER_HEADER} does not name an active staff account")
    return profile


def require_actor() -> Actor:
    return actor_from_profile(require_profile())


def init_identity(app):
    """Forget the previous caller at the start of every request."""

    @app.before_request
    def _reset_caller():
        g.pop("visita_profile", None)
