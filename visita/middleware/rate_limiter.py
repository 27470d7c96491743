"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in visita/__init__.py with no default limits;
this module applies limits per route category.

Usage:
    from visita.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

from flask import request as flask_request

from visita.auth import USER_HEADER

logger = logging.getLogger(__name__)


def _caller_key():
    """Rate-limit key: staff id when the caller names one, else remote IP."""
    uid = flask_request.headers.get(USER_HEADER, "").strip()
    if uid:
        return f"user:{uid}"
    return flask_request.remote_addr or "unknown"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits:
        - Staff routes (registration):  10/minute per IP
        - Workflow / notifications:     200/minute per caller
        - Health check:                 exempt

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    bp = app.blueprints.get("staff_bp")
    if bp:
        limiter.limit("10/minute")(bp)

    for bp_name in ("church_workflow_bp", "notification_bp"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit("200/minute", key_func=_caller_key)(bp)

    bp = app.blueprints.get("health_bp")
    if bp:
        limiter.exempt(bp)

    app.logger.info("Rate limiter configured: staff 10/min, api 200/min per caller")
