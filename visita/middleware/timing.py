"""
Request id and timing hooks.

Each response carries ``X-Request-ID`` (echoed from the request when the
caller sent one) and ``X-Request-Duration-Ms``. One access line is logged per
request: DEBUG normally, WARNING when slow, ERROR on 5xx.
"""

import logging
import time
import uuid

from flask import Flask, g, request

logger = logging.getLogger(__name__)

# Probes hit constantly; no access line for them
QUIET_PATHS = frozenset({"/api/v1/health/ready", "/api/v1/health/live"})

SLOW_REQUEST_MS = 1000


def _access_level(status: int, duration_ms: float) -> int:
    if status >= 500:
        return logging.ERROR
    if duration_ms > SLOW_REQUEST_MS:
        return logging.WARNING
    return logging.DEBUG


def init_request_timing(app: Flask):
    @app.before_request
    def _begin():
        g.request_start = time.perf_counter()
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]

    @app.after_request
    def _finish(response):
        if "request_start" not in g:
            return response

        duration_ms = (time.perf_counter() - g.request_start) * 1000
        response.headers["X-Request-ID"] = g.request_id
        response.headers["X-Request-Duration-Ms"] = f"{duration_ms:.1f}"

        if request.path not in QUIET_PATHS:
            view_args = request.view_args or {}
            logger.log(
                _access_level(response.status_code, duration_ms),
                "%s %s -> %d in %.0fms",
                request.method, request.path, response.status_code, duration_ms,
                extra={
                    "method": request.method,
                    "path": request.path,
                    "status": response.status_code,
                    "duration_ms": round(duration_ms, 1),
                    "church_id": view_args.get("cid"),
                    "notification_id": view_args.get("nid"),
                },
            )
        return response
