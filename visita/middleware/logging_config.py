"""
Logging setup for the workflow service.

Every record passes through ``RequestContextFilter`` so lines written by the
services (transition applied, notice not delivered, ...) carry the request id
and caller of the HTTP request that caused them.

- Production: one JSON object per line
- Development: short coloured lines with the request id and church in front
- LOG_LEVEL overrides the level in both
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

from flask import g, has_request_context, request

# Record attributes written to JSON output when a caller set them via ``extra=``
CONTEXT_FIELDS = (
    "request_id",
    "user_id",
    "church_id",
    "notification_id",
    "notification_type",
    "transition_kind",
    "method",
    "path",
    "status",
    "duration_ms",
)

_LEVEL_COLOURS = {
    logging.DEBUG: "\033[36m",
    logging.INFO: "\033[32m",
    logging.WARNING: "\033[33m",
    logging.ERROR: "\033[31m",
    logging.CRITICAL: "\033[35m",
}
_RESET = "\033[0m"


class RequestContextFilter(logging.Filter):
    """Fill ``request_id`` / ``user_id`` from the active request, if any."""

    def filter(self, record: logging.LogRecord) -> bool:
        if has_request_context():
            if getattr(record, "request_id", None) is None:
                record.request_id = g.get("request_id")
            if getattr(record, "user_id", None) is None:
                record.user_id = request.headers.get("X-User-Id") or None
        return True


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update({
            key: getattr(record, key)
            for key in CONTEXT_FIELDS
            if getattr(record, key, None) is not None
        })
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        colour = _LEVEL_COLOURS.get(record.levelno, "")
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        tags = [t for t in (getattr(record, "request_id", None), getattr(record, "church_id", None)) if t]
        prefix = f"[{' '.join(tags)}] " if tags else ""
        line = f"{colour}{ts} {record.levelname:<7}{_RESET} {record.name}: {prefix}{record.getMessage()}"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _level_for(app) -> tuple[str, int]:
    quiet_default = "INFO" if not (app.debug or app.testing) else "DEBUG"
    name = os.getenv("LOG_LEVEL", quiet_default).upper()
    return name, getattr(logging, name, logging.INFO)


def configure_logging(app):
    """Install a single stderr handler on the root logger.

    JSON output unless the app runs in debug or testing mode.
    """
    use_json = not (app.debug or app.testing)
    level_name, level = _level_for(app)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if use_json else ReadableFormatter())
    handler.addFilter(RequestContextFilter())
    handler.setLevel(level)

    root = logging.getLogger()
    # Re-running the factory (tests) must not stack handlers
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in ("werkzeug", "sqlalchemy.engine", "flask_limiter"):
        logging.getLogger(name).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not app.testing:
        app.logger.info("Logging ready (level=%s, json=%s)", level_name, use_json)
