"""
VISITA Church Registry
Flask Application Factory.

Usage:
    from visita import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate

from visita.auth import init_identity
from visita.config import config
from visita.models import db
from visita.middleware.logging_config import configure_logging
from visita.middleware.rate_limiter import init_rate_limits
from visita.middleware.timing import init_request_timing

logger = logging.getLogger(__name__)

migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # no global limit, applied per blueprint
    storage_uri=os.getenv("REDIS_URL", "memory://"),
)

DEMO_STAFF = (
    {"uid": "chancery-tagbilaran", "name": "Tagbilaran Chancery Office", "email": "chancery@tagbilaran.example",
     "role": "diocesan_office", "diocese": "tagbilaran"},
    {"uid": "chancery-talibon", "name": "Talibon Chancery Office", "email": "chancery@talibon.example",
     "role": "diocesan_office", "diocese": "talibon"},
    {"uid": "museum-researcher", "name": "Heritage Reviewer", "email": "heritage@tagbilaran.example",
     "role": "heritage_reviewer", "diocese": "tagbilaran"},
    {"uid": "baclayon-parish", "name": "Baclayon Parish Secretary", "email": "secretary@baclayon.example",
     "role": "parish", "diocese": "tagbilaran", "parishId": "baclayon-church",
     "parishName": "Immaculate Conception Parish, Baclayon", "position": "Parish Secretary"},
)


def init_services(app):
    """Build the store and services once per app under ``app.extensions["visita"]``."""
    from visita.services.church_workflow_service import ChurchWorkflowService
    from visita.services.feedback_service import FeedbackService
    from visita.services.notification_engine import NotificationEngine
    from visita.services.notification_reader import NotificationReader
    from visita.services.staff_service import StaffService
    from visita.services.workflow_state_machine import ChurchWorkflowStateMachine
    from visita.store import SqlDocumentStore

    store = SqlDocumentStore(max_batch_writes=app.config["STORE_MAX_BATCH_WRITES"])
    engine = NotificationEngine(store)
    churches = ChurchWorkflowService(store, engine, ChurchWorkflowStateMachine())
    app.extensions["visita"] = {
        "store": store,
        "notification_engine": engine,
        "notification_reader": NotificationReader(
            store,
            overfetch_factor=app.config["NOTIFICATION_OVERFETCH_FACTOR"],
            bulk_limit=app.config["NOTIFICATION_BULK_LIMIT"],
            max_batch_writes=app.config["STORE_MAX_BATCH_WRITES"],
        ),
        "churches": churches,
        "staff": StaffService(store, engine),
        "feedback": FeedbackService(store, engine, churches),
    }
    return app.extensions["visita"]


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name])
    os.makedirs(app.instance_path, exist_ok=True)

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)
    init_identity(app)

    # ── Import all models so Alembic can detect them ─────────────────────
    from visita.models import document as _document_models  # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    with app.app_context():
        try:
            db.create_all()
            app.logger.info("db.create_all() completed successfully")
        except Exception as e:
            app.logger.warning("db.create_all() failed: %s", e)

    # ── Services ─────────────────────────────────────────────────────────
    init_services(app)

    # ── Blueprints ───────────────────────────────────────────────────────
    from visita.blueprints.church_workflow_bp import church_workflow_bp
    from visita.blueprints.health_bp import health_bp
    from visita.blueprints.notification_bp import notification_bp
    from visita.blueprints.staff_bp import staff_bp

    app.register_blueprint(church_workflow_bp)
    app.register_blueprint(notification_bp)
    app.register_blueprint(staff_bp)
    app.register_blueprint(health_bp)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("seed-demo")
    def seed_demo_cmd():
        """Seed active demo staff accounts for both dioceses."""
        store = app.extensions["visita"]["store"]
        created = 0
        for staff in DEMO_STAFF:
            if store.get("users", staff["uid"]) is not None:
                continue
            profile = {k: v for k, v in staff.items() if k != "uid"}
            store.create("users", {**profile, "status": "active"}, doc_id=staff["uid"])
            created += 1
        logger.info("Seeded %s demo staff account(s).", created)

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error"}, 500

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
