"""
Shared pytest fixtures for the VISITA church workflow test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test app context + table recreate (autouse)
    - client: Flask test client (function-scoped)
    - clock: deterministic, strictly increasing clock
    - store / engine / reader / workflow: isolated service instances
    - seed_staff: helper that writes an active staff profile
"""

from datetime import datetime, timedelta, timezone

import pytest

from visita import create_app
from visita.models import db as _db
from visita.models.church import Actor
from visita.services.church_workflow_service import ChurchWorkflowService
from visita.services.notification_engine import NotificationEngine
from visita.services.notification_reader import NotificationReader
from visita.store import SqlDocumentStore


class TickingClock:
    """Returns a new instant, one second later, on every call."""

    def __init__(self, start=datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self):
        self.now += timedelta(seconds=1)
        return self.now


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Service fixtures ─────────────────────────────────────────────────────


@pytest.fixture()
def clock():
    return TickingClock()


@pytest.fixture()
def store():
    return SqlDocumentStore(max_batch_writes=3)


@pytest.fixture()
def engine(store, clock):
    return NotificationEngine(store, clock=clock)


@pytest.fixture()
def reader(store):
    return NotificationReader(store, max_batch_writes=3)


@pytest.fixture()
def workflow(store, engine, clock):
    return ChurchWorkflowService(store, engine, clock=clock)


# ── Actors ───────────────────────────────────────────────────────────────


@pytest.fixture()
def parish_actor():
    return Actor(id="baclayon-parish", display_name="Baclayon Parish Secretary",
                 role="parish", diocese="tagbilaran")


@pytest.fixture()
def chancery_actor():
    return Actor(id="chancery-tagbilaran", display_name="Tagbilaran Chancery",
                 role="diocesan_office", diocese="tagbilaran")


@pytest.fixture()
def heritage_actor():
    return Actor(id="museum-researcher", display_name="Heritage Reviewer",
                 role="heritage_reviewer", diocese="tagbilaran")


@pytest.fixture()
def seed_staff(store):
    """Write an active staff profile and return its X-User-Id header."""

    def _seed(uid, role, diocese="tagbilaran", parish_id=None, name=None, status="active"):
        store.create("users", {
            "name": name or uid,
            "email": f"{uid}@example.org",
            "role": role,
            "diocese": diocese,
            "parishId": parish_id,
            "status": status,
        }, doc_id=uid)
        return {"X-User-Id": uid}

    return _seed
