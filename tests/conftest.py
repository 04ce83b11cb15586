"""
Shared pytest fixtures for the Gemba Walk Tracker test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - admin / leader / participant / responsible / outsider: User rows
    - make_walk: factory that schedules a walk through walk_service
    - headers_for: X-User-Id request headers for a user
"""

from datetime import date

import pytest

from gemba import create_app
from gemba.core.clock import FixedClock
from gemba.models import db as _db
from gemba.models.auth import User

TODAY = date(2024, 3, 10)


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    application.config["CLOCK"] = FixedClock(TODAY)
    return application


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


# ── Users ────────────────────────────────────────────────────────────────


def _user(username, role="user", first_name=None, last_name=None):
    u = User(
        username=username,
        email=f"{username}@plant.test",
        first_name=first_name,
        last_name=last_name,
        role=role,
    )
    _db.session.add(u)
    _db.session.commit()
    return u


@pytest.fixture()
def admin():
    return _user("admin", role="admin", first_name="Ana", last_name="Admin")


@pytest.fixture()
def leader():
    return _user("lider", first_name="Luis", last_name="Lider")


@pytest.fixture()
def participant():
    return _user("participante", first_name="Pia", last_name="Parte")


@pytest.fixture()
def responsible():
    return _user("responsable", first_name="Raul", last_name="Ramos")


@pytest.fixture()
def outsider():
    return _user("externo")


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def make_walk(admin, leader, participant):
    """Schedule a walk via walk_service and return the seed GembaWalk."""
    from gemba.services import walk_service
    from gemba.services.repositories import WalkRepository

    def _make(**overrides):
        data = {
            "date": "2024-03-01",
            "areas": ["Ensamble", "Pintura"],
            "leader_id": leader.id,
            "participant_ids": [participant.id],
        }
        data.update(overrides)
        result = walk_service.create_walk(admin.id, data)
        return WalkRepository.get_by_id(result["walk"]["id"])

    return _make


@pytest.fixture()
def walk(make_walk):
    return make_walk()


@pytest.fixture()
def finding(walk, leader, responsible):
    """An open finding on ``walk`` assigned to ``responsible``."""
    from gemba.services import finding_lifecycle
    from gemba.services.repositories import FindingRepository

    result = finding_lifecycle.create_finding(
        leader.id, walk.id,
        category="Seguridad",
        description="Guarda de prensa retirada",
        responsible_id=responsible.id,
        area="Ensamble",
    )
    return FindingRepository.get_by_id(result["finding_id"])


@pytest.fixture()
def headers_for():
    def _headers(user):
        return {"X-User-Id": user.id}
    return _headers
