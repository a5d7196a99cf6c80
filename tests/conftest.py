"""
Shared pytest fixtures for the Project Tracker test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - make_user: factory for committed User rows
    - owner / project: a user and a project they own
"""

import itertools

import pytest

from tracker import create_app
from tracker.models import db as _db
from tracker.models.auth import User


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


# ── Convenience fixtures ─────────────────────────────────────────────────

_emails = itertools.count(1)


@pytest.fixture()
def make_user():
    """Return a factory creating committed users with unique emails."""

    def _make(display_name="User", email=None):
        user = User(email=email or f"user{next(_emails)}@example.com", display_name=display_name)
        _db.session.add(user)
        _db.session.commit()
        return user

    return _make


@pytest.fixture()
def owner(make_user):
    return make_user("Owner")


@pytest.fixture()
def project(owner):
    """A project owned by ``owner`` (owner membership included)."""
    from tracker.services import project_service
    return project_service.create_project(owner.id, "Tracker Test Project")
