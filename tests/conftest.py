"""
Shared pytest fixtures for the Ehub PMS test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - admin / supervisor / fabricator / second_fabricator / client_user
    - make_user: factory for extra accounts
    - auth_headers: bearer header factory for API tests
    - project: directly assigned project owned by ``supervisor``
"""

import pytest

from ehub import create_app
from ehub.models import db as _db
from ehub.models.user import (
    ROLE_ADMIN,
    ROLE_CLIENT,
    ROLE_FABRICATOR,
    ROLE_SUPERVISOR,
    User,
)
from ehub.services.jwt_service import generate_access_token


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
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


@pytest.fixture()
def make_user():
    """Factory: ``make_user("fabricator", name="Ayla")`` -> committed User."""
    counter = {"n": 0}

    def _make(role, name=None, is_active=True, client_project_id=None):
        counter["n"] += 1
        name = name or f"{role.title()} {counter['n']}"
        user = User(
            name=name,
            email=f"{role}{counter['n']}@ehub.test",
            role=role,
            is_active=is_active,
            client_project_id=client_project_id,
        )
        _db.session.add(user)
        _db.session.commit()
        return user

    return _make


@pytest.fixture()
def admin(make_user):
    return make_user(ROLE_ADMIN, name="Ada Admin")


@pytest.fixture()
def supervisor(make_user):
    return make_user(ROLE_SUPERVISOR, name="Sam Supervisor")


@pytest.fixture()
def fabricator(make_user):
    return make_user(ROLE_FABRICATOR, name="Fatma Fabricator")


@pytest.fixture()
def second_fabricator(make_user):
    return make_user(ROLE_FABRICATOR, name="Felix Fabricator")


@pytest.fixture()
def client_user(make_user):
    return make_user(ROLE_CLIENT, name="Cem Client")


@pytest.fixture()
def auth_headers():
    """Factory: ``auth_headers(user)`` -> Authorization header dict."""

    def _headers(user):
        return {"Authorization": f"Bearer {generate_access_token(user.id, user.role)}"}

    return _headers


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def project(supervisor, fabricator):
    """Directly assigned project: revenue 500000, budget 100000, one member."""
    import ehub.services.workflow_orchestrator as wf

    return wf.create_project(supervisor.id, {
        "name": "Steel Frame",
        "client_name": "Acme Construction",
        "fabricator_ids": [fabricator.id],
        "revenue": 500000,
        "budget": 100000,
        "start_date": "2026-01-01",
        "end_date": "2026-03-01",
    })


@pytest.fixture()
def manual_project(supervisor):
    """Manual-assignment project with no members yet (status created)."""
    import ehub.services.workflow_orchestrator as wf

    return wf.create_project(supervisor.id, {
        "name": "Gate Railing",
        "client_name": "Acme Construction",
        "manual_assignment": True,
        "revenue": 1000,
        "budget": 400,
    })
