"""
Shared pytest fixtures for the Defect Tracker test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - manager / engineer / other_engineer / observer: one User per role
    - auth_headers: builds a Bearer header for any user
    - project / stage: pre-created Project and Stage
    - upload_dir: isolated attachment directory under tmp_path
"""

import pytest

from defect_tracker import create_app
from defect_tracker.models import db as _db
from defect_tracker.models.auth import User
from defect_tracker.services import project_service
from defect_tracker.services.jwt_service import generate_access_token
from defect_tracker.utils.crypto import hash_password

TEST_PASSWORD = "S3cure-pass!"


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


# ── Users & auth ─────────────────────────────────────────────────────────


@pytest.fixture()
def user_password():
    """Plain-text password shared by every fixture user."""
    return TEST_PASSWORD


@pytest.fixture(scope="session")
def password_hash():
    """Hash the shared test password once per session."""
    return hash_password(TEST_PASSWORD)


def _make_user(username, role, password_hash):
    user = User(username=username, password_hash=password_hash, role=role)
    _db.session.add(user)
    _db.session.commit()
    return user


@pytest.fixture()
def manager(password_hash):
    return _make_user("maria", "manager", password_hash)


@pytest.fixture()
def engineer(password_hash):
    return _make_user("erik", "engineer", password_hash)


@pytest.fixture()
def other_engineer(password_hash):
    return _make_user("emma", "engineer", password_hash)


@pytest.fixture()
def observer(password_hash):
    return _make_user("otto", "observer", password_hash)


@pytest.fixture()
def auth_headers():
    """Return a function: user → {"Authorization": "Bearer <token>"}."""
    def _headers(user):
        return {"Authorization": f"Bearer {generate_access_token(user.id, user.role)}"}
    return _headers


# ── Domain fixtures ──────────────────────────────────────────────────────


@pytest.fixture()
def project(manager):
    p = project_service.create_project({"name": "Harbour Tower", "status": "active"},
                                       actor_id=manager.id)
    _db.session.commit()
    return p


@pytest.fixture()
def stage(project):
    s = project_service.create_stage({"project_id": project.id, "name": "Construction", "order": 2})
    _db.session.commit()
    return s


@pytest.fixture()
def upload_dir(app, tmp_path, monkeypatch):
    """Point UPLOAD_FOLDER at a per-test directory."""
    path = tmp_path / "uploads"
    monkeypatch.setitem(app.config, "UPLOAD_FOLDER", str(path))
    return path
