import pytest

from app.roledash import auth as auth_module
from app.roledash import create_app
from app.roledash.db import session_scope
from app.roledash.models import ActivityLog, Base, User
from app.roledash.security import hash_password, issue_token

SEED_USERS = {
    "user": ("user@example.com", "Plain User"),
    "operator": ("operator@example.com", "Ops Person"),
    "administrator": ("admin@example.com", "Admin Person"),
}
SEED_PASSWORD = "password123"


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("JWT_SECRET", "test-jwt-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("ACTIVITY_LOG_WORKERS", "1")
    auth_module._login_attempts.clear()

    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        for role, (email, name) in SEED_USERS.items():
            s.add(User(email=email, name=name, password_hash=hash_password(SEED_PASSWORD), role=role, is_active=True))

    yield app

    app.extensions["activity_writer"].shutdown()
    engine.dispose()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def user_ids(app):
    with session_scope(app) as s:
        return {u.role: u.id for u in s.query(User).all()}


@pytest.fixture()
def auth_headers(app, user_ids):
    """Authorization headers per seeded role."""
    with app.app_context():
        return {role: {"Authorization": f"Bearer {issue_token(uid)}"} for role, uid in user_ids.items()}


@pytest.fixture()
def activity_rows(app):
    """Waits for pending activity writes, then returns every activity row (oldest first)."""

    def _rows(action=None):
        assert app.extensions["activity_writer"].drain(5)
        with session_scope(app) as s:
            q = s.query(ActivityLog).order_by(ActivityLog.id.asc())
            if action is not None:
                q = q.filter(ActivityLog.action == action)
            rows = q.all()
            s.expunge_all()
        return rows

    return _rows
