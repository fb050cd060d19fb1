"""Pytest configuration and fixtures."""

import os

# Settings are read once at import time; keep hashing cheap and mail local for tests.
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["SMTP_HOST"] = ""
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from accounts.database import Base, get_db, init_db  # noqa: E402
from accounts.models.user import Role  # noqa: E402
from accounts.services.jwt import get_jwt_service  # noqa: E402
from accounts.services.users import UserService  # noqa: E402

TEST_PASSWORD = "password123"


@pytest.fixture(name="db_session")
def db_session_fixture():
    """Create an in-memory SQLite database for tests."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    testing_session_local = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


def _build_client(db_session: Session, raise_server_exceptions: bool = True):
    from accounts.rate_limit import limiter
    from main import app

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    limiter.enabled = False
    try:
        with TestClient(app, raise_server_exceptions=raise_server_exceptions) as c:
            yield c
    finally:
        limiter.enabled = True
        app.dependency_overrides.clear()


@pytest.fixture(name="client")
def client_fixture(db_session: Session):
    """Create a test client with overridden DB dependency and disabled rate limiting."""
    yield from _build_client(db_session)


@pytest.fixture(name="lenient_client")
def lenient_client_fixture(db_session: Session):
    """Like client, but unhandled errors come back as 500 responses instead of raising."""
    yield from _build_client(db_session, raise_server_exceptions=False)


def _make_user(db_session: Session, email: str, role: str = Role.USER.value) -> dict:
    user = UserService().create_user(
        db_session,
        first_name="Test",
        last_name="User",
        email=email,
        password=TEST_PASSWORD,
        password_confirm=TEST_PASSWORD,
        role=role,
    )
    token = get_jwt_service().create_token(user.id)
    return {
        "user_id": user.id,
        "email": user.email,
        "password": TEST_PASSWORD,
        "token": token,
        "headers": {"Authorization": f"Bearer {token}"},
    }


@pytest.fixture(name="test_user")
def test_user_fixture(db_session: Session):
    """Create a regular user and return its credentials and a session token."""
    return _make_user(db_session, "test@example.com")


@pytest.fixture(name="admin_user")
def admin_user_fixture(db_session: Session):
    """Create an admin user and return its credentials and a session token."""
    return _make_user(db_session, "admin@example.com", role=Role.ADMIN.value)
