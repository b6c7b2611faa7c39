"""Pytest configuration and fixtures for devicegate tests."""

import os

# Must be set before devicegate modules build their engine and settings
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("ENV", "development")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

from collections.abc import Generator  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from devicegate.api.deps import get_db  # noqa: E402
from devicegate.main import app  # noqa: E402
from devicegate.models.base import Base  # noqa: E402
from devicegate.models.user import User  # noqa: E402
from devicegate.services.auth import get_password_hash  # noqa: E402

# Use SQLite in-memory for tests (fast, isolated)
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

ADMIN_DEVICE = "admin-device-0001"
MEMBER_DEVICE = "member-device-0001"


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db: Session) -> Generator[TestClient, None, None]:
    """Create a test client with database override."""

    def override_get_db():
        try:
            yield db
        finally:
            pass  # Don't close the session here, let the db fixture handle it

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def member_user(db: Session) -> User:
    """A member account bound to MEMBER_DEVICE."""
    user = User(
        username="member",
        email="member@example.com",
        password_hash=get_password_hash("memberpassword123"),
        role="member",
        device_id=MEMBER_DEVICE,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def admin_user(db: Session) -> User:
    """An admin account bound to ADMIN_DEVICE."""
    user = User(
        username="adminuser",
        email="admin@example.com",
        password_hash=get_password_hash("adminpassword123"),
        role="admin",
        device_id=ADMIN_DEVICE,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def admin_headers(client: TestClient, admin_user: User) -> dict[str, str]:
    """Get authentication headers for the admin user."""
    response = client.post(
        "/api/auth/login",
        data={"username": "adminuser", "password": "adminpassword123", "device_id": ADMIN_DEVICE},
    )
    assert response.status_code == 200, f"Login failed: {response.json()}"
    token = response.json()["access_token"]
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def member_headers(client: TestClient, member_user: User) -> dict[str, str]:
    """Get authentication headers for the member user."""
    response = client.post(
        "/api/auth/login",
        data={"username": "member", "password": "memberpassword123", "device_id": MEMBER_DEVICE},
    )
    assert response.status_code == 200, f"Login failed: {response.json()}"
    token = response.json()["access_token"]
    return {"Authorization": f"Bearer {token}"}
