"""
Pytest configuration and fixtures for the API tests.
"""
import os
from typing import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

# Override settings before the application modules read them
os.environ["DATABASE_URL"] = "sqlite:///./test_ahrom.db"
os.environ["SECRET_KEY"] = "test-secret-key"
for key in (
    "PARSGREEN_API_KEY",
    "ONESIGNAL_APP_ID",
    "ONESIGNAL_API_KEY",
    "MAPBOX_TOKEN",
    "MAPBOX_PUBLIC_TOKEN",
    "MODERATION_API_KEY",
):
    os.environ[key] = ""

from ahrom import models  # noqa: E402,F401
from ahrom.auth import create_session  # noqa: E402
from ahrom.database import Base, SessionLocal, engine, get_db  # noqa: E402
from ahrom.main import app  # noqa: E402
from ahrom.models import User  # noqa: E402
from ahrom.roles import grant_role  # noqa: E402
from ahrom.routes.auth import rate_limit_password_login  # noqa: E402
from ahrom.routes.geocoding import rate_limit_geocoding  # noqa: E402
from ahrom.routes.moderation import rate_limit_moderation  # noqa: E402
from ahrom.routes.routing import rate_limit_routing  # noqa: E402
from ahrom.services import geocoding_service  # noqa: E402


async def _no_rate_limit():
    return None


def _redis_unavailable():
    raise ConnectionError("Redis is not available in tests")


@pytest.fixture(scope="function")
def test_db() -> Generator:
    """Create test database session."""
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def no_redis(monkeypatch):
    """The geocoding cache runs without Redis"""
    monkeypatch.setattr(geocoding_service, "get_redis_client", _redis_unavailable)


@pytest.fixture(scope="function")
def client(test_db: Session) -> Generator:
    """Create test client with database and rate limiter overrides."""

    def override_get_db():
        try:
            yield test_db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    for limiter in (rate_limit_geocoding, rate_limit_routing, rate_limit_moderation, rate_limit_password_login):
        app.dependency_overrides[limiter] = _no_rate_limit

    # No context manager: the lifespan would try to reach Redis
    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def make_user(test_db: Session):
    """Factory creating an active user holding the given roles"""
    counter = {"n": 0}

    def _make_user(*roles: str, full_name: str = "کاربر تست", phone_number: str = None, is_active=True) -> User:
        counter["n"] += 1
        user = User(
            phone_number=phone_number or f"0912000{counter['n']:04d}",
            full_name=full_name,
            is_active=is_active,
        )
        test_db.add(user)
        test_db.flush()
        for role in roles:
            grant_role(test_db, user.id, role)
        test_db.commit()
        test_db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def auth_headers(test_db: Session):
    """Build an Authorization header for a user, optionally as an impersonation token"""

    def _auth_headers(user: User, impersonator_id: int = None) -> dict:
        session = create_session(test_db, user, impersonator_id=impersonator_id)
        return {"Authorization": f"Bearer {session['access_token']}"}

    return _auth_headers


@pytest.fixture
def customer(make_user) -> User:
    return make_user("customer", full_name="مشتری تست")


@pytest.fixture
def admin(make_user) -> User:
    return make_user("admin", full_name="مدیر سیستم")
