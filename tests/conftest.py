import pytest
from fastapi.testclient import TestClient

from app.core.security import create_access_token
from app.main import app

USER_ID = "64b7f0c2a1b2c3d4e5f60718"
OTHER_USER_ID = "64b7f0c2a1b2c3d4e5f60719"
ADMIN_ID = "64b7f0c2a1b2c3d4e5f6071a"


@pytest.fixture
def client():
    # No context manager: the lifespan (Mongo, cron) is not started in tests
    return TestClient(app)


def _headers(user):
    return {"Authorization": f"Bearer {create_access_token(user)}"}


@pytest.fixture
def user_headers():
    return _headers({"id": USER_ID, "email": "user@example.com", "name": "User", "role": "user"})


@pytest.fixture
def other_user_headers():
    return _headers({"id": OTHER_USER_ID, "email": "other@example.com", "name": "Other", "role": "user"})


@pytest.fixture
def admin_headers():
    return _headers({"id": ADMIN_ID, "email": "admin@example.com", "name": "Admin", "role": "admin"})


@pytest.fixture
def no_rate_limit(monkeypatch):
    """Rate limiting hits Mongo; route tests stub it out."""
    from app.services import rate_limit_service

    async def allow(client_id, limit_type="coupon"):
        return {"allowed": True, "remaining": 99}

    async def reset(client_id, limit_type):
        return None

    monkeypatch.setattr(rate_limit_service, "check_rate_limit", allow)
    monkeypatch.setattr(rate_limit_service, "reset_rate_limit", reset)
