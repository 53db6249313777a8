import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock

import httpx
import pytest
from bson import ObjectId

from app.core.config import settings, validate_settings
from app.core.exceptions import AuthenticationError
from app.schemas.user import GoogleAuthRequest
from app.services import user_service

CLIENT_ID = "1234.apps.googleusercontent.com"


def run(coro):
    return asyncio.run(coro)


def fake_users(existing=None):
    stored = {}
    if existing:
        stored[existing["_id"]] = dict(existing)

    def insert(doc):
        doc_id = ObjectId()
        stored[doc_id] = dict(doc, _id=doc_id)
        return SimpleNamespace(inserted_id=doc_id)

    def save(query, update, return_document=None):
        stored[query["_id"]].update(update["$set"])
        return dict(stored[query["_id"]])

    return SimpleNamespace(
        find_one=AsyncMock(return_value=existing),
        insert_one=AsyncMock(side_effect=insert),
        find_one_and_update=AsyncMock(side_effect=save),
    )


@pytest.fixture
def google_configured(monkeypatch):
    monkeypatch.setattr(settings, "GOOGLE_CLIENT_ID", CLIENT_ID)


def google_answers(monkeypatch, status_code, payload):
    real_client = httpx.AsyncClient

    def handler(request):
        assert request.url.params["id_token"] == "token-abc"
        return httpx.Response(status_code, json=payload)

    monkeypatch.setattr(
        httpx, "AsyncClient",
        lambda **kwargs: real_client(transport=httpx.MockTransport(handler), **kwargs),
    )


def test_google_bridge_closed_without_client_id(monkeypatch):
    monkeypatch.setattr(settings, "GOOGLE_CLIENT_ID", None)
    users = fake_users()
    monkeypatch.setattr(user_service, "get_users_collection", lambda: users)

    with pytest.raises(AuthenticationError):
        run(user_service.auth_google(GoogleAuthRequest(email="a@example.com", google_id="g-1", id_token="token-abc")))
    users.find_one.assert_not_called()
    users.insert_one.assert_not_called()


def test_google_route_rejects_unverified_call(client, monkeypatch):
    monkeypatch.setattr(settings, "GOOGLE_CLIENT_ID", None)
    response = client.post("/api/user/auth/google", json={"email": "victim@example.com", "google_id": "123"})
    assert response.status_code == 401
    assert response.json()["error"] == "AUTHENTICATION_FAILED"
    assert "token" not in response.json()


def test_google_token_required(monkeypatch, google_configured):
    users = fake_users()
    monkeypatch.setattr(user_service, "get_users_collection", lambda: users)

    with pytest.raises(AuthenticationError):
        run(user_service.auth_google(GoogleAuthRequest(email="a@example.com", google_id="g-1")))
    users.find_one.assert_not_called()


def test_token_for_another_client_rejected(monkeypatch, google_configured):
    google_answers(monkeypatch, 200, {"aud": "someone-else", "email": "a@example.com", "sub": "g-1"})
    with pytest.raises(AuthenticationError):
        run(user_service.verify_google_id_token("token-abc", "a@example.com"))


def test_token_for_another_email_rejected(monkeypatch, google_configured):
    google_answers(monkeypatch, 200, {"aud": CLIENT_ID, "email": "b@example.com", "sub": "g-1"})
    with pytest.raises(AuthenticationError):
        run(user_service.verify_google_id_token("token-abc", "a@example.com"))


def test_token_refused_by_google(monkeypatch, google_configured):
    google_answers(monkeypatch, 400, {"error": "invalid_token"})
    with pytest.raises(AuthenticationError):
        run(user_service.verify_google_id_token("token-abc", "a@example.com"))


def test_verified_google_sign_in_creates_user(monkeypatch, google_configured):
    google_answers(monkeypatch, 200, {"aud": CLIENT_ID, "email": "new@example.com", "sub": "g-1"})
    users = fake_users()
    monkeypatch.setattr(user_service, "get_users_collection", lambda: users)

    session = run(user_service.auth_google(GoogleAuthRequest(email="New@Example.com", id_token="token-abc")))

    created = users.insert_one.call_args.args[0]
    assert created["email"] == "new@example.com"
    assert created["google_id"] == "g-1"
    assert created["email_verified"] is not None
    assert session["is_new_user"] is True
    assert session["token"]
    assert session["user"]["provider"] == "google"
    assert "password_hash" not in session["user"]


def test_google_sign_in_links_existing_account(monkeypatch, google_configured):
    existing = {
        "_id": ObjectId(),
        "email": "old@example.com",
        "name": "Old",
        "password_hash": "hash",
        "google_id": None,
        "image": None,
        "role": "user",
        "is_verified": False,
        "email_verified": None,
    }
    monkeypatch.setattr(user_service, "verify_google_id_token", AsyncMock(return_value={"sub": "g-9"}))
    users = fake_users(existing)
    monkeypatch.setattr(user_service, "get_users_collection", lambda: users)

    session = run(user_service.auth_google(GoogleAuthRequest(email="old@example.com", id_token="token-abc")))

    link = users.find_one_and_update.call_args_list[0].args[1]["$set"]
    assert link["google_id"] == "g-9"
    assert "email_verified" in link
    users.insert_one.assert_not_called()
    assert session["is_new_user"] is False
    assert session["user"]["has_password"] is True


def test_production_requires_google_client_id(monkeypatch):
    monkeypatch.setattr(settings, "ENVIRONMENT", "production")
    monkeypatch.setattr(settings, "CORS_ORIGINS", ["https://marketplace.example.com"])
    monkeypatch.setattr(settings, "SECRET_KEY", "x" * 40)
    monkeypatch.setattr(settings, "GOOGLE_CLIENT_ID", None)

    with pytest.raises(ValueError, match="GOOGLE_CLIENT_ID"):
        validate_settings()

    monkeypatch.setattr(settings, "GOOGLE_CLIENT_ID", CLIENT_ID)
    assert validate_settings() is True
