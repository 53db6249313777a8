from datetime import datetime, timedelta

import jwt
import pytest

from app.core.config import settings
from app.core.exceptions import AuthenticationError, PermissionDeniedError
from app.core.security import (
    create_access_token,
    decode_access_token,
    ensure_owner_or_admin,
    hash_password,
    verify_password,
)
from app.services.user_service import to_public_user


def test_password_hash_round_trip():
    hashed = hash_password("s3cret-pass")
    assert hashed != "s3cret-pass"
    assert verify_password("s3cret-pass", hashed)
    assert not verify_password("wrong", hashed)


def test_verify_password_without_hash():
    assert not verify_password("anything", None)
    assert not verify_password("anything", "not-a-bcrypt-hash")


def test_token_carries_user_fields():
    verified_at = datetime(2024, 1, 2, 3, 4, 5)
    token = create_access_token({
        "id": "64b7f0c2a1b2c3d4e5f60718",
        "email": "user@example.com",
        "name": "User",
        "role": "admin",
        "is_verified": True,
        "email_verified": verified_at,
        "has_password": True,
        "provider": "credentials",
        "password_hash": "never-in-token",
    })
    payload = decode_access_token(token)
    assert payload["sub"] == "64b7f0c2a1b2c3d4e5f60718"
    assert payload["role"] == "admin"
    assert payload["is_verified"] is True
    assert payload["email_verified"] == verified_at.isoformat()
    assert "password_hash" not in payload


def test_expired_token_is_rejected():
    token = create_access_token({"id": "abc"}, expires_delta=timedelta(seconds=-1))
    with pytest.raises(AuthenticationError) as exc:
        decode_access_token(token)
    assert exc.value.message == "Token expired"


def test_tampered_token_is_rejected():
    token = jwt.encode({"sub": "abc", "role": "admin"}, "another-secret", algorithm=settings.JWT_ALGORITHM)
    with pytest.raises(AuthenticationError):
        decode_access_token(token)


def test_token_without_subject_is_rejected():
    token = jwt.encode({"email": "x@example.com"}, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)
    with pytest.raises(AuthenticationError):
        decode_access_token(token)


def test_owner_or_admin():
    ensure_owner_or_admin({"id": "u1", "role": "user"}, "u1")
    ensure_owner_or_admin({"id": "admin", "role": "admin"}, "u1")
    with pytest.raises(PermissionDeniedError):
        ensure_owner_or_admin({"id": "u2", "role": "user"}, "u1")


def test_public_user_hides_password_hash():
    from bson import ObjectId

    doc = {"_id": ObjectId(), "email": "a@b.co", "password_hash": "hash", "google_id": None}
    user = to_public_user(doc)
    assert "password_hash" not in user
    assert user["has_password"] is True
    assert user["provider"] == "credentials"
    assert user["id"] == str(doc["_id"])

    google_user = to_public_user({"_id": ObjectId(), "email": "g@b.co", "password_hash": None, "google_id": "123"})
    assert google_user["has_password"] is False
    assert google_user["provider"] == "google"
