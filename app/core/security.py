"""
app/core/security.py

Purpose: Authentication primitives

- Password hashing (bcrypt)
- Session token issuing and decoding (HS256 JWT)
- FastAPI dependencies: current user, optional user, admin guard
"""

from datetime import datetime, timedelta
from typing import Any, Dict, Optional

import bcrypt
import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.config import settings
from app.core.exceptions import AuthenticationError, PermissionDeniedError
from app.core.logging import get_logger

logger = get_logger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

# User fields copied into the token so clients can render the session without a lookup
TOKEN_USER_FIELDS = ("email", "name", "role", "is_verified", "email_verified", "has_password", "provider")


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed: Optional[str]) -> bool:
    if not password or not hashed:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


def create_access_token(user: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Issues a session token for a serialized user document.

    Args:
        user: Public user dict (must contain "id")
        expires_delta: Override for JWT_EXPIRE_DAYS

    Returns:
        Encoded JWT string
    """
    now = datetime.utcnow()
    expire = now + (expires_delta or timedelta(days=settings.JWT_EXPIRE_DAYS))

    payload = {"sub": str(user["id"]), "iat": now, "exp": expire}
    for field in TOKEN_USER_FIELDS:
        if field in user:
            value = user[field]
            payload[field] = value.isoformat() if isinstance(value, datetime) else value

    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> Dict[str, Any]:
    """
    Decodes and verifies a session token.

    Raises:
        AuthenticationError: expired, tampered or malformed token
    """
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token expired")
    except jwt.PyJWTError:
        raise AuthenticationError("Invalid token")

    if not payload.get("sub"):
        raise AuthenticationError("Malformed token")
    return payload


def _payload_to_user(payload: Dict[str, Any]) -> Dict[str, Any]:
    user = {"id": payload["sub"]}
    for field in TOKEN_USER_FIELDS:
        if field in payload:
            user[field] = payload[field]
    user.setdefault("role", "user")
    return user


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Dict[str, Any]:
    """
    Resolves the Bearer token into the session user ({id, email, role, ...}).
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Authentication required")
    return _payload_to_user(decode_access_token(credentials.credentials))


async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[Dict[str, Any]]:
    """
    Same as get_current_user but returns None for anonymous requests.
    An invalid token is still rejected.
    """
    if credentials is None or not credentials.credentials:
        return None
    return _payload_to_user(decode_access_token(credentials.credentials))


async def require_admin(current_user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    if current_user.get("role") != "admin":
        logger.warning("Admin route denied", extra={"user_id": current_user.get("id")})
        raise PermissionDeniedError("Admin access required")
    return current_user


def is_admin(user: Optional[Dict[str, Any]]) -> bool:
    return bool(user) and user.get("role") == "admin"


def ensure_owner_or_admin(user: Dict[str, Any], owner_id: Any) -> None:
    """
    Raises PermissionDeniedError unless `user` owns the resource or is an admin.
    """
    if is_admin(user):
        return
    if str(owner_id) != str(user.get("id")):
        raise PermissionDeniedError("You do not have access to this resource")
