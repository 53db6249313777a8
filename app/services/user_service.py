"""
app/services/user_service.py

Purpose: User accounts and authentication

- Registration and credential login (bcrypt + session token)
- Google OAuth bridge (find-or-create by email)
- Self and admin updates, admin listing
- Public user shape without password_hash
"""

from datetime import datetime
from typing import Any, Dict, Optional

import httpx
from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from app.core.config import settings
from app.core.exceptions import (
    AuthenticationError,
    ConflictError,
    ExternalServiceError,
    PermissionDeniedError,
    ResourceNotFoundError,
)
from app.core.logging import get_logger, LogContext
from app.core.security import create_access_token, hash_password, is_admin, verify_password
from app.db.mongo import get_users_collection
from app.models.user import (
    ADMIN_EDITABLE_FIELDS,
    SELF_EDITABLE_FIELDS,
    AccountType,
    AuthProvider,
    UserRole,
)
from app.schemas.user import GoogleAuthRequest, LoginRequest, RegisterRequest, UserUpdate
from utils.mongo_utils import page_meta, pagination, serialize_doc
from utils.validation_utils import normalize_email, sanitize_search, to_object_id

logger = get_logger(__name__)


def to_public_user(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """
    Serializes a user document for clients: no password_hash, derived has_password.
    """
    if doc is None:
        return None
    user = serialize_doc(doc, exclude=("password_hash",))
    user["has_password"] = bool(doc.get("password_hash"))
    user["provider"] = AuthProvider.GOOGLE.value if doc.get("google_id") else AuthProvider.CREDENTIALS.value
    return user


def _new_user_doc(email: str, name: Optional[str], account_type: str = AccountType.COMMON.value) -> Dict[str, Any]:
    now = datetime.utcnow()
    return {
        "email": email,
        "name": name or email.split("@")[0],
        "password_hash": None,
        "google_id": None,
        "image": None,
        "role": UserRole.USER.value,
        "account_type": account_type,
        "is_verified": False,
        "verification_in_progress": False,
        "email_verified": None,
        "last_login": None,
        "created_at": now,
        "updated_at": now,
    }


def _session(user: Dict[str, Any]) -> Dict[str, Any]:
    return {"success": True, "user": user, "token": create_access_token(user)}


async def register_user(data: RegisterRequest) -> Dict[str, Any]:
    """
    Creates a credential account and returns {success, user, token}.

    Raises:
        ConflictError: email already registered
    """
    users = get_users_collection()
    if await users.find_one({"email": data.email}):
        raise ConflictError("An account with this email already exists")

    doc = _new_user_doc(data.email, data.name, data.account_type)
    doc["password_hash"] = hash_password(data.password)

    try:
        result = await users.insert_one(doc)
    except DuplicateKeyError:
        raise ConflictError("An account with this email already exists")

    doc["_id"] = result.inserted_id
    logger.info("User registered", extra={"user_id": str(result.inserted_id)})
    return _session(to_public_user(doc))


async def login_user(data: LoginRequest) -> Dict[str, Any]:
    """
    Credential login. Unknown email and wrong password fail the same way.
    """
    users = get_users_collection()
    doc = await users.find_one({"email": data.email})
    if not doc or not verify_password(data.password, doc.get("password_hash")):
        logger.warning("Failed login attempt")
        raise AuthenticationError("Invalid email or password")

    updated = await _record_login(doc)
    logger.info("User logged in", extra={"user_id": str(doc["_id"])})
    return _session(to_public_user(updated))


async def _record_login(doc: Dict[str, Any]) -> Dict[str, Any]:
    now = datetime.utcnow()
    return await get_users_collection().find_one_and_update(
        {"_id": doc["_id"]},
        {"$set": {
            "last_login": {"date": now, "is_verified": bool(doc.get("is_verified"))},
            "updated_at": now,
        }},
        return_document=ReturnDocument.AFTER,
    )


async def verify_google_id_token(id_token: str, email: str) -> Dict[str, Any]:
    """
    Checks a Google ID token against the tokeninfo endpoint.

    Raises:
        AuthenticationError: token rejected, wrong audience or email mismatch
        ExternalServiceError: Google unreachable
    """
    try:
        async with httpx.AsyncClient(timeout=settings.GOOGLE_TIMEOUT) as client:
            response = await client.get(settings.GOOGLE_TOKENINFO_URL, params={"id_token": id_token})
    except httpx.TimeoutException:
        logger.error("Google tokeninfo timeout")
        raise ExternalServiceError("Google sign-in check timed out")
    except httpx.RequestError as e:
        logger.error(f"Google tokeninfo request failed: {str(e)}")
        raise ExternalServiceError("Could not reach Google to check the sign-in")

    if response.status_code != 200:
        raise AuthenticationError("Invalid Google token")

    info = response.json()
    if info.get("aud") != settings.GOOGLE_CLIENT_ID:
        raise AuthenticationError("Google token was issued for another client")
    if normalize_email(info.get("email", "")) != email:
        raise AuthenticationError("Google token does not match the email")
    return info


async def auth_google(data: GoogleAuthRequest) -> Dict[str, Any]:
    """
    Google OAuth bridge: finds the user by email or creates one, links the
    Google account and returns {success, user, token, is_new_user}.

    A session is only issued for a Google ID token that verifies against
    GOOGLE_CLIENT_ID; without a configured client ID the bridge is closed.
    """
    if not settings.GOOGLE_CLIENT_ID:
        logger.warning("Google sign-in attempted but GOOGLE_CLIENT_ID is not configured")
        raise AuthenticationError("Google sign-in is not configured")
    if not data.id_token:
        raise AuthenticationError("Google ID token required")
    google_info = await verify_google_id_token(data.id_token, data.email)

    google_id = google_info.get("sub") or data.google_id
    users = get_users_collection()
    doc = await users.find_one({"email": data.email})
    is_new_user = doc is None
    now = datetime.utcnow()

    if is_new_user:
        doc = _new_user_doc(data.email, data.name)
        doc.update({"google_id": google_id, "image": data.image, "email_verified": now})
        try:
            result = await users.insert_one(doc)
        except DuplicateKeyError:
            raise ConflictError("An account with this email already exists")
        doc["_id"] = result.inserted_id
        logger.info("User created from Google sign-in", extra={"user_id": str(doc["_id"])})
    else:
        link: Dict[str, Any] = {"updated_at": now}
        if google_id and not doc.get("google_id"):
            link["google_id"] = google_id
        if data.image and not doc.get("image"):
            link["image"] = data.image
        if not doc.get("email_verified"):
            link["email_verified"] = now
        doc = await users.find_one_and_update(
            {"_id": doc["_id"]}, {"$set": link}, return_document=ReturnDocument.AFTER
        )

    doc = await _record_login(doc)
    session = _session(to_public_user(doc))
    session["is_new_user"] = is_new_user
    return session


async def get_user_by_id(user_id: str) -> Dict[str, Any]:
    doc = await get_users_collection().find_one({"_id": to_object_id(user_id, "user_id")})
    if not doc:
        raise ResourceNotFoundError("User not found")
    return to_public_user(doc)


async def get_user_by_email(email: str) -> Optional[Dict[str, Any]]:
    return to_public_user(await get_users_collection().find_one({"email": normalize_email(email)}))


async def update_user(user_id: str, data: UserUpdate, actor: Dict[str, Any]) -> Dict[str, Any]:
    """
    Applies an update as `actor`. Users may only edit their own account and
    only SELF_EDITABLE_FIELDS; admins may edit ADMIN_EDITABLE_FIELDS on anyone.
    """
    admin = is_admin(actor)
    if not admin and str(actor.get("id")) != str(user_id):
        raise PermissionDeniedError("You can only update your own account")

    changes = data.model_dump(exclude_unset=True, mode="python")
    allowed = ADMIN_EDITABLE_FIELDS if admin else SELF_EDITABLE_FIELDS
    forbidden = sorted(set(changes) - allowed)
    if forbidden:
        raise PermissionDeniedError(
            "Some fields can only be changed by an administrator",
            details={"fields": forbidden}
        )

    with LogContext(user_id=str(user_id)):
        changes["updated_at"] = datetime.utcnow()
        updated = await get_users_collection().find_one_and_update(
            {"_id": to_object_id(user_id, "user_id")},
            {"$set": changes},
            return_document=ReturnDocument.AFTER,
        )
        if not updated:
            raise ResourceNotFoundError("User not found")
        logger.info(f"User updated ({', '.join(sorted(k for k in changes if k != 'updated_at'))})")
        return to_public_user(updated)


async def list_users(
    page: int = 1,
    limit: int = 20,
    role: Optional[str] = None,
    account_type: Optional[str] = None,
    is_verified: Optional[bool] = None,
    search: Optional[str] = None,
) -> Dict[str, Any]:
    query: Dict[str, Any] = {}
    if role:
        query["role"] = role
    if account_type:
        query["account_type"] = account_type
    if is_verified is not None:
        query["is_verified"] = is_verified
    term = sanitize_search(search)
    if term:
        query["$or"] = [
            {"email": {"$regex": term, "$options": "i"}},
            {"name": {"$regex": term, "$options": "i"}},
        ]

    page, limit, skip = pagination(page, limit)
    users = get_users_collection()
    cursor = users.find(query).sort("created_at", DESCENDING).skip(skip).limit(limit)
    items = [to_public_user(doc) async for doc in cursor]
    total = await users.count_documents(query)
    return {"users": items, **page_meta(total, page, limit)}
