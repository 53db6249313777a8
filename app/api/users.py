"""
app/api/users.py

Purpose: User and authentication endpoints

- Register, credential login and Google OAuth bridge
- Current user, lookup, update, admin listing
- Profiles owned by a user
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request

from app.core.security import ensure_owner_or_admin, get_current_user, require_admin
from app.models.user import AccountType, UserRole
from app.schemas.response import success_response
from app.schemas.user import GoogleAuthRequest, LoginRequest, RegisterRequest, UserUpdate
from app.services import profile_service, rate_limit_service, user_service
from app.services.rate_limit_service import login_rate_limit

router = APIRouter()


@router.post("/register", status_code=201)
async def register(data: RegisterRequest):
    return await user_service.register_user(data)


@router.post("/login", dependencies=[Depends(login_rate_limit)])
async def login(data: LoginRequest, request: Request):
    """
    Returns {success, user, token}. A successful login clears the
    caller's login rate-limit window.
    """
    session = await user_service.login_user(data)
    await rate_limit_service.reset_rate_limit(rate_limit_service.client_key(request), "login")
    return session


@router.post("/auth/google")
async def auth_google(data: GoogleAuthRequest):
    return await user_service.auth_google(data)


@router.get("/me")
async def me(user: Dict[str, Any] = Depends(get_current_user)):
    return success_response(await user_service.get_user_by_id(user["id"]))


@router.get("")
async def list_users(
    role: Optional[UserRole] = None,
    account_type: Optional[AccountType] = None,
    is_verified: Optional[bool] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    _: Dict[str, Any] = Depends(require_admin),
):
    result = await user_service.list_users(
        page=page,
        limit=limit,
        role=role.value if role else None,
        account_type=account_type.value if account_type else None,
        is_verified=is_verified,
        search=search,
    )
    return success_response(**result)


@router.get("/{user_id}")
async def get_user(user_id: str, user: Dict[str, Any] = Depends(get_current_user)):
    ensure_owner_or_admin(user, user_id)
    return success_response(await user_service.get_user_by_id(user_id))


@router.put("/{user_id}")
async def update_user(user_id: str, data: UserUpdate, user: Dict[str, Any] = Depends(get_current_user)):
    updated = await user_service.update_user(user_id, data, actor=user)
    return success_response(updated, "User updated")


@router.get("/{user_id}/profiles")
async def user_profiles(user_id: str, user: Dict[str, Any] = Depends(get_current_user)):
    ensure_owner_or_admin(user, user_id)
    return success_response(await profile_service.list_user_profiles(user_id))
