"""
app/api/verifications.py

Purpose: Profile verification endpoints (admin review workflow)
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from app.core.security import ensure_owner_or_admin, get_current_user, require_admin
from app.models.profile import VerificationStatus
from app.schemas.profile import VerificationStatusUpdate, VerificationStepsUpdate
from app.schemas.response import success_response
from app.services import profile_service, verification_service

router = APIRouter()


@router.post("/profile/{profile_id}", status_code=201)
async def create_verification(profile_id: str, _: Dict[str, Any] = Depends(require_admin)):
    """Creates a verification for a profile that has none (e.g. imported data)."""
    existing = await verification_service.find_verification_by_profile_id(profile_id)
    if existing:
        return success_response(existing, "Verification already exists")
    return success_response(await verification_service.create_verification(profile_id), "Verification created")


@router.get("")
async def list_verifications(
    verification_status: Optional[VerificationStatus] = None,
    min_progress: Optional[int] = Query(None, ge=0, le=100),
    max_progress: Optional[int] = Query(None, ge=0, le=100),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    _: Dict[str, Any] = Depends(require_admin),
):
    result = await verification_service.list_verifications(
        verification_status.value if verification_status else None,
        min_progress,
        max_progress,
        page,
        limit,
    )
    return success_response(**result)


@router.get("/profile/{profile_id}")
async def get_verification_by_profile(profile_id: str, user: Dict[str, Any] = Depends(get_current_user)):
    profile = await profile_service.get_profile(profile_id, user)
    ensure_owner_or_admin(user, profile["user_id"])
    return success_response(await verification_service.get_verification_by_profile_id(profile_id))


@router.get("/{verification_id}")
async def get_verification(verification_id: str, _: Dict[str, Any] = Depends(require_admin)):
    return success_response(await verification_service.get_verification_by_id(verification_id))


@router.put("/{verification_id}/steps")
async def update_steps(
    verification_id: str,
    data: VerificationStepsUpdate,
    _: Dict[str, Any] = Depends(require_admin),
):
    return success_response(await verification_service.update_verification_steps(verification_id, data))


@router.patch("/{verification_id}/status")
async def update_status(
    verification_id: str,
    data: VerificationStatusUpdate,
    _: Dict[str, Any] = Depends(require_admin),
):
    return success_response(await verification_service.update_verification_status(verification_id, data))
