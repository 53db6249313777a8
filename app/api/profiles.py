"""
app/api/profiles.py

Purpose: Profile endpoints

- Public listing and detail
- Owner create/update/hide/show/delete
- Plan subscription and upgrade purchase
- Admin listing, restore and permanent delete
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from app.core.security import get_current_user, get_optional_user, require_admin
from app.schemas.profile import ProfileCreate, ProfileUpdate, SubscribeRequest, UpgradePurchaseRequest
from app.schemas.response import success_response
from app.services import profile_service

router = APIRouter()


@router.post("", status_code=201)
async def create_profile(data: ProfileCreate, user: Dict[str, Any] = Depends(get_current_user)):
    profile = await profile_service.create_profile(user["id"], data)
    return success_response(profile, "Profile created")


@router.get("")
async def list_profiles(
    city: Optional[str] = None,
    department: Optional[str] = None,
    plan_code: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    result = await profile_service.list_public_profiles(city, department, plan_code, page, limit)
    return success_response(**result)


@router.get("/admin/all")
async def list_profiles_admin(
    user_id: Optional[str] = None,
    search: Optional[str] = None,
    visible: Optional[bool] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    _: Dict[str, Any] = Depends(require_admin),
):
    result = await profile_service.list_profiles_admin(
        user_id=user_id, search=search, visible=visible, page=page, limit=limit
    )
    return success_response(**result)


@router.get("/admin/deleted")
async def list_deleted_profiles(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    _: Dict[str, Any] = Depends(require_admin),
):
    return success_response(**await profile_service.list_deleted_profiles(page, limit))


@router.get("/{profile_id}")
async def get_profile(profile_id: str, viewer: Optional[Dict[str, Any]] = Depends(get_optional_user)):
    return success_response(await profile_service.get_profile(profile_id, viewer))


@router.put("/{profile_id}")
async def update_profile(profile_id: str, data: ProfileUpdate, user: Dict[str, Any] = Depends(get_current_user)):
    profile = await profile_service.update_profile(profile_id, user, data)
    return success_response(profile, "Profile updated")


@router.patch("/{profile_id}/hide")
async def hide_profile(profile_id: str, user: Dict[str, Any] = Depends(get_current_user)):
    return success_response(await profile_service.set_profile_visibility(profile_id, user, False), "Profile hidden")


@router.patch("/{profile_id}/show")
async def show_profile(profile_id: str, user: Dict[str, Any] = Depends(get_current_user)):
    return success_response(await profile_service.set_profile_visibility(profile_id, user, True), "Profile shown")


@router.delete("/{profile_id}")
async def delete_profile(profile_id: str, user: Dict[str, Any] = Depends(get_current_user)):
    await profile_service.soft_delete_profile(profile_id, user)
    return success_response(message="Profile deleted")


@router.post("/{profile_id}/restore")
async def restore_profile(profile_id: str, _: Dict[str, Any] = Depends(require_admin)):
    return success_response(await profile_service.restore_profile(profile_id), "Profile restored")


@router.delete("/{profile_id}/permanent")
async def hard_delete_profile(profile_id: str, _: Dict[str, Any] = Depends(require_admin)):
    await profile_service.hard_delete_profile(profile_id)
    return success_response(message="Profile permanently deleted")


@router.post("/{profile_id}/subscribe")
async def subscribe(profile_id: str, data: SubscribeRequest, user: Dict[str, Any] = Depends(get_current_user)):
    """
    Buys a plan variant. Answers with status "assigned" (free or fully
    discounted) or "pending_payment" with the generated invoice.
    """
    result = await profile_service.subscribe_to_plan(
        profile_id, user, data.plan_code, data.variant_days, data.coupon_code
    )
    return success_response(result)


@router.post("/{profile_id}/upgrades")
async def purchase_upgrade(
    profile_id: str,
    data: UpgradePurchaseRequest,
    user: Dict[str, Any] = Depends(get_current_user),
):
    return success_response(await profile_service.purchase_upgrade(profile_id, user, data.upgrade_code))


@router.get("/{profile_id}/plan")
async def get_plan_info(profile_id: str):
    return success_response(await profile_service.get_plan_info(profile_id))
