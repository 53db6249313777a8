"""
app/api/coupons.py

Purpose: Coupon endpoints

- Admin CRUD and statistics
- Public validation and price preview (rate limited)
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from app.core.logging import get_logger
from app.core.security import require_admin
from app.models.coupon import CouponType
from app.schemas.coupon import CouponApplyRequest, CouponCreate, CouponUpdate
from app.schemas.response import success_response
from app.services import coupon_service
from app.services.rate_limit_service import coupon_rate_limit

logger = get_logger(__name__)
router = APIRouter()


@router.post("", status_code=201)
async def create_coupon(data: CouponCreate, admin: Dict[str, Any] = Depends(require_admin)):
    coupon = await coupon_service.create_coupon(data, created_by=admin["id"])
    return success_response(coupon, "Coupon created")


@router.get("")
async def list_coupons(
    code: Optional[str] = None,
    type: Optional[CouponType] = None,
    is_active: Optional[bool] = None,
    valid_only: bool = False,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    _: Dict[str, Any] = Depends(require_admin),
):
    result = await coupon_service.list_coupons(
        code=code,
        coupon_type=type.value if type else None,
        is_active=is_active,
        valid_only=valid_only,
        page=page,
        limit=limit,
    )
    return success_response(**result)


@router.get("/stats")
async def coupon_stats(_: Dict[str, Any] = Depends(require_admin)):
    return success_response(await coupon_service.get_coupon_stats())


@router.get("/validate/{code}", dependencies=[Depends(coupon_rate_limit)])
async def validate_coupon(code: str, plan_code: Optional[str] = None, upgrade_code: Optional[str] = None):
    """
    Checks whether a coupon can be used right now (and for the given plan/upgrade).
    Always answers 200; `is_valid` carries the outcome.
    """
    return success_response(await coupon_service.validate_coupon(code, plan_code, upgrade_code))


@router.post("/apply", dependencies=[Depends(coupon_rate_limit)])
async def apply_coupon(data: CouponApplyRequest):
    result = await coupon_service.apply_coupon(data.code, data.plan_code, data.variant_days, data.upgrade_code)
    return success_response(result)


@router.get("/{coupon_id}")
async def get_coupon(coupon_id: str, _: Dict[str, Any] = Depends(require_admin)):
    return success_response(await coupon_service.get_coupon_by_id(coupon_id))


@router.put("/{coupon_id}")
async def update_coupon(coupon_id: str, data: CouponUpdate, _: Dict[str, Any] = Depends(require_admin)):
    coupon = await coupon_service.update_coupon(coupon_id, data)
    return success_response(coupon, "Coupon updated")


@router.delete("/{coupon_id}")
async def delete_coupon(coupon_id: str, _: Dict[str, Any] = Depends(require_admin)):
    await coupon_service.delete_coupon(coupon_id)
    return success_response(message="Coupon deactivated")
