"""
app/services/coupon_pricing.py

Purpose: Coupon discount rules

- Plan / upgrade allow-list checks
- Percentage, fixed-amount and plan-assignment pricing
- Availability checks (active, date window, usage limit)

Pure functions over plain dicts; no database access.
"""

from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Any, Dict, Optional

from app.models.coupon import CouponErrorCode, CouponType, UNLIMITED_USES
from app.core.logging import get_logger

logger = get_logger(__name__)


@dataclass
class CouponApplication:
    original_price: float
    final_price: float
    discount: float
    success: bool
    error: Optional[str] = None
    assigned_plan_code: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _plan_keys(plan: Dict[str, Any]) -> set:
    # Allow-lists may reference a plan by id or by code
    return {str(plan[k]) for k in ("id", "code") if plan.get(k) is not None}


def is_coupon_valid_for_plan(
    coupon: Dict[str, Any],
    plan_id: Optional[str] = None,
    upgrade_id: Optional[str] = None,
) -> bool:
    """
    Checks a coupon's plan/upgrade allow-lists.

    A coupon with neither list set applies to anything. Otherwise it applies
    only when plan_id is in valid_plan_ids or upgrade_id is in valid_upgrade_ids.
    """
    valid_plans = [str(p) for p in coupon.get("valid_plan_ids") or []]
    valid_upgrades = [str(u) for u in coupon.get("valid_upgrade_ids") or []]

    if not valid_plans and not valid_upgrades:
        return True

    if plan_id is not None and str(plan_id) in valid_plans:
        return True

    if upgrade_id is not None and str(upgrade_id) in valid_upgrades:
        return True

    return False


def _is_valid_for(coupon: Dict[str, Any], plan: Dict[str, Any], upgrade_id: Optional[str]) -> bool:
    keys = _plan_keys(plan) or {None}
    return any(is_coupon_valid_for_plan(coupon, key, upgrade_id) for key in keys)


def apply_coupon_to_plan(
    plan: Dict[str, Any],
    coupon: Optional[Dict[str, Any]],
    upgrade_id: Optional[str] = None,
) -> CouponApplication:
    """
    Prices `plan` (a dict with "price" and "id"/"code") after applying `coupon`.

    Returns:
        CouponApplication; on failure the price is left unchanged, except for
        free plans where the final price is 0.
    """
    price = float(plan.get("price") or 0)

    if not coupon:
        return CouponApplication(price, price, 0.0, True)

    if not _is_valid_for(coupon, plan, upgrade_id):
        return CouponApplication(
            price, price, 0.0, False,
            error="Coupon is not valid for this plan or upgrade",
        )

    if price <= 0:
        return CouponApplication(
            price, 0.0, price, False,
            error="Coupons cannot be applied to free plans",
        )

    coupon_type = coupon.get("type")
    value = float(coupon.get("value") or 0)
    assigned_plan_code = None
    final_price = price

    if coupon_type == CouponType.PERCENTAGE:
        final_price = price - (price * value) / 100
    elif coupon_type == CouponType.FIXED_AMOUNT:
        final_price = price - value
    elif coupon_type == CouponType.PLAN_ASSIGNMENT:
        final_price = 0.0
        assigned_plan_code = coupon.get("plan_code")
    else:
        logger.warning(f"Unknown coupon type: {coupon_type}", extra={"coupon_code": coupon.get("code")})

    final_price = max(0.0, final_price)

    return CouponApplication(
        original_price=price,
        final_price=final_price,
        discount=price - final_price,
        success=True,
        assigned_plan_code=assigned_plan_code,
    )


def is_coupon_exhausted(coupon: Dict[str, Any]) -> bool:
    max_uses = coupon.get("max_uses", UNLIMITED_USES)
    if max_uses == UNLIMITED_USES:
        return False
    return int(coupon.get("current_uses") or 0) >= int(max_uses)


def remaining_uses(coupon: Dict[str, Any]) -> int:
    """Uses left, or -1 for unlimited coupons."""
    max_uses = coupon.get("max_uses", UNLIMITED_USES)
    if max_uses == UNLIMITED_USES:
        return UNLIMITED_USES
    return max(0, int(max_uses) - int(coupon.get("current_uses") or 0))


def coupon_availability_error(
    coupon: Dict[str, Any],
    now: Optional[datetime] = None,
) -> Optional[CouponErrorCode]:
    """
    Returns the first reason the coupon cannot be used at `now`, or None.
    """
    now = now or datetime.utcnow()

    if not coupon.get("is_active", True):
        return CouponErrorCode.INACTIVE

    valid_from = coupon.get("valid_from")
    if valid_from and now < valid_from:
        return CouponErrorCode.NOT_STARTED

    valid_until = coupon.get("valid_until")
    if valid_until and now > valid_until:
        return CouponErrorCode.EXPIRED

    if is_coupon_exhausted(coupon):
        return CouponErrorCode.EXHAUSTED

    return None


def is_coupon_currently_valid(coupon: Dict[str, Any], now: Optional[datetime] = None) -> bool:
    return coupon_availability_error(coupon, now) is None


def with_derived_fields(coupon: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Adds is_valid / is_exhausted / remaining_uses to a serialized coupon.
    """
    enriched = dict(coupon)
    enriched["is_valid"] = is_coupon_currently_valid(coupon, now)
    enriched["is_exhausted"] = is_coupon_exhausted(coupon)
    enriched["remaining_uses"] = remaining_uses(coupon)
    return enriched
