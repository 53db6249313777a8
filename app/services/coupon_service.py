"""
app/services/coupon_service.py

Purpose: Coupon management

- Coupon CRUD with plan existence and date-window checks
- Validation against availability rules and plan/upgrade allow-lists
- Pricing a plan variant with a coupon
- Atomic redemption and usage statistics
"""

from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from app.core.exceptions import BusinessRuleError, ConflictError, ResourceNotFoundError, ValidationError
from app.core.logging import get_logger, LogContext
from app.db.mongo import get_coupons_collection
from app.models.catalog import find_variant
from app.models.coupon import COUPON_ERROR_MESSAGES, CouponErrorCode, CouponType, UNLIMITED_USES
from app.schemas.coupon import CouponCreate, CouponUpdate
from app.services import plan_service
from app.services.coupon_pricing import (
    CouponApplication,
    apply_coupon_to_plan,
    coupon_availability_error,
    is_coupon_valid_for_plan,
    with_derived_fields,
)
from utils.mongo_utils import page_meta, pagination, serialize_doc
from utils.validation_utils import normalize_code, sanitize_search, to_object_id

logger = get_logger(__name__)


async def _check_plan_references(coupon_type, plan_code: Optional[str], variant_days: Optional[int], valid_plan_ids) -> None:
    if coupon_type == CouponType.PLAN_ASSIGNMENT:
        plan = await plan_service.find_plan_by_code(plan_code or "")
        if not plan:
            raise ValidationError(f"Plan '{plan_code}' does not exist", details={"field": "plan_code"})
        if not find_variant(plan, variant_days or 0):
            raise ValidationError(
                f"Plan '{plan['code']}' has no {variant_days}-day variant",
                details={"field": "variant_days"}
            )

    for code in valid_plan_ids or []:
        if not await plan_service.find_plan_by_code(code):
            raise ValidationError(f"Plan '{code}' does not exist", details={"field": "valid_plan_ids"})


async def create_coupon(data: CouponCreate, created_by: Optional[str] = None) -> Dict[str, Any]:
    """
    Creates a coupon.

    Raises:
        ConflictError: code already taken
        ValidationError: referenced plan or variant does not exist
    """
    with LogContext(coupon_code=data.code):
        coupons = get_coupons_collection()
        if await coupons.find_one({"code": data.code}):
            raise ConflictError(f"Coupon code '{data.code}' already exists")

        valid_plan_ids = [normalize_code(c) for c in data.valid_plan_ids]
        await _check_plan_references(data.type, data.plan_code, data.variant_days, valid_plan_ids)

        now = datetime.utcnow()
        doc = data.model_dump(mode="python")
        doc.update({
            "valid_plan_ids": valid_plan_ids,
            "current_uses": 0,
            "created_by": created_by,
            "created_at": now,
            "updated_at": now,
        })

        try:
            result = await coupons.insert_one(doc)
        except DuplicateKeyError:
            raise ConflictError(f"Coupon code '{data.code}' already exists")

        doc["_id"] = result.inserted_id
        logger.info("Coupon created")
        return with_derived_fields(serialize_doc(doc))


async def get_coupon_by_code(code: str) -> Dict[str, Any]:
    coupon = await get_coupons_collection().find_one({"code": normalize_code(code)})
    if not coupon:
        raise ResourceNotFoundError("Coupon not found")
    return with_derived_fields(serialize_doc(coupon))


async def get_coupon_by_id(coupon_id: str) -> Dict[str, Any]:
    coupon = await get_coupons_collection().find_one({"_id": to_object_id(coupon_id, "coupon_id")})
    if not coupon:
        raise ResourceNotFoundError("Coupon not found")
    return with_derived_fields(serialize_doc(coupon))


async def list_coupons(
    code: Optional[str] = None,
    coupon_type: Optional[str] = None,
    is_active: Optional[bool] = None,
    valid_only: bool = False,
    page: int = 1,
    limit: int = 20,
) -> Dict[str, Any]:
    """
    Lists coupons newest first.

    Returns:
        {"coupons": [...], **pagination metadata}
    """
    query: Dict[str, Any] = {}
    term = sanitize_search(normalize_code(code) if code else None)
    if term:
        query["code"] = {"$regex": term, "$options": "i"}
    if coupon_type:
        query["type"] = coupon_type
    if is_active is not None:
        query["is_active"] = is_active
    if valid_only:
        now = datetime.utcnow()
        query["valid_from"] = {"$lte": now}
        query["valid_until"] = {"$gte": now}
        query["is_active"] = True

    page, limit, skip = pagination(page, limit)
    coupons = get_coupons_collection()
    cursor = coupons.find(query).sort("created_at", DESCENDING).skip(skip).limit(limit)
    items = [with_derived_fields(serialize_doc(doc)) async for doc in cursor]
    total = await coupons.count_documents(query)

    return {"coupons": items, **page_meta(total, page, limit)}


async def update_coupon(coupon_id: str, data: CouponUpdate) -> Dict[str, Any]:
    """
    Applies a partial update, re-checking type rules and date order
    against the merged coupon.
    """
    coupons = get_coupons_collection()
    oid = to_object_id(coupon_id, "coupon_id")
    current = await coupons.find_one({"_id": oid})
    if not current:
        raise ResourceNotFoundError("Coupon not found")

    changes = data.model_dump(exclude_unset=True, mode="python")
    merged = {**current, **changes}

    if merged["valid_from"] >= merged["valid_until"]:
        raise ValidationError("valid_from must be before valid_until")
    if merged["type"] == CouponType.PERCENTAGE and float(merged["value"]) > 100:
        raise ValidationError("Percentage coupons must have a value between 0 and 100")
    if merged["type"] == CouponType.PLAN_ASSIGNMENT and not (merged.get("plan_code") and merged.get("variant_days")):
        raise ValidationError("plan_assignment coupons require plan_code and variant_days")

    if "plan_code" in changes and changes["plan_code"]:
        changes["plan_code"] = normalize_code(changes["plan_code"])
        merged["plan_code"] = changes["plan_code"]
    if "valid_plan_ids" in changes:
        changes["valid_plan_ids"] = [normalize_code(c) for c in changes["valid_plan_ids"]]

    if {"type", "plan_code", "variant_days", "valid_plan_ids"} & changes.keys():
        await _check_plan_references(
            merged["type"], merged.get("plan_code"), merged.get("variant_days"),
            changes.get("valid_plan_ids", [])
        )

    changes["updated_at"] = datetime.utcnow()
    updated = await coupons.find_one_and_update(
        {"_id": oid}, {"$set": changes}, return_document=ReturnDocument.AFTER
    )
    logger.info("Coupon updated", extra={"coupon_code": updated["code"]})
    return with_derived_fields(serialize_doc(updated))


async def delete_coupon(coupon_id: str) -> None:
    """Soft delete: the coupon is deactivated, never removed."""
    result = await get_coupons_collection().update_one(
        {"_id": to_object_id(coupon_id, "coupon_id")},
        {"$set": {"is_active": False, "updated_at": datetime.utcnow()}}
    )
    if result.matched_count == 0:
        raise ResourceNotFoundError("Coupon not found")


def _failure(code: CouponErrorCode) -> Dict[str, Any]:
    return {"is_valid": False, "error": COUPON_ERROR_MESSAGES[code], "error_code": code.value}


async def validate_coupon(
    code: str,
    plan_code: Optional[str] = None,
    upgrade_code: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Checks whether a coupon can be used now, optionally for a specific plan or upgrade.

    Returns:
        {"is_valid": True, "coupon": {...}} or {"is_valid": False, "error", "error_code"}
    """
    coupon = await get_coupons_collection().find_one({"code": normalize_code(code)})
    if not coupon:
        return _failure(CouponErrorCode.NOT_FOUND)

    error = coupon_availability_error(coupon)
    if error:
        return _failure(error)

    if plan_code or upgrade_code:
        plan_key = normalize_code(plan_code) if plan_code else None
        if not is_coupon_valid_for_plan(coupon, plan_key, upgrade_code):
            return _failure(CouponErrorCode.NOT_APPLICABLE)

    return {"is_valid": True, "coupon": with_derived_fields(serialize_doc(coupon))}


async def resolve_coupon_for_price(
    code: str,
    plan: Dict[str, Any],
    upgrade_code: Optional[str] = None,
) -> Tuple[Dict[str, Any], CouponApplication]:
    """
    Loads an available coupon and prices `plan` ({"code", "price"}) with it.

    Raises:
        ResourceNotFoundError: unknown code
        BusinessRuleError: coupon unavailable or not applicable
    """
    coupon = await get_coupons_collection().find_one({"code": normalize_code(code)})
    if not coupon:
        raise ResourceNotFoundError("Coupon not found")

    error = coupon_availability_error(coupon)
    if error:
        raise BusinessRuleError(COUPON_ERROR_MESSAGES[error], code=error.value)

    application = apply_coupon_to_plan(plan, coupon, upgrade_code)
    if not application.success:
        raise BusinessRuleError(application.error, code=CouponErrorCode.NOT_APPLICABLE.value)

    return serialize_doc(coupon), application


async def apply_coupon(
    code: str,
    plan_code: str,
    variant_days: int,
    upgrade_code: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Prices a plan variant with a coupon without redeeming it.
    """
    with LogContext(coupon_code=normalize_code(code)):
        plan = await plan_service.get_plan_by_code(plan_code)
        variant = find_variant(plan, variant_days)
        if not variant:
            raise ValidationError(f"Plan '{plan['code']}' has no {variant_days}-day variant")

        priced = {"id": plan["id"], "code": plan["code"], "price": variant["price"]}
        coupon = await get_coupons_collection().find_one({"code": normalize_code(code)})
        if not coupon:
            raise ResourceNotFoundError("Coupon not found")

        error = coupon_availability_error(coupon)
        if error:
            application = CouponApplication(
                original_price=float(variant["price"]),
                final_price=float(variant["price"]),
                discount=0.0,
                success=False,
                error=COUPON_ERROR_MESSAGES[error],
            )
        else:
            application = apply_coupon_to_plan(priced, coupon, upgrade_code)

        result = application.to_dict()
        result["coupon_code"] = coupon["code"]
        result["plan_code"] = plan["code"]
        result["variant_days"] = variant_days
        return result


async def redeem_coupon(code: str) -> Dict[str, Any]:
    """
    Consumes one use of a coupon with a single conditional update.

    Raises:
        ResourceNotFoundError: unknown code
        BusinessRuleError: coupon inactive or exhausted
    """
    code = normalize_code(code)
    coupons = get_coupons_collection()
    updated = await coupons.find_one_and_update(
        {
            "code": code,
            "is_active": True,
            "$or": [
                {"max_uses": UNLIMITED_USES},
                {"$expr": {"$lt": ["$current_uses", "$max_uses"]}},
            ],
        },
        {"$inc": {"current_uses": 1}, "$set": {"updated_at": datetime.utcnow()}},
        return_document=ReturnDocument.AFTER,
    )

    if not updated:
        existing = await coupons.find_one({"code": code})
        if not existing:
            raise ResourceNotFoundError("Coupon not found")
        reason = CouponErrorCode.INACTIVE if not existing.get("is_active") else CouponErrorCode.EXHAUSTED
        raise BusinessRuleError(COUPON_ERROR_MESSAGES[reason], code=reason.value)

    limit = "unlimited" if updated["max_uses"] == UNLIMITED_USES else updated["max_uses"]
    logger.info(
        f"Coupon redeemed ({updated['current_uses']}/{limit})",
        extra={"coupon_code": code}
    )
    return with_derived_fields(serialize_doc(updated))


async def get_coupon_stats() -> Dict[str, Any]:
    coupons = get_coupons_collection()
    now = datetime.utcnow()

    total = await coupons.count_documents({})
    active = await coupons.count_documents({"is_active": True})
    expired = await coupons.count_documents({"is_active": True, "valid_until": {"$lt": now}})
    exhausted = await coupons.count_documents({
        "is_active": True,
        "max_uses": {"$ne": UNLIMITED_USES},
        "$expr": {"$gte": ["$current_uses", "$max_uses"]},
    })

    by_type = {}
    pipeline = [
        {"$match": {"is_active": True}},
        {"$group": {"_id": "$type", "count": {"$sum": 1}}},
    ]
    async for row in coupons.aggregate(pipeline):
        by_type[row["_id"]] = row["count"]

    return {
        "total": total,
        "active": active,
        "expired": expired,
        "exhausted": exhausted,
        "by_type": by_type,
    }
