"""
app/services/profile_service.py

Purpose: Profile management

- Create / read / update profiles (owner or admin)
- Public listings (visible, not deleted) with location and plan filters
- Visibility toggle, soft delete, restore and hard delete
- Subscribing to plans and buying upgrades (direct or via invoice)
- Plan info (current plan, active upgrades, days remaining)
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pymongo import DESCENDING, ReturnDocument

from app.core.exceptions import BusinessRuleError, ResourceNotFoundError, ValidationError
from app.core.logging import get_logger, LogContext
from app.core.security import ensure_owner_or_admin, is_admin
from app.db.mongo import get_profile_verifications_collection, get_profiles_collection
from app.models.catalog import find_variant
from app.models.coupon import CouponType
from app.models.profile import PROFILE_PROTECTED_FIELDS
from app.schemas.profile import ProfileCreate, ProfileUpdate
from app.services import (
    coupon_service,
    invoice_service,
    plan_service,
    subscription_service,
    verification_service,
    visibility_service,
)
from utils.mongo_utils import page_meta, pagination, serialize_doc
from utils.time_utils import days_remaining
from utils.validation_utils import sanitize_search, to_object_id

logger = get_logger(__name__)

PUBLIC_FILTER = {"visible": True, "is_deleted": {"$ne": True}, "is_active": True}


async def _attach_verifications(profiles: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Embeds each profile's verification document and enriches it with the
    computed steps.
    """
    ids = [p["_id"] for p in profiles]
    by_profile = {}
    if ids:
        cursor = get_profile_verifications_collection().find({"profile_id": {"$in": ids}})
        by_profile = {doc["profile_id"]: serialize_doc(doc) async for doc in cursor}

    result = []
    for profile in profiles:
        serialized = serialize_doc(profile)
        serialized["verification"] = by_profile.get(profile["_id"])
        result.append(verification_service.enrich_profile_verification(serialized))
    return result


async def _get_raw_profile(profile_id: str, include_deleted: bool = False) -> Dict[str, Any]:
    query: Dict[str, Any] = {"_id": to_object_id(profile_id, "profile_id")}
    if not include_deleted:
        query["is_deleted"] = {"$ne": True}
    profile = await get_profiles_collection().find_one(query)
    if not profile:
        raise ResourceNotFoundError("Profile not found")
    return profile


async def create_profile(user_id: str, data: ProfileCreate) -> Dict[str, Any]:
    """
    Creates a profile owned by `user_id` together with its verification document.

    A user's second and later profiles require independent verification.
    """
    profiles = get_profiles_collection()
    owner = to_object_id(user_id, "user_id")
    existing = await profiles.count_documents({"user_id": owner})

    now = datetime.utcnow()
    doc = data.model_dump(mode="python")
    doc["contact"].update({"has_changed": False, "last_change_date": None})
    doc.update({
        "user_id": owner,
        "verification_id": None,
        "plan_assignment": None,
        "upgrades": [],
        "upgrade_history": [],
        "last_shown_at": None,
        "visible": True,
        "is_deleted": False,
        "created_at": now,
        "updated_at": now,
    })

    result = await profiles.insert_one(doc)
    profile_id = str(result.inserted_id)

    with LogContext(profile_id=profile_id, user_id=str(user_id)):
        verification = await verification_service.create_verification(
            profile_id, requires_independent_verification=existing >= 1
        )
        await profiles.update_one(
            {"_id": result.inserted_id},
            {"$set": {"verification_id": to_object_id(verification["id"])}}
        )
        doc["_id"] = result.inserted_id
        doc["verification_id"] = verification["id"]
        logger.info("Profile created")

    profile = serialize_doc(doc)
    profile["verification"] = verification
    return verification_service.enrich_profile_verification(profile)


async def get_profile(profile_id: str, viewer: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Returns a profile with its enriched verification. Deleted profiles are
    only visible to admins.
    """
    profile = await _get_raw_profile(profile_id, include_deleted=is_admin(viewer))
    return (await _attach_verifications([profile]))[0]


async def list_public_profiles(
    city: Optional[str] = None,
    department: Optional[str] = None,
    plan_code: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
) -> Dict[str, Any]:
    """
    Public listing ordered by effective plan level and upgrade effects,
    rotating profiles with equal scores. Served profiles get last_shown_at.

    Returns:
        {"profiles": [...], "level_separators": [...], **pagination metadata}
    """
    query: Dict[str, Any] = dict(PUBLIC_FILTER)
    if city:
        query["location.city.value"] = city
    if department:
        query["location.department.value"] = department
    if plan_code:
        query["plan_assignment.plan_code"] = plan_code.strip().upper()

    now = datetime.utcnow()
    page, limit, skip = pagination(page, limit)
    profiles = get_profiles_collection()
    candidates = [doc async for doc in profiles.find(query)]

    plans_by_code = {p["code"]: p for p in await plan_service.list_plans()}
    upgrades_by_code = {u["code"]: u for u in await plan_service.list_upgrades(active_only=True)}
    seed = await visibility_service.current_rotation_seed(now)
    ordered = visibility_service.sort_profiles(candidates, plans_by_code, upgrades_by_code, seed, now)

    served = ordered[skip:skip + limit]
    if served:
        await profiles.update_many(
            {"_id": {"$in": [doc["_id"] for doc in served]}},
            {"$set": {"last_shown_at": now}},
        )

    return {
        "profiles": await _attach_verifications(served),
        "level_separators": visibility_service.level_separators(served),
        **page_meta(len(ordered), page, limit),
    }


async def list_profiles_admin(
    user_id: Optional[str] = None,
    search: Optional[str] = None,
    is_deleted: Optional[bool] = False,
    visible: Optional[bool] = None,
    page: int = 1,
    limit: int = 20,
) -> Dict[str, Any]:
    query: Dict[str, Any] = {}
    if is_deleted is not None:
        query["is_deleted"] = True if is_deleted else {"$ne": True}
    if visible is not None:
        query["visible"] = visible
    if user_id:
        query["user_id"] = to_object_id(user_id, "user_id")
    term = sanitize_search(search)
    if term:
        query["name"] = {"$regex": term, "$options": "i"}

    page, limit, skip = pagination(page, limit)
    profiles = get_profiles_collection()
    cursor = profiles.find(query).sort("created_at", DESCENDING).skip(skip).limit(limit)
    raw = [doc async for doc in cursor]
    total = await profiles.count_documents(query)
    return {"profiles": await _attach_verifications(raw), **page_meta(total, page, limit)}


async def list_deleted_profiles(page: int = 1, limit: int = 20) -> Dict[str, Any]:
    return await list_profiles_admin(is_deleted=True, page=page, limit=limit)


async def list_user_profiles(user_id: str) -> List[Dict[str, Any]]:
    cursor = get_profiles_collection().find(
        {"user_id": to_object_id(user_id, "user_id"), "is_deleted": {"$ne": True}}
    ).sort("created_at", DESCENDING)
    raw = [doc async for doc in cursor]
    return await _attach_verifications(raw)


async def update_profile(profile_id: str, user: Dict[str, Any], data: ProfileUpdate) -> Dict[str, Any]:
    """
    Updates editable fields. Changing the contact number marks the contact
    as changed, which resets contact consistency.
    """
    profile = await _get_raw_profile(profile_id)
    ensure_owner_or_admin(user, profile["user_id"])

    changes = {
        k: v for k, v in data.model_dump(exclude_unset=True, mode="python").items()
        if k not in PROFILE_PROTECTED_FIELDS
    }
    if not changes:
        raise ValidationError("Provide at least one field to update")

    now = datetime.utcnow()
    if "contact" in changes:
        old_contact = profile.get("contact") or {}
        new_contact = changes["contact"]
        if new_contact.get("number") != old_contact.get("number"):
            new_contact.update({"has_changed": True, "last_change_date": now})
        else:
            new_contact.update({
                "has_changed": old_contact.get("has_changed", False),
                "last_change_date": old_contact.get("last_change_date"),
            })

    changes["updated_at"] = now
    updated = await get_profiles_collection().find_one_and_update(
        {"_id": profile["_id"]}, {"$set": changes}, return_document=ReturnDocument.AFTER
    )
    with LogContext(profile_id=str(profile["_id"])):
        logger.info(f"Profile updated: {', '.join(sorted(k for k in changes if k != 'updated_at'))}")
    return (await _attach_verifications([updated]))[0]


async def set_profile_visibility(profile_id: str, user: Dict[str, Any], visible: bool) -> Dict[str, Any]:
    profile = await _get_raw_profile(profile_id)
    ensure_owner_or_admin(user, profile["user_id"])
    if visible and not subscription_service.has_active_plan(profile) and not is_admin(user):
        raise BusinessRuleError("A profile without an active plan cannot be shown", code="PLAN_REQUIRED")

    updated = await get_profiles_collection().find_one_and_update(
        {"_id": profile["_id"]},
        {"$set": {"visible": visible, "updated_at": datetime.utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    return serialize_doc(updated)


async def soft_delete_profile(profile_id: str, user: Dict[str, Any]) -> None:
    """Owner (or admin) soft delete: hidden and flagged deleted."""
    profile = await _get_raw_profile(profile_id)
    ensure_owner_or_admin(user, profile["user_id"])
    now = datetime.utcnow()
    await get_profiles_collection().update_one(
        {"_id": profile["_id"]},
        {"$set": {"is_deleted": True, "visible": False, "deleted_at": now, "updated_at": now}}
    )
    logger.info("Profile soft deleted", extra={"profile_id": profile_id, "user_id": user.get("id")})


async def restore_profile(profile_id: str) -> Dict[str, Any]:
    profile = await _get_raw_profile(profile_id, include_deleted=True)
    if not profile.get("is_deleted"):
        raise BusinessRuleError("Profile is not deleted", code="PROFILE_NOT_DELETED")
    updated = await get_profiles_collection().find_one_and_update(
        {"_id": profile["_id"]},
        {
            "$set": {
                "is_deleted": False,
                "visible": subscription_service.has_active_plan(profile),
                "updated_at": datetime.utcnow(),
            },
            "$unset": {"deleted_at": ""},
        },
        return_document=ReturnDocument.AFTER,
    )
    logger.info("Profile restored", extra={"profile_id": profile_id})
    return serialize_doc(updated)


async def hard_delete_profile(profile_id: str) -> None:
    """Removes the profile and its verification permanently."""
    profile = await _get_raw_profile(profile_id, include_deleted=True)
    await get_profiles_collection().delete_one({"_id": profile["_id"]})
    await verification_service.delete_verification_for_profile(profile_id)
    logger.warning("Profile permanently deleted", extra={"profile_id": profile_id})


async def subscribe_to_plan(
    profile_id: str,
    user: Dict[str, Any],
    plan_code: str,
    variant_days: int,
    coupon_code: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Buys a plan variant for a profile.

    A zero final price (free plan or full-discount coupon) assigns the plan
    right away and redeems the coupon; anything else produces a pending invoice.

    Returns:
        {"status": "assigned", "profile": ...} or {"status": "pending_payment", "invoice": ...}
    """
    profile = await _get_raw_profile(profile_id)
    ensure_owner_or_admin(user, profile["user_id"])

    with LogContext(profile_id=str(profile_id), coupon_code=coupon_code):
        plan = await plan_service.get_plan_by_code(plan_code)
        if not plan.get("active", True):
            raise BusinessRuleError(f"Plan '{plan['code']}' is not active", code="PLAN_INACTIVE")
        variant = find_variant(plan, variant_days)
        if not variant:
            raise ValidationError(f"Plan '{plan['code']}' has no {variant_days}-day variant")

        final_price = float(variant["price"])
        target_code, target_days = plan["code"], variant_days
        coupon = None

        if coupon_code:
            priced = {"id": plan["id"], "code": plan["code"], "price": variant["price"]}
            coupon, application = await coupon_service.resolve_coupon_for_price(coupon_code, priced)
            final_price = application.final_price
            if coupon["type"] == CouponType.PLAN_ASSIGNMENT:
                target_code, target_days = coupon["plan_code"], coupon["variant_days"]

        if final_price <= 0:
            updated = await subscription_service.assign_plan(profile_id, target_code, target_days)
            if coupon:
                await coupon_service.redeem_coupon(coupon["code"])
            logger.info(f"Plan {target_code} assigned without payment")
            return {"status": "assigned", "profile": updated}

        invoice = await invoice_service.generate_invoice(
            profile_id=profile_id,
            user_id=str(profile["user_id"]),
            plan_code=plan["code"],
            plan_days=variant_days,
            coupon_code=coupon["code"] if coupon else None,
        )
        return {"status": "pending_payment", "invoice": invoice}


async def purchase_upgrade(profile_id: str, user: Dict[str, Any], upgrade_code: str) -> Dict[str, Any]:
    """
    Buys an upgrade for a profile. Free upgrades are applied immediately,
    paid ones produce a pending invoice.
    """
    profile = await _get_raw_profile(profile_id)
    ensure_owner_or_admin(user, profile["user_id"])

    upgrade = await plan_service.get_upgrade_by_code(upgrade_code)
    await subscription_service.check_upgrade_purchase(profile, upgrade)

    if float(upgrade.get("price") or 0) <= 0:
        updated = await subscription_service.apply_upgrade(profile_id, upgrade["code"])
        return {"status": "applied", "profile": updated}

    invoice = await invoice_service.generate_invoice(
        profile_id=profile_id,
        user_id=str(profile["user_id"]),
        upgrade_codes=[upgrade["code"]],
    )
    return {"status": "pending_payment", "invoice": invoice}


async def get_plan_info(profile_id: str, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or datetime.utcnow()
    profile = await _get_raw_profile(profile_id)
    assignment = profile.get("plan_assignment")

    plan = None
    if assignment and assignment.get("plan_code"):
        plan = await plan_service.find_plan_by_code(assignment["plan_code"])

    return {
        "profile_id": str(profile["_id"]),
        "plan_assignment": serialize_doc(assignment) if assignment else None,
        "plan": plan,
        "is_active": subscription_service.has_active_plan(profile, now),
        "days_remaining": days_remaining((assignment or {}).get("expires_at"), now),
        "active_upgrades": subscription_service.active_upgrades(profile, now),
        "visible": profile.get("visible", True),
    }
