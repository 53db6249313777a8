"""
app/services/subscription_service.py

Purpose: Applying plans and upgrades to profiles

- Plan assignment (start/expiry, extension of the same plan)
- Upgrade stacking policies (extend / replace / reject)
- Dependency checks for upgrades that require others
"""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from pymongo import ReturnDocument

from app.core.exceptions import BusinessRuleError, ResourceNotFoundError, ValidationError
from app.core.logging import get_logger, LogContext
from app.db.mongo import get_profiles_collection
from app.models.catalog import StackingPolicy, find_variant
from app.services import plan_service
from utils.mongo_utils import serialize_doc
from utils.validation_utils import to_object_id

logger = get_logger(__name__)


def active_upgrades(profile: Dict[str, Any], now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    now = now or datetime.utcnow()
    return [u for u in profile.get("upgrades") or [] if u.get("end_at") and u["end_at"] > now]


def has_active_plan(profile: Dict[str, Any], now: Optional[datetime] = None) -> bool:
    assignment = profile.get("plan_assignment") or {}
    expires_at = assignment.get("expires_at")
    return bool(expires_at) and expires_at > (now or datetime.utcnow())


def build_plan_assignment(
    plan: Dict[str, Any],
    variant_days: int,
    current: Optional[Dict[str, Any]] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    New plan_assignment for `plan`. Buying the plan that is already active
    extends it from its current expiry instead of restarting it.
    """
    now = now or datetime.utcnow()
    start_at = now
    base = now
    if current and current.get("plan_code") == plan["code"] and current.get("expires_at") and current["expires_at"] > now:
        start_at = current.get("start_at") or now
        base = current["expires_at"]

    return {
        "plan_id": to_object_id(plan["id"], "plan_id"),
        "plan_code": plan["code"],
        "variant_days": int(variant_days),
        "start_at": start_at,
        "expires_at": base + timedelta(days=int(variant_days)),
    }


def stack_upgrade(
    upgrades: List[Dict[str, Any]],
    upgrade: Dict[str, Any],
    now: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    """
    Returns the profile's upgrade list after buying `upgrade`.

    Expired entries are left for the cleanup job. When the same upgrade is
    still active the upgrade's stacking policy decides the outcome.

    Raises:
        BusinessRuleError: policy is "reject" and the upgrade is active
    """
    now = now or datetime.utcnow()
    duration = timedelta(hours=int(upgrade.get("duration_hours") or 24))
    code = upgrade["code"]
    result = [dict(u) for u in upgrades]

    current = next(
        (u for u in result if u.get("code") == code and u.get("end_at") and u["end_at"] > now),
        None,
    )

    if current is None:
        result.append({"code": code, "start_at": now, "end_at": now + duration, "purchase_at": now})
        return result

    policy = upgrade.get("stacking_policy", StackingPolicy.EXTEND)
    if policy == StackingPolicy.REJECT:
        raise BusinessRuleError(
            f"Upgrade '{code}' is already active until {current['end_at'].isoformat()}",
            code="UPGRADE_ALREADY_ACTIVE",
        )
    if policy == StackingPolicy.REPLACE:
        current.update({"start_at": now, "end_at": now + duration, "purchase_at": now})
    else:
        current.update({"end_at": current["end_at"] + duration, "purchase_at": now})
    return result


def missing_requirements(profile: Dict[str, Any], upgrade: Dict[str, Any], now: Optional[datetime] = None) -> List[str]:
    active_codes = {u["code"] for u in active_upgrades(profile, now)}
    return [code for code in upgrade.get("requires") or [] if code not in active_codes]


async def _load_profile(profile_id: str) -> Dict[str, Any]:
    profile = await get_profiles_collection().find_one(
        {"_id": to_object_id(profile_id, "profile_id"), "is_deleted": {"$ne": True}}
    )
    if not profile:
        raise ResourceNotFoundError("Profile not found")
    return profile


async def assign_plan(profile_id: str, plan_code: str, variant_days: int) -> Dict[str, Any]:
    """
    Assigns (or extends) a plan on a profile and makes it visible again.
    """
    with LogContext(profile_id=str(profile_id)):
        plan = await plan_service.get_plan_by_code(plan_code)
        if not plan.get("active", True):
            raise BusinessRuleError(f"Plan '{plan['code']}' is not active", code="PLAN_INACTIVE")
        if not find_variant(plan, variant_days):
            raise ValidationError(f"Plan '{plan['code']}' has no {variant_days}-day variant")

        profile = await _load_profile(profile_id)
        assignment = build_plan_assignment(plan, variant_days, profile.get("plan_assignment"))

        updated = await get_profiles_collection().find_one_and_update(
            {"_id": profile["_id"]},
            {"$set": {"plan_assignment": assignment, "visible": True, "updated_at": datetime.utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        logger.info(f"Plan {plan['code']} ({variant_days}d) assigned until {assignment['expires_at'].isoformat()}")
        return serialize_doc(updated)


async def check_upgrade_purchase(profile: Dict[str, Any], upgrade: Dict[str, Any]) -> None:
    """
    Validates an upgrade purchase without applying it.
    """
    if not upgrade.get("active", True):
        raise BusinessRuleError(f"Upgrade '{upgrade['code']}' is not active", code="UPGRADE_INACTIVE")

    missing = missing_requirements(profile, upgrade)
    if missing:
        raise BusinessRuleError(
            f"Upgrade '{upgrade['code']}' requires active upgrade(s): {', '.join(missing)}",
            code="UPGRADE_REQUIREMENTS_NOT_MET",
            details={"missing": missing},
        )

    # Raises for the reject policy
    stack_upgrade(profile.get("upgrades") or [], upgrade)


async def apply_upgrade(profile_id: str, upgrade_code: str) -> Dict[str, Any]:
    with LogContext(profile_id=str(profile_id)):
        upgrade = await plan_service.get_upgrade_by_code(upgrade_code)
        profile = await _load_profile(profile_id)
        await check_upgrade_purchase(profile, upgrade)

        upgrades = stack_upgrade(profile.get("upgrades") or [], upgrade)
        updated = await get_profiles_collection().find_one_and_update(
            {"_id": profile["_id"]},
            {"$set": {"upgrades": upgrades, "updated_at": datetime.utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        logger.info(f"Upgrade {upgrade['code']} applied")
        return serialize_doc(updated)
