"""
app/services/verification_service.py

Purpose: Profile verification management

- One verification document per profile
- Step updates with progress recalculation
- Status transitions (verified / failed timestamps)
- Read-time enrichment with account age and contact consistency
"""

import copy
from datetime import datetime
from typing import Any, Dict, Optional

from pymongo import DESCENDING, ReturnDocument

from app.core.config import settings
from app.core.exceptions import ResourceNotFoundError
from app.core.logging import get_logger, LogContext
from app.db.mongo import get_profile_verifications_collection
from app.models.profile import VerificationStatus, default_verification_steps
from app.schemas.profile import VerificationStatusUpdate, VerificationStepsUpdate
from utils.mongo_utils import page_meta, pagination, serialize_doc
from utils.time_utils import months_ago
from utils.validation_utils import to_object_id

logger = get_logger(__name__)


def calculate_verification_progress(verification: Optional[Dict[str, Any]]) -> int:
    """
    Percentage (0..100, rounded) of steps whose is_verified flag is set.

    Only dict-valued steps count; flags such as phone_change_detected are ignored.
    """
    steps = (verification or {}).get("steps") or {}
    checks = [step for step in steps.values() if isinstance(step, dict) and "is_verified" in step]
    if not checks:
        return 0
    verified = sum(1 for step in checks if step.get("is_verified"))
    return int(round(100 * verified / len(checks)))


def is_contact_consistent(contact: Optional[Dict[str, Any]], now: Optional[datetime] = None,
                          stable_months: Optional[int] = None) -> bool:
    """
    A contact that never changed is consistent; a changed one becomes
    consistent once its last change is old enough.
    """
    if not contact:
        return False
    if not contact.get("has_changed"):
        return True
    last_change = contact.get("last_change_date")
    if not last_change:
        return False
    months = settings.VERIFICATION_CONTACT_STABLE_MONTHS if stable_months is None else stable_months
    return last_change <= months_ago(months, now)


def enrich_profile_verification(
    profile: Optional[Dict[str, Any]],
    min_age_months: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Optional[Dict[str, Any]]:
    """
    Returns a copy of `profile` whose embedded verification carries the
    computed account_age and contact_consistency steps, an updated
    phone_change_detected flag and a recomputed progress.

    Nothing is written back to the database.
    """
    if not profile:
        return profile

    now = now or datetime.utcnow()
    min_age_months = settings.VERIFICATION_MIN_ACCOUNT_AGE_MONTHS if min_age_months is None else min_age_months

    enriched = dict(profile)
    verification = copy.deepcopy(profile.get("verification")) or {
        "verification_progress": 0,
        "verification_status": VerificationStatus.PENDING.value,
        "steps": {},
    }
    steps = verification.setdefault("steps", {})

    created_at = profile.get("created_at")
    account_age_ok = bool(created_at) and created_at <= months_ago(min_age_months, now)
    contact_ok = is_contact_consistent(profile.get("contact"), now)

    steps["account_age"] = {
        "is_verified": account_age_ok,
        "status": "verified" if account_age_ok else "pending",
    }
    steps["contact_consistency"] = {
        "is_verified": contact_ok,
        "status": "verified" if contact_ok else "pending",
    }
    steps["phone_change_detected"] = not contact_ok

    verification["verification_progress"] = calculate_verification_progress(verification)
    enriched["verification"] = verification
    return enriched


async def create_verification(profile_id: str, requires_independent_verification: bool = False) -> Dict[str, Any]:
    """
    Creates the verification document for a new profile.
    """
    with LogContext(profile_id=str(profile_id)):
        now = datetime.utcnow()
        doc = {
            "profile_id": to_object_id(profile_id, "profile_id"),
            "verification_status": VerificationStatus.PENDING.value,
            "verification_progress": 0,
            "requires_independent_verification": requires_independent_verification,
            "steps": default_verification_steps(),
            "verified_at": None,
            "verification_failed_at": None,
            "verification_failed_reason": None,
            "created_at": now,
            "updated_at": now,
        }
        result = await get_profile_verifications_collection().insert_one(doc)
        doc["_id"] = result.inserted_id
        logger.info("Profile verification created")
        return serialize_doc(doc)


async def get_verification_by_id(verification_id: str) -> Dict[str, Any]:
    doc = await get_profile_verifications_collection().find_one(
        {"_id": to_object_id(verification_id, "verification_id")}
    )
    if not doc:
        raise ResourceNotFoundError("Profile verification not found")
    return serialize_doc(doc)


async def find_verification_by_profile_id(profile_id: str) -> Optional[Dict[str, Any]]:
    doc = await get_profile_verifications_collection().find_one(
        {"profile_id": to_object_id(profile_id, "profile_id")}
    )
    return serialize_doc(doc)


async def get_verification_by_profile_id(profile_id: str) -> Dict[str, Any]:
    doc = await find_verification_by_profile_id(profile_id)
    if not doc:
        raise ResourceNotFoundError("Profile verification not found")
    return doc


async def update_verification_steps(verification_id: str, data: VerificationStepsUpdate) -> Dict[str, Any]:
    """
    Merges the provided steps into the stored ones and recomputes progress.
    """
    collection = get_profile_verifications_collection()
    oid = to_object_id(verification_id, "verification_id")
    current = await collection.find_one({"_id": oid})
    if not current:
        raise ResourceNotFoundError("Profile verification not found")

    changes = data.model_dump(exclude_unset=True, mode="python")
    update: Dict[str, Any] = {"updated_at": datetime.utcnow()}
    if "requires_independent_verification" in changes:
        update["requires_independent_verification"] = changes.pop("requires_independent_verification")

    steps = dict(current.get("steps") or {})
    for name, state in changes.items():
        if state is None:
            continue
        merged = dict(steps.get(name) or {})
        merged.update(state)
        steps[name] = merged

    update["steps"] = steps
    update["verification_progress"] = calculate_verification_progress({"steps": steps})

    updated = await collection.find_one_and_update(
        {"_id": oid}, {"$set": update}, return_document=ReturnDocument.AFTER
    )
    logger.info(
        f"Verification steps updated (progress={update['verification_progress']})",
        extra={"profile_id": str(current["profile_id"])}
    )
    return serialize_doc(updated)


async def update_verification_status(verification_id: str, data: VerificationStatusUpdate) -> Dict[str, Any]:
    """
    Moving to "check" stamps verified_at; moving back to "pending" with a
    reason records the failure.
    """
    now = datetime.utcnow()
    update: Dict[str, Any] = {"verification_status": data.verification_status, "updated_at": now}

    if data.verification_status == VerificationStatus.CHECK:
        update.update({
            "verified_at": now,
            "verification_failed_at": None,
            "verification_failed_reason": None,
        })
    elif data.reason:
        update.update({
            "verified_at": None,
            "verification_failed_at": now,
            "verification_failed_reason": data.reason,
        })

    updated = await get_profile_verifications_collection().find_one_and_update(
        {"_id": to_object_id(verification_id, "verification_id")},
        {"$set": update},
        return_document=ReturnDocument.AFTER,
    )
    if not updated:
        raise ResourceNotFoundError("Profile verification not found")
    return serialize_doc(updated)


async def list_verifications(
    verification_status: Optional[str] = None,
    min_progress: Optional[int] = None,
    max_progress: Optional[int] = None,
    page: int = 1,
    limit: int = 10,
) -> Dict[str, Any]:
    query: Dict[str, Any] = {}
    if verification_status:
        query["verification_status"] = verification_status
    progress: Dict[str, int] = {}
    if min_progress is not None:
        progress["$gte"] = min_progress
    if max_progress is not None:
        progress["$lte"] = max_progress
    if progress:
        query["verification_progress"] = progress

    page, limit, skip = pagination(page, limit)
    collection = get_profile_verifications_collection()
    cursor = collection.find(query).sort("updated_at", DESCENDING).skip(skip).limit(limit)
    items = [serialize_doc(doc) async for doc in cursor]
    total = await collection.count_documents(query)
    return {"verifications": items, **page_meta(total, page, limit)}


async def delete_verification_for_profile(profile_id: str) -> None:
    await get_profile_verifications_collection().delete_one(
        {"profile_id": to_object_id(profile_id, "profile_id")}
    )
