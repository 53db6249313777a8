"""
app/services/cleanup_service.py

Purpose: Periodic housekeeping on profiles

- Hide visible profiles whose plan has expired
- Move expired upgrades into upgrade_history (or drop them)
- Expire overdue pending invoices
- Visibility statistics for the admin dashboard
"""

import asyncio
from datetime import datetime
from typing import Any, Dict, Optional

from pymongo import UpdateOne

from app.core.config import settings
from app.core.logging import get_logger, LogContext
from app.db.mongo import get_profiles_collection
from app.services import invoice_service

logger = get_logger(__name__)


async def hide_expired_profiles(now: Optional[datetime] = None) -> int:
    """
    Makes visible profiles with an expired plan invisible.

    Returns:
        Number of profiles hidden
    """
    now = now or datetime.utcnow()
    result = await get_profiles_collection().update_many(
        {
            "visible": True,
            "plan_assignment.expires_at": {"$lte": now},
        },
        {"$set": {"visible": False, "updated_at": now}},
    )
    if result.modified_count:
        logger.info(f"Hid {result.modified_count} profile(s) with an expired plan")
    return result.modified_count


async def cleanup_expired_upgrades(now: Optional[datetime] = None, keep_history: Optional[bool] = None) -> int:
    """
    Removes upgrades whose end_at has passed.

    With keep_history the removed entries are appended to upgrade_history
    stamped with expired_at; otherwise they are pulled outright.

    Returns:
        Number of profiles modified
    """
    now = now or datetime.utcnow()
    keep_history = settings.CLEANUP_KEEP_UPGRADE_HISTORY if keep_history is None else keep_history
    profiles = get_profiles_collection()
    query = {"upgrades.end_at": {"$lte": now}}

    if not keep_history:
        result = await profiles.update_many(
            query,
            {"$pull": {"upgrades": {"end_at": {"$lte": now}}}, "$set": {"updated_at": now}},
        )
        logger.info(f"Removed expired upgrades from {result.modified_count} profile(s)")
        return result.modified_count

    operations = []
    async for profile in profiles.find(query, {"upgrades": 1}):
        upgrades = profile.get("upgrades") or []
        active = [u for u in upgrades if u.get("end_at") and u["end_at"] > now]
        expired = [dict(u, expired_at=now) for u in upgrades if not (u.get("end_at") and u["end_at"] > now)]
        if not expired:
            continue
        # No-op if upgrades changed since the read; the next run retries
        operations.append(UpdateOne(
            {"_id": profile["_id"], "upgrades": upgrades},
            {
                "$set": {"upgrades": active, "updated_at": now},
                "$push": {"upgrade_history": {"$each": expired}},
            },
        ))

    if not operations:
        return 0

    result = await profiles.bulk_write(operations, ordered=False)
    logger.info(f"Moved expired upgrades to history for {result.modified_count} profile(s)")
    return result.modified_count


async def run_cleanup_tasks(now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    One cleanup pass.

    Returns:
        {"hidden_profiles", "cleaned_upgrades", "expired_invoices", "timestamp"}
    """
    now = now or datetime.utcnow()
    with LogContext(job="cleanup"):
        logger.info(f"Starting cleanup tasks at {now.isoformat()}")
        hidden, cleaned, expired_invoices = await asyncio.gather(
            hide_expired_profiles(now),
            cleanup_expired_upgrades(now),
            invoice_service.expire_overdue_invoices(now),
        )
        summary = {
            "hidden_profiles": hidden,
            "cleaned_upgrades": cleaned,
            "expired_invoices": expired_invoices,
            "timestamp": now,
        }
        logger.info(f"Cleanup completed: {hidden} hidden, {cleaned} upgraded profiles cleaned, "
                    f"{expired_invoices} invoices expired")
        return summary


async def get_profile_visibility_stats(now: Optional[datetime] = None) -> Dict[str, int]:
    now = now or datetime.utcnow()
    profiles = get_profiles_collection()
    queries = {
        "visible": {"visible": True, "is_deleted": {"$ne": True}},
        "hidden": {"visible": False, "is_deleted": {"$ne": True}},
        "active": {"is_active": True},
        "soft_deleted": {"is_deleted": True},
        "with_active_plan": {"is_active": True, "plan_assignment.expires_at": {"$gt": now}},
        "with_expired_plan": {"is_active": True, "plan_assignment.expires_at": {"$lte": now}},
        "with_active_upgrades": {
            "is_active": True,
            "upgrades": {"$elemMatch": {"start_at": {"$lte": now}, "end_at": {"$gt": now}}},
        },
    }
    counts = await asyncio.gather(*(profiles.count_documents(q) for q in queries.values()))
    return dict(zip(queries.keys(), counts))
