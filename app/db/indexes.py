"""
app/db/indexes.py

Purpose: Database index management

- Creates unique and performance indexes
- Ensures fast lookups and data integrity
- TTL index for rate limit windows
"""

from pymongo import ASCENDING, DESCENDING

from app.db.mongo import (
    get_users_collection,
    get_profiles_collection,
    get_profile_verifications_collection,
    get_config_parameters_collection,
    get_coupons_collection,
    get_plans_collection,
    get_upgrades_collection,
    get_invoices_collection,
    get_content_pages_collection,
    get_rate_limits_collection,
)
from app.core.logging import get_logger

logger = get_logger(__name__)


def _all_collections():
    return {
        "users": get_users_collection(),
        "profiles": get_profiles_collection(),
        "profile_verifications": get_profile_verifications_collection(),
        "config_parameters": get_config_parameters_collection(),
        "coupons": get_coupons_collection(),
        "plans": get_plans_collection(),
        "upgrades": get_upgrades_collection(),
        "invoices": get_invoices_collection(),
        "content_pages": get_content_pages_collection(),
        "rate_limits": get_rate_limits_collection(),
    }


async def create_indexes():
    """
    Creates all necessary database indexes for optimal performance.
    This function is idempotent - safe to run multiple times.
    """
    try:
        collections = _all_collections()
        logger.info("Creating database indexes...")

        # ==============================================
        # USERS
        # ==============================================
        users = collections["users"]
        await users.create_index("email", unique=True, name="email_unique")
        await users.create_index("google_id", sparse=True, name="google_id_idx")
        await users.create_index("role", name="role_idx")
        await users.create_index([("created_at", DESCENDING)], name="created_at_idx")
        logger.debug("Created indexes on users")

        # ==============================================
        # PROFILES
        # ==============================================
        profiles = collections["profiles"]
        await profiles.create_index("user_id", name="profile_user_idx")
        await profiles.create_index(
            [("visible", ASCENDING), ("is_deleted", ASCENDING), ("is_active", ASCENDING)],
            name="profile_listing_idx"
        )
        # Used by the cleanup job
        await profiles.create_index(
            [("visible", ASCENDING), ("plan_assignment.expires_at", ASCENDING)],
            name="profile_plan_expiry_idx"
        )
        await profiles.create_index("upgrades.end_at", name="profile_upgrade_end_idx")
        await profiles.create_index("location.city.value", name="profile_city_idx")
        await profiles.create_index("location.department.value", name="profile_department_idx")
        await profiles.create_index("plan_assignment.plan_code", name="profile_plan_code_idx")
        logger.debug("Created indexes on profiles")

        # ==============================================
        # PROFILE VERIFICATIONS
        # ==============================================
        verifications = collections["profile_verifications"]
        await verifications.create_index("profile_id", unique=True, name="verification_profile_unique")
        await verifications.create_index("verification_status", name="verification_status_idx")
        logger.debug("Created indexes on profile_verifications")

        # ==============================================
        # CONFIG PARAMETERS
        # ==============================================
        params = collections["config_parameters"]
        await params.create_index("key", unique=True, name="config_key_unique")
        await params.create_index(
            [("category", ASCENDING), ("is_active", ASCENDING)],
            name="config_category_idx"
        )
        await params.create_index("type", name="config_type_idx")
        await params.create_index("tags", name="config_tags_idx")
        logger.debug("Created indexes on config_parameters")

        # ==============================================
        # COUPONS
        # ==============================================
        coupons = collections["coupons"]
        await coupons.create_index("code", unique=True, name="coupon_code_unique")
        await coupons.create_index(
            [("is_active", ASCENDING), ("valid_from", ASCENDING), ("valid_until", ASCENDING)],
            name="coupon_validity_idx"
        )
        await coupons.create_index("type", name="coupon_type_idx")
        logger.debug("Created indexes on coupons")

        # ==============================================
        # PLANS & UPGRADES
        # ==============================================
        plans = collections["plans"]
        await plans.create_index("code", unique=True, name="plan_code_unique")
        await plans.create_index([("active", ASCENDING), ("level", ASCENDING)], name="plan_active_level_idx")

        upgrades = collections["upgrades"]
        await upgrades.create_index("code", unique=True, name="upgrade_code_unique")
        await upgrades.create_index("active", name="upgrade_active_idx")
        logger.debug("Created indexes on plans and upgrades")

        # ==============================================
        # INVOICES
        # ==============================================
        invoices = collections["invoices"]
        await invoices.create_index(
            [("user_id", ASCENDING), ("created_at", DESCENDING)],
            name="invoice_user_idx"
        )
        await invoices.create_index("profile_id", name="invoice_profile_idx")
        await invoices.create_index(
            [("status", ASCENDING), ("expires_at", ASCENDING)],
            name="invoice_status_expiry_idx"
        )
        logger.debug("Created indexes on invoices")

        # ==============================================
        # CONTENT PAGES
        # ==============================================
        pages = collections["content_pages"]
        await pages.create_index("slug", unique=True, name="content_slug_unique")
        await pages.create_index("is_active", name="content_active_idx")
        logger.debug("Created indexes on content_pages")

        # ==============================================
        # RATE LIMITS
        # ==============================================
        rate_limits = collections["rate_limits"]
        await rate_limits.create_index("key", unique=True, name="rate_limit_key_unique")
        await rate_limits.create_index(
            "expires_at",
            expireAfterSeconds=0,  # Delete when expires_at is reached
            name="rate_limit_ttl_idx"
        )
        logger.debug("Created indexes on rate_limits")

        logger.info("All database indexes created successfully")

        summary = []
        for name, collection in collections.items():
            info = await collection.index_information()
            summary.append(f"{name}={len(info)}")
        logger.info(f"Index summary: {', '.join(summary)}")

    except Exception as e:
        logger.error(f"Failed to create indexes: {str(e)}", exc_info=True)
        raise


async def list_indexes() -> dict:
    """
    Returns {collection: [index names]} for every managed collection.
    """
    result = {}
    for name, collection in _all_collections().items():
        info = await collection.index_information()
        result[name] = sorted(info.keys())
    return result


if __name__ == "__main__":
    """
    Run this script directly to create indexes manually.
    """
    import asyncio
    from app.db.mongo import connect_to_mongo, close_mongo_connection

    async def main():
        await connect_to_mongo()
        await create_indexes()
        await close_mongo_connection()

    asyncio.run(main())
