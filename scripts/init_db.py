"""
Database initialization script

Creates every index and seeds the default catalog:
    - plans and upgrades
    - predefined content pages (faq, terms)
    - base configuration parameters (profile limits)

Existing documents (matched by code / slug / key) are left untouched, so the
script can be re-run safely:
    python scripts/init_db.py
"""

import asyncio
import sys
from datetime import datetime
from pathlib import Path

from dotenv import load_dotenv

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Load environment variables before settings are read
load_dotenv()

from app.core.logging import setup_logging, get_logger  # noqa: E402
from app.db.indexes import create_indexes  # noqa: E402
from app.db.mongo import (  # noqa: E402
    close_mongo_connection,
    connect_to_mongo,
    get_config_parameters_collection,
    get_content_pages_collection,
    get_plans_collection,
    get_upgrades_collection,
)

setup_logging()
logger = get_logger("scripts.init_db")


def _variants(*prices):
    return [
        {"days": days, "price": price, "duration_rank": rank}
        for rank, (days, price) in enumerate(zip((7, 15, 30, 180), prices), start=1)
    ]


def _limits(photos, videos, stories):
    return {
        "photos": {"min": photos[0], "max": photos[1]},
        "videos": {"min": videos[0], "max": videos[1]},
        "audios": {"min": 0, "max": 0},
        "stories_per_day_max": stories,
    }


PLANS = [
    {
        "code": "DIAMANTE", "name": "Plan Diamante", "level": 1,
        "variants": _variants(50000, 95000, 180000, 900000),
        "features": {"show_in_home": True, "show_in_filters": True, "show_in_sponsored": True},
        "content_limits": _limits((10, 50), (5, 20), 10),
        "included_upgrades": ["DESTACADO"],
    },
    {
        "code": "ORO", "name": "Plan Oro", "level": 2,
        "variants": _variants(35000, 65000, 120000, 600000),
        "features": {"show_in_home": True, "show_in_filters": True, "show_in_sponsored": False},
        "content_limits": _limits((8, 40), (3, 15), 8),
        "included_upgrades": [],
    },
    {
        "code": "ESMERALDA", "name": "Plan Esmeralda", "level": 3,
        "variants": _variants(25000, 45000, 85000, 425000),
        "features": {"show_in_home": True, "show_in_filters": True, "show_in_sponsored": False},
        "content_limits": _limits((6, 30), (2, 10), 6),
        "included_upgrades": [],
    },
    {
        "code": "ZAFIRO", "name": "Plan Zafiro", "level": 4,
        "variants": _variants(18000, 32000, 60000, 300000),
        "features": {"show_in_home": False, "show_in_filters": True, "show_in_sponsored": False},
        "content_limits": _limits((4, 20), (1, 8), 4),
        "included_upgrades": [],
    },
    {
        "code": "AMATISTA", "name": "Plan Amatista", "level": 5,
        "variants": _variants(12000, 22000, 40000, 200000),
        "features": {"show_in_home": False, "show_in_filters": True, "show_in_sponsored": False},
        "content_limits": _limits((3, 15), (1, 5), 3),
        "included_upgrades": [],
    },
]

UPGRADES = [
    {
        "code": "DESTACADO", "name": "Upgrade Destacado", "duration_hours": 24, "price": 0,
        "requires": [], "stacking_policy": "extend",
        "effect": {"level_delta": -1, "set_level_to": None, "priority_bonus": 150, "position_rule": "BY_SCORE"},
    },
    {
        "code": "IMPULSO", "name": "Upgrade Impulso", "duration_hours": 12, "price": 0,
        "requires": ["DESTACADO"], "stacking_policy": "replace",
        "effect": {"level_delta": None, "set_level_to": None, "priority_bonus": 300, "position_rule": "FRONT"},
    },
]

CONTENT_PAGES = [
    {
        "slug": "faq",
        "title": "Frequently Asked Questions",
        "sections": [{
            "title": "General",
            "order": 0,
            "blocks": [{
                "type": "faq",
                "order": 0,
                "value": [
                    {"question": "How do I publish a profile?",
                     "answer": "Create an account, fill in your profile and choose a plan."},
                    {"question": "Which payment methods are accepted?",
                     "answer": "Invoices can be paid by bank transfer or any method listed at checkout."},
                ],
            }],
        }],
    },
    {
        "slug": "terms",
        "title": "Terms and Conditions",
        "sections": [{
            "title": "General terms",
            "order": 0,
            "blocks": [
                {"type": "paragraph", "order": 0,
                 "value": "By using the platform you accept these terms and conditions."},
                {"type": "list", "order": 1,
                 "value": ["Users must be of legal age.", "Published content must be truthful."]},
            ],
        }],
    },
]

CONFIG_PARAMETERS = [
    {
        "key": "profiles.limits.free_profiles_max",
        "name": "Maximum free profiles",
        "type": "number",
        "category": "profiles",
        "value": 3,
        "tags": ["limits", "profiles"],
    },
    {
        "key": "profiles.limits.paid_profiles_max",
        "name": "Maximum paid profiles",
        "type": "number",
        "category": "profiles",
        "value": 10,
        "tags": ["limits", "profiles"],
    },
    {
        "key": "profiles.limits.total_visible_max",
        "name": "Maximum visible profiles",
        "type": "number",
        "category": "profiles",
        "value": 13,
        "tags": ["limits", "profiles"],
    },
    {
        "key": "profile.rotation.interval.seconds",
        "name": "Listing rotation interval",
        "type": "number",
        "category": "visibility",
        "value": 900,
        "tags": ["visibility", "profiles"],
    },
]


async def _seed(collection, field, documents, defaults):
    created = 0
    now = datetime.utcnow()
    for document in documents:
        doc = {**defaults, **document, "created_at": now, "updated_at": now}
        result = await collection.update_one({field: doc[field]}, {"$setOnInsert": doc}, upsert=True)
        if result.upserted_id is not None:
            created += 1
    logger.info(f"{collection.name}: {created} created, {len(documents) - created} already present")


async def main():
    await connect_to_mongo()
    try:
        await create_indexes()
        await _seed(get_plans_collection(), "code", PLANS, {"description": None, "active": True})
        await _seed(get_upgrades_collection(), "code", UPGRADES, {"active": True})
        await _seed(get_content_pages_collection(), "slug", CONTENT_PAGES, {"is_active": True, "modified_by": None})
        await _seed(
            get_config_parameters_collection(),
            "key",
            CONFIG_PARAMETERS,
            {"metadata": {}, "is_active": True, "dependencies": [], "version": 1,
             "last_modified": datetime.utcnow(), "modified_by": None},
        )
        logger.info("Database initialized")
    finally:
        await close_mongo_connection()


if __name__ == "__main__":
    asyncio.run(main())
