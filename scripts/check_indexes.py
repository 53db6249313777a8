"""
Lists the indexes present on every managed collection:
    python scripts/check_indexes.py
"""

import asyncio
import sys
from pathlib import Path

from dotenv import load_dotenv

sys.path.insert(0, str(Path(__file__).parent.parent))
load_dotenv()

from app.core.logging import setup_logging, get_logger  # noqa: E402
from app.db.indexes import list_indexes  # noqa: E402
from app.db.mongo import close_mongo_connection, connect_to_mongo  # noqa: E402

setup_logging()
logger = get_logger("scripts.check_indexes")


async def check_indexes():
    await connect_to_mongo()
    try:
        for collection, names in (await list_indexes()).items():
            logger.info(f"{collection}: {', '.join(names) if names else '(none)'}")
    except Exception as e:
        logger.error(f"Error checking indexes: {e}")
        raise
    finally:
        await close_mongo_connection()


if __name__ == "__main__":
    asyncio.run(check_indexes())
