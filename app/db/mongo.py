"""
app/db/mongo.py

Purpose: MongoDB connection setup

- Initializes Motor client with connection pooling
- One collection per aggregate (users, profiles, coupons, plans, ...)
- Health checks and retry logic
- Proper connection lifecycle management
"""

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo.errors import ConnectionFailure, ServerSelectionTimeoutError
from typing import Optional
import asyncio
from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger(__name__)

# Global MongoDB client
_client: Optional[AsyncIOMotorClient] = None
_database: Optional[AsyncIOMotorDatabase] = None


async def connect_to_mongo():
    """
    Establishes connection to MongoDB with retry logic.
    Called during application startup.
    """
    global _client, _database

    if _client is not None:
        logger.warning("MongoDB client already initialized")
        return

    max_retries = 3
    retry_delay = 2

    for attempt in range(1, max_retries + 1):
        try:
            logger.info(
                f"Attempting to connect to MongoDB (attempt {attempt}/{max_retries})"
            )

            _client = AsyncIOMotorClient(
                settings.MONGODB_URL,
                maxPoolSize=50,
                minPoolSize=5,
                serverSelectionTimeoutMS=5000,
                connectTimeoutMS=10000,
                retryWrites=True,
                retryReads=True,
                tz_aware=False,
            )

            _database = _client[settings.MONGODB_DB_NAME]

            # Verify connection
            await _client.admin.command("ping")

            logger.info(f"Connected to MongoDB: {settings.MONGODB_DB_NAME}")
            return

        except (ConnectionFailure, ServerSelectionTimeoutError) as e:
            logger.error(
                f"Failed to connect to MongoDB (attempt {attempt}/{max_retries}): {e}"
            )
            _client = None
            _database = None

            if attempt < max_retries:
                logger.info(f"Retrying in {retry_delay} seconds...")
                await asyncio.sleep(retry_delay)
                retry_delay *= 2  # Exponential backoff
            else:
                logger.critical("Failed to connect to MongoDB after all retries")
                raise ConnectionError("Could not establish MongoDB connection") from e


async def close_mongo_connection():
    """
    Closes the MongoDB connection.
    Called during application shutdown.
    """
    global _client, _database

    if _client:
        logger.info("Closing MongoDB connection")
        _client.close()
        _client = None
        _database = None
        logger.info("MongoDB connection closed")


async def check_database_health() -> bool:
    """
    Checks if the database connection is healthy.

    Returns:
        True if connection is healthy, False otherwise
    """
    try:
        if _client is None:
            logger.error("MongoDB client not initialized")
            return False

        await _client.admin.command("ping")
        return True

    except Exception as e:
        logger.error(f"Database health check failed: {str(e)}")
        return False


def get_database() -> AsyncIOMotorDatabase:
    """
    Returns the MongoDB database instance.

    Raises:
        RuntimeError: If database is not initialized
    """
    if _database is None:
        raise RuntimeError(
            "Database not initialized. Call connect_to_mongo() during startup."
        )
    return _database


def _collection(name: str) -> AsyncIOMotorCollection:
    return get_database()[name]


def get_users_collection() -> AsyncIOMotorCollection:
    """
    Returns the users collection.

    Fields: email (unique), name, password_hash, google_id, image, role,
    account_type, is_verified, verification_in_progress, email_verified,
    last_login {date, is_verified}, created_at, updated_at
    """
    return _collection("users")


def get_profiles_collection() -> AsyncIOMotorCollection:
    """
    Returns the profiles collection.

    Listing documents owned by a user. Carries the current plan_assignment,
    active upgrades, upgrade_history and the visible / is_deleted flags the
    cleanup job and public listings rely on.
    """
    return _collection("profiles")


def get_profile_verifications_collection() -> AsyncIOMotorCollection:
    return _collection("profile_verifications")


def get_config_parameters_collection() -> AsyncIOMotorCollection:
    return _collection("config_parameters")


def get_coupons_collection() -> AsyncIOMotorCollection:
    return _collection("coupons")


def get_plans_collection() -> AsyncIOMotorCollection:
    return _collection("plans")


def get_upgrades_collection() -> AsyncIOMotorCollection:
    return _collection("upgrades")


def get_invoices_collection() -> AsyncIOMotorCollection:
    return _collection("invoices")


def get_content_pages_collection() -> AsyncIOMotorCollection:
    return _collection("content_pages")


def get_rate_limits_collection() -> AsyncIOMotorCollection:
    """
    Returns the rate_limits collection.

    One document per "<client>:<limit_type>" key holding the request
    timestamps of the current window; expired documents are removed by TTL.
    """
    return _collection("rate_limits")
