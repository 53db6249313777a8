"""
app/services/rate_limit_service.py

Purpose: Sliding-window rate limiting

- Per-client request windows stored in the rate_limits collection
- Limits for coupon validation and login
- FastAPI dependencies that raise RateLimitError when a window is full
"""

from datetime import datetime, timedelta
from typing import Any, Dict

from fastapi import Request

from app.core.config import settings
from app.core.exceptions import RateLimitError
from app.core.logging import get_logger
from app.db.mongo import get_rate_limits_collection

logger = get_logger(__name__)


def _limits() -> Dict[str, Dict[str, int]]:
    return {
        "coupon": {
            "max": settings.RATE_LIMIT_COUPON_ATTEMPTS,
            "window_seconds": settings.RATE_LIMIT_COUPON_WINDOW_SECONDS,
        },
        "login": {
            "max": settings.RATE_LIMIT_LOGIN_ATTEMPTS,
            "window_seconds": settings.RATE_LIMIT_LOGIN_WINDOW_SECONDS,
        },
    }


async def check_rate_limit(client_id: str, limit_type: str = "coupon") -> Dict[str, Any]:
    """
    Records one request for `client_id` and reports whether it is allowed.

    Args:
        client_id: Caller identity (IP address or user id)
        limit_type: 'coupon' or 'login'

    Returns:
        Dict with allowed (bool), remaining (int), reset_at (datetime)
    """
    rate_limits = get_rate_limits_collection()

    limits = _limits()
    limit_config = limits.get(limit_type, limits["coupon"])
    max_requests = limit_config["max"]
    window_seconds = limit_config["window_seconds"]

    now = datetime.utcnow()
    window_start = now - timedelta(seconds=window_seconds)

    key = f"{client_id}:{limit_type}"
    record = await rate_limits.find_one({"key": key})

    if not record:
        # Concurrent first requests all land on the same document
        await rate_limits.update_one(
            {"key": key},
            {
                "$push": {"requests": now},
                "$set": {"expires_at": now + timedelta(seconds=window_seconds)},
                "$setOnInsert": {
                    "client_id": client_id,
                    "limit_type": limit_type,
                    "created_at": now,
                },
            },
            upsert=True,
        )

        return {
            "allowed": True,
            "remaining": max_requests - 1,
            "reset_at": now + timedelta(seconds=window_seconds)
        }

    # Filter requests within current window
    recent_requests = [
        req for req in record.get("requests", [])
        if req > window_start
    ]

    if len(recent_requests) >= max_requests:
        oldest_request = min(recent_requests)
        reset_at = oldest_request + timedelta(seconds=window_seconds)

        logger.warning(
            f"Rate limit exceeded for {limit_type}",
            extra={
                "client_id": client_id,
                "limit_type": limit_type,
                "count": len(recent_requests),
                "max": max_requests
            }
        )

        return {
            "allowed": False,
            "remaining": 0,
            "reset_at": reset_at,
            "retry_after_seconds": (reset_at - now).total_seconds()
        }

    recent_requests.append(now)

    await rate_limits.update_one(
        {"key": key},
        {
            "$set": {
                "requests": recent_requests,
                "expires_at": now + timedelta(seconds=window_seconds)
            }
        }
    )

    return {
        "allowed": True,
        "remaining": max_requests - len(recent_requests),
        "reset_at": now + timedelta(seconds=window_seconds)
    }


async def reset_rate_limit(client_id: str, limit_type: str) -> None:
    """Clears a client's window (e.g. after a successful login)."""
    await get_rate_limits_collection().delete_one({"key": f"{client_id}:{limit_type}"})


def client_key(request: Request) -> str:
    """
    Caller address. X-Forwarded-For is only honoured when the direct peer
    is one of TRUSTED_PROXIES, and then only its last hop (the one that
    proxy appended).
    """
    peer = request.client.host if request.client else "unknown"
    if peer in settings.TRUSTED_PROXIES:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[-1].strip()
    return peer


async def _enforce(request: Request, limit_type: str) -> None:
    result = await check_rate_limit(client_key(request), limit_type)
    if not result["allowed"]:
        raise RateLimitError(
            "Too many attempts. Please try again later.",
            details={"retry_after_seconds": int(result.get("retry_after_seconds", 0))}
        )


async def coupon_rate_limit(request: Request) -> None:
    await _enforce(request, "coupon")


async def login_rate_limit(request: Request) -> None:
    await _enforce(request, "login")
