"""
utils/time_utils.py

Purpose: Time and expiry helpers

- Month arithmetic (30-day months) for verification rules
- Remaining-time calculations for plans
- Normalizing client timestamps to naive UTC
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

DAYS_PER_MONTH = 30


def months_ago(months: int, now: Optional[datetime] = None) -> datetime:
    """
    Returns the instant `months` months before `now`, counting a month as 30 days.
    """
    now = now or datetime.utcnow()
    return now - timedelta(days=months * DAYS_PER_MONTH)


def days_remaining(expires_at: Optional[datetime], now: Optional[datetime] = None) -> int:
    """
    Whole days left until `expires_at` (rounded up), 0 when expired or unset.
    """
    if not expires_at:
        return 0
    now = now or datetime.utcnow()
    seconds = (expires_at - now).total_seconds()
    if seconds <= 0:
        return 0
    return int(-(-seconds // 86400))


def to_naive_utc(value: datetime) -> datetime:
    """
    Converts an offset-aware datetime to naive UTC. Naive values are taken as UTC already.
    """
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
