"""
utils/validation_utils.py

Purpose: Input validation

- Identifier patterns (coupon codes, plan codes, config keys, slugs)
- Email normalization
- ObjectId parsing
- Input sanitization
"""

import re
from typing import Optional

from bson import ObjectId
from bson.errors import InvalidId

from app.core.exceptions import ValidationError

COUPON_CODE_PATTERN = re.compile(r"^[A-Z0-9_-]+$")
PLAN_CODE_PATTERN = re.compile(r"^[A-Z_]+$")
CONFIG_KEY_PATTERN = re.compile(r"^[a-z0-9_.-]+$")
SLUG_PATTERN = re.compile(r"^[a-z0-9\-_/]+$")
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_PATTERN.match(normalize_email(email)))


def normalize_code(code: str) -> str:
    """
    Coupon / plan / upgrade codes are stored upper-case without surrounding spaces.
    """
    return (code or "").strip().upper()


def to_object_id(value: str, field: str = "id") -> ObjectId:
    """
    Parses a 24-hex-char id, raising ValidationError for anything else.
    """
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        raise ValidationError(f"Invalid {field}: {value}", details={"field": field})


def is_object_id(value: Optional[str]) -> bool:
    return bool(value) and ObjectId.is_valid(str(value))


def sanitize_search(term: Optional[str], max_length: int = 100) -> Optional[str]:
    """
    Escapes a free-text search term for use inside a $regex query.
    """
    if not term:
        return None
    term = term.strip()[:max_length]
    if not term:
        return None
    return re.escape(term)
