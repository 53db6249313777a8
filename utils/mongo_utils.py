"""
utils/mongo_utils.py

Purpose: Document serialization helpers

- `_id` -> `id` string
- nested ObjectIds -> strings
- pagination arithmetic shared by list endpoints
"""

from typing import Any, Dict, Optional, Tuple

from bson import ObjectId


def _convert(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return {k: _convert(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_convert(v) for v in value]
    return value


def serialize_doc(doc: Optional[Dict[str, Any]], exclude: Tuple[str, ...] = ()) -> Optional[Dict[str, Any]]:
    """
    Converts a Mongo document into a JSON-friendly dict.

    Args:
        doc: Raw document (or None)
        exclude: Top-level fields to drop (e.g. password_hash)
    """
    if doc is None:
        return None
    result = {}
    for key, value in doc.items():
        if key in exclude:
            continue
        if key == "_id":
            result["id"] = str(value)
        else:
            result[key] = _convert(value)
    return result


def pagination(page: int, limit: int, max_limit: int = 100) -> Tuple[int, int, int]:
    """
    Clamps page/limit and returns (page, limit, skip).
    """
    page = max(1, int(page or 1))
    limit = max(1, min(int(limit or 10), max_limit))
    return page, limit, (page - 1) * limit


def page_meta(total: int, page: int, limit: int) -> Dict[str, Any]:
    total_pages = (total + limit - 1) // limit if limit else 0
    return {
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": total_pages,
        "has_next": page < total_pages,
        "has_prev": page > 1,
    }
