"""
app/services/config_parameter_service.py

Purpose: Runtime configuration parameters

- Key/value documents grouped by category and tags
- Version bump whenever the value changes
- Dependencies must reference existing, active keys
- Soft delete and active toggle
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from app.core.exceptions import ConflictError, ResourceNotFoundError, ValidationError
from app.core.logging import get_logger
from app.db.mongo import get_config_parameters_collection
from app.models.config_parameter import SORTABLE_FIELDS
from app.schemas.config_parameter import ConfigParameterCreate, ConfigParameterUpdate
from utils.mongo_utils import page_meta, pagination, serialize_doc
from utils.validation_utils import sanitize_search, to_object_id

logger = get_logger(__name__)


async def _validate_dependencies(key: str, dependencies: List[str]) -> None:
    if not dependencies:
        return
    if key in dependencies:
        raise ValidationError(f"Parameter '{key}' cannot depend on itself", details={"field": "dependencies"})

    cursor = get_config_parameters_collection().find(
        {"key": {"$in": dependencies}, "is_active": True}, {"key": 1}
    )
    found = {doc["key"] async for doc in cursor}
    missing = [dep for dep in dependencies if dep not in found]
    if missing:
        raise ValidationError(
            "One or more dependencies are not available or inactive",
            details={"field": "dependencies", "missing": missing}
        )


async def create_parameter(data: ConfigParameterCreate, modified_by: Optional[str] = None) -> Dict[str, Any]:
    params = get_config_parameters_collection()
    if await params.find_one({"key": data.key}):
        raise ConflictError(f"Configuration parameter with key '{data.key}' already exists")

    await _validate_dependencies(data.key, data.dependencies)

    now = datetime.utcnow()
    doc = data.model_dump(mode="python")
    doc.update({
        "version": 1,
        "last_modified": now,
        "modified_by": modified_by,
        "created_at": now,
        "updated_at": now,
    })

    try:
        result = await params.insert_one(doc)
    except DuplicateKeyError:
        raise ConflictError(f"Configuration parameter with key '{data.key}' already exists")

    doc["_id"] = result.inserted_id
    logger.info(f"Configuration parameter created: {data.key}", extra={"user_id": modified_by})
    return serialize_doc(doc)


async def list_parameters(
    category: Optional[str] = None,
    param_type: Optional[str] = None,
    tags: Optional[List[str]] = None,
    is_active: Optional[bool] = True,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
    sort_by: str = "name",
    sort_order: str = "asc",
) -> Dict[str, Any]:
    """
    Filtered, sorted and paginated listing.

    Returns:
        {"parameters": [...], total, page, limit, total_pages, has_next, has_prev}
    """
    query: Dict[str, Any] = {}
    if category:
        query["category"] = category.strip().lower()
    if param_type:
        query["type"] = param_type
    if tags:
        query["tags"] = {"$in": [t.strip().lower() for t in tags if t.strip()]}
    if is_active is not None:
        query["is_active"] = is_active
    term = sanitize_search(search)
    if term:
        query["$or"] = [
            {"name": {"$regex": term, "$options": "i"}},
            {"key": {"$regex": term, "$options": "i"}},
            {"category": {"$regex": term, "$options": "i"}},
        ]

    if sort_by not in SORTABLE_FIELDS:
        raise ValidationError(f"Cannot sort by '{sort_by}'", details={"allowed": sorted(SORTABLE_FIELDS)})
    direction = DESCENDING if sort_order == "desc" else ASCENDING

    page, limit, skip = pagination(page, limit)
    params = get_config_parameters_collection()
    cursor = params.find(query).sort(sort_by, direction).skip(skip).limit(limit)
    items = [serialize_doc(doc) async for doc in cursor]
    total = await params.count_documents(query)
    return {"parameters": items, **page_meta(total, page, limit)}


async def get_parameter_by_id(param_id: str) -> Dict[str, Any]:
    doc = await get_config_parameters_collection().find_one({"_id": to_object_id(param_id, "parameter_id")})
    if not doc:
        raise ResourceNotFoundError("Configuration parameter not found")
    return serialize_doc(doc)


async def find_parameter_by_key(key: str, active_only: bool = True) -> Optional[Dict[str, Any]]:
    query: Dict[str, Any] = {"key": key}
    if active_only:
        query["is_active"] = True
    return serialize_doc(await get_config_parameters_collection().find_one(query))


async def get_parameter_by_key(key: str, active_only: bool = True) -> Dict[str, Any]:
    doc = await find_parameter_by_key(key, active_only)
    if not doc:
        raise ResourceNotFoundError(f"Configuration parameter '{key}' not found")
    return doc


async def get_parameters_by_category(category: str, active_only: bool = True) -> List[Dict[str, Any]]:
    query: Dict[str, Any] = {"category": category.strip().lower()}
    if active_only:
        query["is_active"] = True
    cursor = get_config_parameters_collection().find(query).sort("name", ASCENDING)
    return [serialize_doc(doc) async for doc in cursor]


async def get_parameters_by_type(param_type: str, active_only: bool = True) -> List[Dict[str, Any]]:
    query: Dict[str, Any] = {"type": param_type}
    if active_only:
        query["is_active"] = True
    cursor = get_config_parameters_collection().find(query).sort("name", ASCENDING)
    return [serialize_doc(doc) async for doc in cursor]


async def update_parameter(param_id: str, data: ConfigParameterUpdate, modified_by: Optional[str] = None) -> Dict[str, Any]:
    """
    Partial update; the version is incremented only when the value changes.
    """
    params = get_config_parameters_collection()
    oid = to_object_id(param_id, "parameter_id")
    current = await params.find_one({"_id": oid})
    if not current:
        raise ResourceNotFoundError("Configuration parameter not found")

    changes = data.model_dump(exclude_unset=True, mode="python")
    if "dependencies" in changes:
        await _validate_dependencies(current["key"], changes["dependencies"] or [])

    now = datetime.utcnow()
    changes.update({"last_modified": now, "modified_by": modified_by, "updated_at": now})
    update: Dict[str, Any] = {"$set": changes}
    if "value" in changes and changes["value"] != current.get("value"):
        update["$inc"] = {"version": 1}

    updated = await params.find_one_and_update({"_id": oid}, update, return_document=ReturnDocument.AFTER)
    logger.info(
        f"Configuration parameter updated: {current['key']} (v{updated.get('version')})",
        extra={"user_id": modified_by}
    )
    return serialize_doc(updated)


async def delete_parameter(param_id: str, modified_by: Optional[str] = None) -> None:
    """Soft delete (is_active=False)."""
    now = datetime.utcnow()
    result = await get_config_parameters_collection().find_one_and_update(
        {"_id": to_object_id(param_id, "parameter_id")},
        {"$set": {"is_active": False, "modified_by": modified_by, "last_modified": now, "updated_at": now}},
    )
    if not result:
        raise ResourceNotFoundError("Configuration parameter not found")
    logger.info(f"Configuration parameter deleted: {result['key']}", extra={"user_id": modified_by})


async def toggle_parameter(param_id: str, modified_by: Optional[str] = None) -> Dict[str, Any]:
    params = get_config_parameters_collection()
    oid = to_object_id(param_id, "parameter_id")
    current = await params.find_one({"_id": oid})
    if not current:
        raise ResourceNotFoundError("Configuration parameter not found")

    now = datetime.utcnow()
    is_active = not current.get("is_active", True)
    updated = await params.find_one_and_update(
        {"_id": oid},
        {"$set": {"is_active": is_active, "modified_by": modified_by, "last_modified": now, "updated_at": now}},
        return_document=ReturnDocument.AFTER,
    )
    logger.info(f"Configuration parameter {'activated' if is_active else 'deactivated'}: {current['key']}")
    return serialize_doc(updated)


async def get_categories() -> List[str]:
    categories = await get_config_parameters_collection().distinct("category", {"is_active": True})
    return sorted(c for c in categories if c)


async def get_tags() -> List[str]:
    tags = await get_config_parameters_collection().distinct("tags", {"is_active": True})
    return sorted(t for t in tags if t)


async def get_value(key: str, default: Any = None) -> Any:
    """Value of an active parameter, or `default`."""
    doc = await get_config_parameters_collection().find_one({"key": key, "is_active": True}, {"value": 1})
    if not doc:
        return default
    return doc.get("value", default)


async def get_values(keys: List[str]) -> Dict[str, Any]:
    """{key: value} for the active parameters among `keys`."""
    cursor = get_config_parameters_collection().find(
        {"key": {"$in": keys}, "is_active": True}, {"key": 1, "value": 1}
    )
    return {doc["key"]: doc.get("value") async for doc in cursor}
