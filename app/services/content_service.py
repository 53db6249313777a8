"""
app/services/content_service.py

Purpose: Editable content pages (FAQ, terms, landing copy)

- Unique slug per page
- Public reads only see active pages
- Soft delete and active toggle; writes record modified_by
"""

from datetime import datetime
from typing import Any, Dict, Optional

from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from app.core.exceptions import ConflictError, ResourceNotFoundError
from app.core.logging import get_logger
from app.db.mongo import get_content_pages_collection
from app.schemas.content import ContentPageCreate, ContentPageUpdate
from utils.mongo_utils import page_meta, pagination, serialize_doc
from utils.validation_utils import is_object_id, sanitize_search, to_object_id

logger = get_logger(__name__)


def _modifier(user_id: Optional[str]):
    if user_id and is_object_id(user_id):
        return to_object_id(user_id, "modified_by")
    return user_id


async def list_pages(
    page: int = 1,
    limit: int = 10,
    is_active: Optional[bool] = None,
    search: Optional[str] = None,
) -> Dict[str, Any]:
    query: Dict[str, Any] = {}
    if is_active is not None:
        query["is_active"] = is_active
    term = sanitize_search(search)
    if term:
        query["$or"] = [
            {"title": {"$regex": term, "$options": "i"}},
            {"slug": {"$regex": term, "$options": "i"}},
        ]

    page, limit, skip = pagination(page, limit)
    pages = get_content_pages_collection()
    cursor = pages.find(query).sort("created_at", DESCENDING).skip(skip).limit(limit)
    items = [serialize_doc(doc) async for doc in cursor]
    total = await pages.count_documents(query)
    return {"pages": items, **page_meta(total, page, limit)}


async def get_page_by_slug(slug: str) -> Dict[str, Any]:
    """Public read; inactive pages are reported as missing."""
    doc = await get_content_pages_collection().find_one({"slug": slug.strip().lower(), "is_active": True})
    if not doc:
        raise ResourceNotFoundError("Page not found")
    return serialize_doc(doc)


async def get_page_by_slug_admin(slug: str) -> Dict[str, Any]:
    doc = await get_content_pages_collection().find_one({"slug": slug.strip().lower()})
    if not doc:
        raise ResourceNotFoundError("Page not found")
    return serialize_doc(doc)


async def get_page_by_id(page_id: str) -> Dict[str, Any]:
    doc = await get_content_pages_collection().find_one({"_id": to_object_id(page_id, "page_id")})
    if not doc:
        raise ResourceNotFoundError("Page not found")
    return serialize_doc(doc)


async def create_page(data: ContentPageCreate, modified_by: Optional[str] = None) -> Dict[str, Any]:
    pages = get_content_pages_collection()
    if await pages.find_one({"slug": data.slug}):
        raise ConflictError(f"A page with slug '{data.slug}' already exists")

    now = datetime.utcnow()
    doc = data.model_dump(mode="python")
    doc.update({"modified_by": _modifier(modified_by), "created_at": now, "updated_at": now})

    try:
        result = await pages.insert_one(doc)
    except DuplicateKeyError:
        raise ConflictError(f"A page with slug '{data.slug}' already exists")

    doc["_id"] = result.inserted_id
    logger.info(f"Content page created: {data.slug}", extra={"user_id": modified_by})
    return serialize_doc(doc)


async def update_page(slug: str, data: ContentPageUpdate, modified_by: Optional[str] = None) -> Dict[str, Any]:
    changes = data.model_dump(exclude_unset=True, mode="python")
    changes.update({"modified_by": _modifier(modified_by), "updated_at": datetime.utcnow()})

    updated = await get_content_pages_collection().find_one_and_update(
        {"slug": slug.strip().lower()},
        {"$set": changes},
        return_document=ReturnDocument.AFTER,
    )
    if not updated:
        raise ResourceNotFoundError("Page not found")
    logger.info(f"Content page updated: {updated['slug']}", extra={"user_id": modified_by})
    return serialize_doc(updated)


async def delete_page(slug: str, modified_by: Optional[str] = None) -> None:
    """Soft delete: the page stays in the collection with is_active=False."""
    result = await get_content_pages_collection().update_one(
        {"slug": slug.strip().lower()},
        {"$set": {"is_active": False, "modified_by": _modifier(modified_by), "updated_at": datetime.utcnow()}},
    )
    if not result.matched_count:
        raise ResourceNotFoundError("Page not found")
    logger.info(f"Content page deleted: {slug}", extra={"user_id": modified_by})


async def toggle_page(slug: str, modified_by: Optional[str] = None) -> Dict[str, Any]:
    pages = get_content_pages_collection()
    current = await pages.find_one({"slug": slug.strip().lower()})
    if not current:
        raise ResourceNotFoundError("Page not found")

    updated = await pages.find_one_and_update(
        {"_id": current["_id"]},
        {"$set": {
            "is_active": not current.get("is_active", True),
            "modified_by": _modifier(modified_by),
            "updated_at": datetime.utcnow(),
        }},
        return_document=ReturnDocument.AFTER,
    )
    return serialize_doc(updated)


async def duplicate_page(slug: str, new_slug: str, new_title: str, modified_by: Optional[str] = None) -> Dict[str, Any]:
    """Copies the sections of an existing page under a new slug and title."""
    original = await get_page_by_slug_admin(slug)
    data = ContentPageCreate(slug=new_slug, title=new_title, sections=original["sections"], is_active=True)
    return await create_page(data, modified_by)
