"""
app/api/content.py

Purpose: Content page endpoints

- Public read of active pages by slug
- Admin list, create, update, duplicate, toggle and delete
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import Field

from app.core.security import require_admin
from app.schemas.base import DocumentModel
from app.schemas.content import ContentPageCreate, ContentPageUpdate
from app.schemas.response import success_response
from app.services import content_service

router = APIRouter()


class DuplicateRequest(DocumentModel):
    new_slug: str
    new_title: str = Field(..., min_length=1, max_length=200)


@router.get("")
async def list_pages(
    is_active: Optional[bool] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    _: Dict[str, Any] = Depends(require_admin),
):
    return success_response(**await content_service.list_pages(page, limit, is_active, search))


@router.post("", status_code=201)
async def create_page(data: ContentPageCreate, admin: Dict[str, Any] = Depends(require_admin)):
    page = await content_service.create_page(data, modified_by=admin["id"])
    return success_response(page, "Page created")


@router.get("/admin/{slug:path}")
async def get_page_admin(slug: str, _: Dict[str, Any] = Depends(require_admin)):
    return success_response(await content_service.get_page_by_slug_admin(slug))


@router.post("/duplicate/{slug:path}", status_code=201)
async def duplicate_page(slug: str, data: DuplicateRequest, admin: Dict[str, Any] = Depends(require_admin)):
    page = await content_service.duplicate_page(slug, data.new_slug, data.new_title, modified_by=admin["id"])
    return success_response(page, "Page duplicated")


@router.patch("/toggle/{slug:path}")
async def toggle_page(slug: str, admin: Dict[str, Any] = Depends(require_admin)):
    return success_response(await content_service.toggle_page(slug, modified_by=admin["id"]))


@router.get("/{slug:path}")
async def get_page(slug: str):
    return success_response(await content_service.get_page_by_slug(slug))


@router.put("/{slug:path}")
async def update_page(slug: str, data: ContentPageUpdate, admin: Dict[str, Any] = Depends(require_admin)):
    page = await content_service.update_page(slug, data, modified_by=admin["id"])
    return success_response(page, "Page updated")


@router.delete("/{slug:path}")
async def delete_page(slug: str, admin: Dict[str, Any] = Depends(require_admin)):
    await content_service.delete_page(slug, modified_by=admin["id"])
    return success_response(message="Page deleted")
