"""
app/api/config_parameters.py

Purpose: Runtime configuration endpoints

- Reads are public (frontend pulls categories, values, feature lists)
- Writes are admin-only and record modified_by
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query

from app.core.security import require_admin
from app.models.config_parameter import ParameterType
from app.schemas.config_parameter import ConfigParameterCreate, ConfigParameterUpdate, ConfigValuesRequest
from app.schemas.response import success_response
from app.services import config_parameter_service

router = APIRouter()


@router.post("", status_code=201)
async def create_parameter(data: ConfigParameterCreate, admin: Dict[str, Any] = Depends(require_admin)):
    parameter = await config_parameter_service.create_parameter(data, modified_by=admin["id"])
    return success_response(parameter, "Configuration parameter created")


@router.get("")
async def list_parameters(
    category: Optional[str] = None,
    type: Optional[ParameterType] = None,
    tags: Optional[List[str]] = Query(None),
    is_active: Optional[bool] = True,
    search: Optional[str] = None,
    sort_by: str = "name",
    sort_order: str = Query("asc", pattern="^(asc|desc)$"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    result = await config_parameter_service.list_parameters(
        category=category,
        param_type=type.value if type else None,
        tags=tags,
        is_active=is_active,
        search=search,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return success_response(**result)


@router.get("/categories")
async def get_categories():
    return success_response(await config_parameter_service.get_categories())


@router.get("/tags")
async def get_tags():
    return success_response(await config_parameter_service.get_tags())


@router.post("/values")
async def get_values(data: ConfigValuesRequest):
    return success_response(await config_parameter_service.get_values(data.keys))


@router.get("/value/{key}")
async def get_value(key: str):
    return success_response({"key": key, "value": await config_parameter_service.get_value(key)})


@router.get("/key/{key}")
async def get_by_key(key: str, active_only: bool = True):
    return success_response(await config_parameter_service.get_parameter_by_key(key, active_only))


@router.get("/category/{category}")
async def get_by_category(category: str, active_only: bool = True):
    return success_response(await config_parameter_service.get_parameters_by_category(category, active_only))


@router.get("/type/{param_type}")
async def get_by_type(param_type: ParameterType, active_only: bool = True):
    return success_response(await config_parameter_service.get_parameters_by_type(param_type.value, active_only))


@router.get("/{param_id}")
async def get_parameter(param_id: str):
    return success_response(await config_parameter_service.get_parameter_by_id(param_id))


@router.put("/{param_id}")
async def update_parameter(
    param_id: str,
    data: ConfigParameterUpdate,
    admin: Dict[str, Any] = Depends(require_admin),
):
    parameter = await config_parameter_service.update_parameter(param_id, data, modified_by=admin["id"])
    return success_response(parameter, "Configuration parameter updated")


@router.patch("/{param_id}/toggle")
async def toggle_parameter(param_id: str, admin: Dict[str, Any] = Depends(require_admin)):
    return success_response(await config_parameter_service.toggle_parameter(param_id, modified_by=admin["id"]))


@router.delete("/{param_id}")
async def delete_parameter(param_id: str, admin: Dict[str, Any] = Depends(require_admin)):
    await config_parameter_service.delete_parameter(param_id, modified_by=admin["id"])
    return success_response(message="Configuration parameter deleted")
