"""
app/api/plans.py

Purpose: Plan and upgrade catalog endpoints

- Public reads (active plans/upgrades, lookup by code or level)
- Admin writes, upgrade dependency tree and plan upgrade checks
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends, Query

from app.core.security import require_admin
from app.schemas.catalog import PlanCreate, PlanUpdate, UpgradeCreate, UpgradeUpdate
from app.schemas.response import success_response
from app.services import plan_service

router = APIRouter()


# Upgrades are declared first so /upgrades/... is not captured by /{plan_id}

@router.get("/upgrades")
async def list_upgrades(active_only: bool = False):
    return success_response(await plan_service.list_upgrades(active_only=active_only))


@router.post("/upgrades", status_code=201)
async def create_upgrade(data: UpgradeCreate, _: Dict[str, Any] = Depends(require_admin)):
    return success_response(await plan_service.create_upgrade(data), "Upgrade created")


@router.get("/upgrades/code/{code}")
async def get_upgrade_by_code(code: str):
    return success_response(await plan_service.get_upgrade_by_code(code))


@router.get("/upgrades/code/{code}/dependency-tree")
async def upgrade_dependency_tree(code: str):
    return success_response(await plan_service.get_upgrade_dependency_tree(code))


@router.get("/upgrades/{upgrade_id}")
async def get_upgrade(upgrade_id: str):
    return success_response(await plan_service.get_upgrade_by_id(upgrade_id))


@router.put("/upgrades/{upgrade_id}")
async def update_upgrade(upgrade_id: str, data: UpgradeUpdate, _: Dict[str, Any] = Depends(require_admin)):
    return success_response(await plan_service.update_upgrade(upgrade_id, data), "Upgrade updated")


@router.delete("/upgrades/{upgrade_id}")
async def delete_upgrade(upgrade_id: str, _: Dict[str, Any] = Depends(require_admin)):
    await plan_service.delete_upgrade(upgrade_id)
    return success_response(message="Upgrade deleted")


@router.get("")
async def list_plans(active_only: bool = False):
    return success_response(await plan_service.list_plans(active_only=active_only))


@router.post("", status_code=201)
async def create_plan(data: PlanCreate, _: Dict[str, Any] = Depends(require_admin)):
    return success_response(await plan_service.create_plan(data), "Plan created")


@router.get("/code/{code}")
async def get_plan_by_code(code: str):
    return success_response(await plan_service.get_plan_by_code(code))


@router.get("/code/{code}/validate-upgrades")
async def validate_plan_upgrades(code: str, _: Dict[str, Any] = Depends(require_admin)):
    return success_response(await plan_service.validate_plan_upgrades(code))


@router.get("/level/{level}")
async def get_plans_by_level(level: int, active_only: bool = Query(True)):
    return success_response(await plan_service.get_plans_by_level(level, active_only=active_only))


@router.get("/{plan_id}")
async def get_plan(plan_id: str):
    return success_response(await plan_service.get_plan_by_id(plan_id))


@router.put("/{plan_id}")
async def update_plan(plan_id: str, data: PlanUpdate, _: Dict[str, Any] = Depends(require_admin)):
    return success_response(await plan_service.update_plan(plan_id, data), "Plan updated")


@router.delete("/{plan_id}")
async def delete_plan(plan_id: str, _: Dict[str, Any] = Depends(require_admin)):
    await plan_service.delete_plan(plan_id)
    return success_response(message="Plan deleted")
