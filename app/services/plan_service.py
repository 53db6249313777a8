"""
app/services/plan_service.py

Purpose: Plan and upgrade catalog management

- Plan CRUD (unique upper-case codes, priced variants)
- Upgrade CRUD with dependency checks (existence, self-reference, cycles)
- Included-upgrade validation and dependency trees
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Set

from pymongo import ASCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from app.core.exceptions import BusinessRuleError, ConflictError, ResourceNotFoundError, ValidationError
from app.core.logging import get_logger
from app.db.mongo import get_plans_collection, get_profiles_collection, get_upgrades_collection
from app.schemas.catalog import PlanCreate, PlanUpdate, UpgradeCreate, UpgradeUpdate
from utils.mongo_utils import serialize_doc
from utils.validation_utils import normalize_code, to_object_id

logger = get_logger(__name__)


# ==============================================
# PLANS
# ==============================================

async def list_plans(active_only: bool = False) -> List[Dict[str, Any]]:
    query = {"active": True} if active_only else {}
    cursor = get_plans_collection().find(query).sort([("level", ASCENDING), ("code", ASCENDING)])
    return [serialize_doc(doc) async for doc in cursor]


async def get_plan_by_id(plan_id: str) -> Dict[str, Any]:
    plan = await get_plans_collection().find_one({"_id": to_object_id(plan_id, "plan_id")})
    if not plan:
        raise ResourceNotFoundError("Plan not found")
    return serialize_doc(plan)


async def find_plan_by_code(code: str) -> Optional[Dict[str, Any]]:
    """Returns the serialized plan or None."""
    plan = await get_plans_collection().find_one({"code": normalize_code(code)})
    return serialize_doc(plan)


async def get_plan_by_code(code: str) -> Dict[str, Any]:
    plan = await find_plan_by_code(code)
    if not plan:
        raise ResourceNotFoundError(f"Plan '{normalize_code(code)}' not found")
    return plan


async def get_plans_by_level(level: int, active_only: bool = True) -> List[Dict[str, Any]]:
    query: Dict[str, Any] = {"level": level}
    if active_only:
        query["active"] = True
    cursor = get_plans_collection().find(query).sort("code", ASCENDING)
    return [serialize_doc(doc) async for doc in cursor]


async def create_plan(data: PlanCreate) -> Dict[str, Any]:
    plans = get_plans_collection()
    if await plans.find_one({"code": data.code}):
        raise ConflictError(f"Plan code '{data.code}' already exists")

    now = datetime.utcnow()
    doc = data.model_dump(mode="python")
    doc["created_at"] = now
    doc["updated_at"] = now

    try:
        result = await plans.insert_one(doc)
    except DuplicateKeyError:
        raise ConflictError(f"Plan code '{data.code}' already exists")

    doc["_id"] = result.inserted_id
    logger.info(f"Plan created: {data.code}")
    return serialize_doc(doc)


async def update_plan(plan_id: str, data: PlanUpdate) -> Dict[str, Any]:
    plans = get_plans_collection()
    oid = to_object_id(plan_id, "plan_id")
    changes = data.model_dump(exclude_unset=True, mode="python")

    if "code" in changes:
        existing = await plans.find_one({"code": changes["code"], "_id": {"$ne": oid}})
        if existing:
            raise ConflictError(f"Plan code '{changes['code']}' already exists")
    if "included_upgrades" in changes:
        changes["included_upgrades"] = [normalize_code(c) for c in changes["included_upgrades"]]

    changes["updated_at"] = datetime.utcnow()
    updated = await plans.find_one_and_update(
        {"_id": oid}, {"$set": changes}, return_document=ReturnDocument.AFTER
    )
    if not updated:
        raise ResourceNotFoundError("Plan not found")
    return serialize_doc(updated)


async def delete_plan(plan_id: str) -> None:
    """
    Deletes a plan unless a live profile is still assigned to it.
    """
    plans = get_plans_collection()
    oid = to_object_id(plan_id, "plan_id")
    plan = await plans.find_one({"_id": oid})
    if not plan:
        raise ResourceNotFoundError("Plan not found")

    in_use = await get_profiles_collection().count_documents({
        "plan_assignment.plan_code": plan["code"],
        "plan_assignment.expires_at": {"$gt": datetime.utcnow()},
        "is_deleted": {"$ne": True},
    })
    if in_use:
        raise BusinessRuleError(
            f"Plan '{plan['code']}' is assigned to {in_use} active profile(s)",
            code="PLAN_IN_USE",
        )

    await plans.delete_one({"_id": oid})
    logger.info(f"Plan deleted: {plan['code']}")


async def validate_plan_upgrades(code: str) -> Dict[str, Any]:
    """
    Reports which of a plan's included upgrades exist in the catalog.
    """
    plan = await get_plan_by_code(code)
    included = plan.get("included_upgrades") or []
    found = set()
    if included:
        cursor = get_upgrades_collection().find({"code": {"$in": included}}, {"code": 1})
        found = {doc["code"] async for doc in cursor}

    missing = [c for c in included if c not in found]
    return {
        "plan_code": plan["code"],
        "valid": not missing,
        "existing_upgrades": [c for c in included if c in found],
        "missing_upgrades": missing,
    }


# ==============================================
# UPGRADES
# ==============================================

async def list_upgrades(active_only: bool = False) -> List[Dict[str, Any]]:
    query = {"active": True} if active_only else {}
    cursor = get_upgrades_collection().find(query).sort("code", ASCENDING)
    return [serialize_doc(doc) async for doc in cursor]


async def get_upgrade_by_id(upgrade_id: str) -> Dict[str, Any]:
    upgrade = await get_upgrades_collection().find_one({"_id": to_object_id(upgrade_id, "upgrade_id")})
    if not upgrade:
        raise ResourceNotFoundError("Upgrade not found")
    return serialize_doc(upgrade)


async def find_upgrade_by_code(code: str) -> Optional[Dict[str, Any]]:
    upgrade = await get_upgrades_collection().find_one({"code": normalize_code(code)})
    return serialize_doc(upgrade)


async def get_upgrade_by_code(code: str) -> Dict[str, Any]:
    upgrade = await find_upgrade_by_code(code)
    if not upgrade:
        raise ResourceNotFoundError(f"Upgrade '{normalize_code(code)}' not found")
    return upgrade


async def _requires_map() -> Dict[str, List[str]]:
    cursor = get_upgrades_collection().find({}, {"code": 1, "requires": 1})
    return {doc["code"]: list(doc.get("requires") or []) async for doc in cursor}


def find_dependency_cycle(code: str, requires: List[str], graph: Dict[str, List[str]]) -> Optional[List[str]]:
    """
    Returns a dependency path that leads back to `code` if `code` were to
    require `requires`, otherwise None.
    """
    graph = dict(graph)
    graph[code] = list(requires)

    def visit(current: str, path: List[str], seen: Set[str]) -> Optional[List[str]]:
        for dep in graph.get(current, []):
            if dep == code:
                return path + [dep]
            if dep in seen:
                continue
            seen.add(dep)
            found = visit(dep, path + [dep], seen)
            if found:
                return found
        return None

    return visit(code, [code], set())


async def _validate_requires(code: str, requires: List[str]) -> None:
    if code in requires:
        raise ValidationError(f"Upgrade '{code}' cannot require itself", details={"field": "requires"})

    graph = await _requires_map()
    missing = [dep for dep in requires if dep not in graph]
    if missing:
        raise ValidationError(
            f"Required upgrade(s) not found: {', '.join(missing)}",
            details={"field": "requires", "missing": missing}
        )

    cycle = find_dependency_cycle(code, requires, graph)
    if cycle:
        raise ValidationError(
            f"Circular upgrade dependency: {' -> '.join(cycle)}",
            details={"field": "requires", "cycle": cycle}
        )


async def create_upgrade(data: UpgradeCreate) -> Dict[str, Any]:
    upgrades = get_upgrades_collection()
    if await upgrades.find_one({"code": data.code}):
        raise ConflictError(f"Upgrade code '{data.code}' already exists")

    await _validate_requires(data.code, data.requires)

    now = datetime.utcnow()
    doc = data.model_dump(mode="python")
    doc["created_at"] = now
    doc["updated_at"] = now

    try:
        result = await upgrades.insert_one(doc)
    except DuplicateKeyError:
        raise ConflictError(f"Upgrade code '{data.code}' already exists")

    doc["_id"] = result.inserted_id
    logger.info(f"Upgrade created: {data.code}")
    return serialize_doc(doc)


async def update_upgrade(upgrade_id: str, data: UpgradeUpdate) -> Dict[str, Any]:
    upgrades = get_upgrades_collection()
    oid = to_object_id(upgrade_id, "upgrade_id")
    current = await upgrades.find_one({"_id": oid})
    if not current:
        raise ResourceNotFoundError("Upgrade not found")

    changes = data.model_dump(exclude_unset=True, mode="python")
    if "requires" in changes:
        await _validate_requires(current["code"], changes["requires"])

    changes["updated_at"] = datetime.utcnow()
    updated = await upgrades.find_one_and_update(
        {"_id": oid}, {"$set": changes}, return_document=ReturnDocument.AFTER
    )
    return serialize_doc(updated)


async def delete_upgrade(upgrade_id: str) -> None:
    upgrades = get_upgrades_collection()
    oid = to_object_id(upgrade_id, "upgrade_id")
    upgrade = await upgrades.find_one({"_id": oid})
    if not upgrade:
        raise ResourceNotFoundError("Upgrade not found")

    dependents = [doc["code"] async for doc in upgrades.find({"requires": upgrade["code"]}, {"code": 1})]
    if dependents:
        raise BusinessRuleError(
            f"Upgrade '{upgrade['code']}' is required by: {', '.join(dependents)}",
            code="UPGRADE_IN_USE",
            details={"dependents": dependents}
        )

    await upgrades.delete_one({"_id": oid})
    logger.info(f"Upgrade deleted: {upgrade['code']}")


async def get_upgrade_dependency_tree(code: str) -> Dict[str, Any]:
    """
    Returns {code, name, requires: [subtrees]} for an upgrade.
    """
    root = await get_upgrade_by_code(code)
    cursor = get_upgrades_collection().find({}, {"code": 1, "name": 1, "requires": 1})
    catalog = {doc["code"]: doc async for doc in cursor}

    def build(node_code: str, path: Set[str]) -> Dict[str, Any]:
        node = catalog.get(node_code, {})
        children = []
        for dep in node.get("requires") or []:
            if dep in path:
                # Stored data should never contain cycles; stop instead of recursing forever
                children.append({"code": dep, "circular": True, "requires": []})
                continue
            children.append(build(dep, path | {dep}))
        return {"code": node_code, "name": node.get("name"), "requires": children}

    return build(root["code"], {root["code"]})
