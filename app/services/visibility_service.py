"""
app/services/visibility_service.py

Purpose: Ranking of public profile listings

- Effective level: plan level adjusted by active upgrade effects
- Visibility score: level band, native vs boosted, plan duration, priority bonuses
- Ordering: by effective level, FRONT upgrades first and BACK last within a
  level, then by score with a rotating shuffle among equal scores

Rotation is seeded by the current time window so a listing stays stable
for `profile.rotation.interval.seconds` and reshuffles afterwards.
"""

import random
from datetime import datetime
from typing import Any, Dict, List, Optional

from app.core.logging import get_logger
from app.models.catalog import MAX_PLAN_LEVEL, MIN_PLAN_LEVEL
from app.services import config_parameter_service
from app.services.subscription_service import active_upgrades

logger = get_logger(__name__)

NO_PLAN_LEVEL = 999
LEVEL_BAND = 1_000_000
MAX_DURATION_DAYS = 249
ROTATION_INTERVAL_KEY = "profile.rotation.interval.seconds"
DEFAULT_ROTATION_SECONDS = 900

POSITION_FRONT = "FRONT"
POSITION_BACK = "BACK"


def _effect(upgrade: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    return (upgrade or {}).get("effect") or {}


def _changes_level(effect: Dict[str, Any]) -> bool:
    return effect.get("set_level_to") is not None or bool(effect.get("level_delta"))


def effective_upgrades(
    profile: Dict[str, Any],
    upgrades_by_code: Dict[str, Dict[str, Any]],
    now: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    """
    Definitions of the profile's running upgrades whose `requires` are all
    running as well. An upgrade with an unmet requirement has no effect.
    """
    now = now or datetime.utcnow()
    running = [u for u in active_upgrades(profile, now) if u.get("start_at") is None or u["start_at"] <= now]
    codes = {u["code"] for u in running}
    result = []
    for entry in running:
        definition = upgrades_by_code.get(entry["code"])
        if not definition:
            continue
        if all(req in codes for req in definition.get("requires") or []):
            result.append(definition)
    return result


def effective_level(
    profile: Dict[str, Any],
    plans_by_code: Dict[str, Dict[str, Any]],
    upgrades_by_code: Dict[str, Dict[str, Any]],
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Returns {"level", "original_level", "variant_days", "upgrades"}.

    Profiles without a known plan get NO_PLAN_LEVEL. `set_level_to` effects
    are applied before `level_delta` ones; the result stays within 1..5.
    """
    assignment = profile.get("plan_assignment") or {}
    plan = plans_by_code.get(assignment.get("plan_code") or "")
    upgrades = effective_upgrades(profile, upgrades_by_code, now)

    if not plan:
        return {"level": NO_PLAN_LEVEL, "original_level": NO_PLAN_LEVEL, "variant_days": 0, "upgrades": upgrades}

    original = int(plan.get("level", MAX_PLAN_LEVEL))
    level = original
    for upgrade in upgrades:
        target = _effect(upgrade).get("set_level_to")
        if target is not None:
            level = min(level, int(target))
    for upgrade in upgrades:
        delta = _effect(upgrade).get("level_delta")
        if delta:
            level += int(delta)
    level = max(MIN_PLAN_LEVEL, min(MAX_PLAN_LEVEL, level))

    return {
        "level": level,
        "original_level": original,
        "variant_days": int(assignment.get("variant_days") or 0),
        "upgrades": upgrades,
    }


def position_rule(upgrades: List[Dict[str, Any]]) -> str:
    rules = {_effect(u).get("position_rule") for u in upgrades}
    if POSITION_FRONT in rules:
        return POSITION_FRONT
    if POSITION_BACK in rules:
        return POSITION_BACK
    return "BY_SCORE"


def visibility_score(info: Dict[str, Any]) -> int:
    """
    Score for a profile given its effective_level() result.

    Within a level band, profiles on their native level rank above boosted
    ones, and FRONT upgrades add a sub-band on top of that.
    """
    level = info["level"]
    if level == NO_PLAN_LEVEL:
        return 0

    upgrades = info["upgrades"]
    native = level == info["original_level"]
    front = position_rule(upgrades) == POSITION_FRONT

    score = (MAX_PLAN_LEVEL + 1 - level) * LEVEL_BAND
    if native and front:
        score += 750_000
    elif native:
        score += 500_000
    elif front:
        score += 250_000

    score += min(info["variant_days"], MAX_DURATION_DAYS) * 1000

    # Bonuses only from upgrades that neither move the level nor the position
    for upgrade in upgrades:
        effect = _effect(upgrade)
        if _changes_level(effect) or effect.get("position_rule") in (POSITION_FRONT, POSITION_BACK):
            continue
        score += int(effect.get("priority_bonus") or 0) * 10_000

    return max(0, score)


def _rotate(group: List[Dict[str, Any]], seed: int) -> List[Dict[str, Any]]:
    by_score: Dict[int, List[Dict[str, Any]]] = {}
    for item in group:
        by_score.setdefault(item["visibility_score"], []).append(item)
    ordered = []
    for score in sorted(by_score, reverse=True):
        tied = sorted(by_score[score], key=lambda p: str(p.get("_id", p.get("id"))))
        random.Random(seed + score).shuffle(tied)
        ordered.extend(tied)
    return ordered


def sort_profiles(
    profiles: List[Dict[str, Any]],
    plans_by_code: Dict[str, Dict[str, Any]],
    upgrades_by_code: Dict[str, Dict[str, Any]],
    seed: int,
    now: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    """
    Orders profiles for a public listing and tags each with
    `effective_level` and `visibility_score`. Input dicts are not modified.
    """
    now = now or datetime.utcnow()
    by_level: Dict[int, Dict[str, List[Dict[str, Any]]]] = {}

    for profile in profiles:
        info = effective_level(profile, plans_by_code, upgrades_by_code, now)
        tagged = dict(profile, effective_level=info["level"], visibility_score=visibility_score(info))
        groups = by_level.setdefault(info["level"], {POSITION_FRONT: [], "BY_SCORE": [], POSITION_BACK: []})
        groups[position_rule(info["upgrades"])].append(tagged)

    ordered: List[Dict[str, Any]] = []
    for level in sorted(by_level):
        groups = by_level[level]
        for rule in (POSITION_FRONT, "BY_SCORE", POSITION_BACK):
            ordered.extend(_rotate(groups[rule], seed))
    return ordered


def level_separators(profiles: List[Dict[str, Any]]) -> List[Dict[str, int]]:
    """[{level, start_index, count}] runs of equal effective_level in an ordered page."""
    separators: List[Dict[str, int]] = []
    for index, profile in enumerate(profiles):
        level = profile.get("effective_level")
        if separators and separators[-1]["level"] == level:
            separators[-1]["count"] += 1
        else:
            separators.append({"level": level, "start_index": index, "count": 1})
    return separators


def rotation_seed(interval_seconds: Any, now: Optional[datetime] = None) -> int:
    """Index of the current rotation window."""
    try:
        seconds = int(interval_seconds)
    except (TypeError, ValueError):
        seconds = DEFAULT_ROTATION_SECONDS
    if seconds <= 0:
        seconds = DEFAULT_ROTATION_SECONDS
    now = now or datetime.utcnow()
    return int((now - datetime(1970, 1, 1)).total_seconds() // seconds)


async def current_rotation_seed(now: Optional[datetime] = None) -> int:
    interval = await config_parameter_service.get_value(ROTATION_INTERVAL_KEY, DEFAULT_ROTATION_SECONDS)
    return rotation_seed(interval, now)
