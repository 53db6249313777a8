from datetime import datetime, timedelta

import pytest

from app.core.exceptions import BusinessRuleError
from app.services.plan_service import find_dependency_cycle
from app.services.subscription_service import (
    active_upgrades,
    build_plan_assignment,
    has_active_plan,
    missing_requirements,
    stack_upgrade,
)

NOW = datetime(2024, 6, 1, 12, 0, 0)
PLAN = {"id": "64b7f0c2a1b2c3d4e5f60001", "code": "ORO"}


def upgrade(policy="extend", hours=24, requires=None):
    return {"code": "DESTACADO", "duration_hours": hours, "stacking_policy": policy, "requires": requires or []}


def active_entry(end_in_hours=10):
    return {
        "code": "DESTACADO",
        "start_at": NOW - timedelta(hours=14),
        "end_at": NOW + timedelta(hours=end_in_hours),
        "purchase_at": NOW - timedelta(hours=14),
    }


def test_new_assignment_starts_now():
    assignment = build_plan_assignment(PLAN, 30, None, NOW)
    assert assignment["plan_code"] == "ORO"
    assert assignment["start_at"] == NOW
    assert assignment["expires_at"] == NOW + timedelta(days=30)


def test_same_active_plan_is_extended():
    current = {"plan_code": "ORO", "start_at": NOW - timedelta(days=5), "expires_at": NOW + timedelta(days=2)}
    assignment = build_plan_assignment(PLAN, 7, current, NOW)
    assert assignment["start_at"] == current["start_at"]
    assert assignment["expires_at"] == NOW + timedelta(days=9)


def test_different_plan_restarts():
    current = {"plan_code": "DIAMANTE", "start_at": NOW - timedelta(days=5), "expires_at": NOW + timedelta(days=2)}
    assignment = build_plan_assignment(PLAN, 7, current, NOW)
    assert assignment["start_at"] == NOW
    assert assignment["expires_at"] == NOW + timedelta(days=7)


def test_has_active_plan():
    assert has_active_plan({"plan_assignment": {"expires_at": NOW + timedelta(seconds=1)}}, NOW)
    assert not has_active_plan({"plan_assignment": {"expires_at": NOW}}, NOW)
    assert not has_active_plan({}, NOW)


def test_first_purchase_adds_entry():
    result = stack_upgrade([], upgrade(), NOW)
    assert len(result) == 1
    assert result[0]["end_at"] == NOW + timedelta(hours=24)


def test_extend_pushes_end_at():
    result = stack_upgrade([active_entry()], upgrade("extend"), NOW)
    assert len(result) == 1
    assert result[0]["end_at"] == NOW + timedelta(hours=34)


def test_replace_restarts_window():
    result = stack_upgrade([active_entry()], upgrade("replace", hours=12), NOW)
    assert result[0]["start_at"] == NOW
    assert result[0]["end_at"] == NOW + timedelta(hours=12)


def test_reject_fails_while_active():
    with pytest.raises(BusinessRuleError) as exc:
        stack_upgrade([active_entry()], upgrade("reject"), NOW)
    assert exc.value.code == "UPGRADE_ALREADY_ACTIVE"


def test_expired_entry_does_not_count_as_active():
    expired = active_entry(end_in_hours=-1)
    result = stack_upgrade([expired], upgrade("reject"), NOW)
    assert len(result) == 2


def test_stack_upgrade_does_not_mutate_input():
    entries = [active_entry()]
    original_end = entries[0]["end_at"]
    stack_upgrade(entries, upgrade("extend"), NOW)
    assert entries[0]["end_at"] == original_end


def test_missing_requirements():
    profile = {"upgrades": [active_entry()]}
    impulso = {"code": "IMPULSO", "requires": ["DESTACADO", "TOP"]}
    assert missing_requirements(profile, impulso, NOW) == ["TOP"]
    assert [u["code"] for u in active_upgrades(profile, NOW)] == ["DESTACADO"]


def test_no_cycle():
    graph = {"DESTACADO": [], "IMPULSO": ["DESTACADO"]}
    assert find_dependency_cycle("TOP", ["IMPULSO"], graph) is None


def test_direct_cycle():
    graph = {"DESTACADO": [], "IMPULSO": ["DESTACADO"]}
    assert find_dependency_cycle("DESTACADO", ["IMPULSO"], graph) == ["DESTACADO", "IMPULSO", "DESTACADO"]


def test_indirect_cycle():
    graph = {"A": ["B"], "B": ["C"], "C": []}
    cycle = find_dependency_cycle("C", ["A"], graph)
    assert cycle[0] == "C" and cycle[-1] == "C"
