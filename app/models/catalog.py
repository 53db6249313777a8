"""
app/models/catalog.py

Purpose: Plan and upgrade document models

- Plan: code, level (1..5), priced variants, feature flags
- Upgrade: duration, price, dependencies, stacking policy, effect
"""

from enum import Enum

MIN_PLAN_LEVEL = 1
MAX_PLAN_LEVEL = 5
DEFAULT_UPGRADE_HOURS = 24


class StackingPolicy(str, Enum):
    """
    What happens when an upgrade is bought while the same upgrade is still active.
    """
    EXTEND = "extend"    # push end_at by another duration
    REPLACE = "replace"  # restart from now
    REJECT = "reject"    # refuse the purchase


def find_variant(plan: dict, days: int):
    """Returns the plan variant for `days`, or None."""
    for variant in plan.get("variants") or []:
        if int(variant.get("days", 0)) == int(days):
            return variant
    return None
