"""
app/models/config_parameter.py

Purpose: Config parameter document model

- Runtime settings stored as key/value documents
- Versioned on value change, soft-deleted via is_active
"""

from enum import Enum


class ParameterType(str, Enum):
    LOCATION = "location"
    TEXT = "text"
    MEMBERSHIP = "membership"
    SYSTEM = "system"
    APP = "app"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"
    JSON = "json"


SORTABLE_FIELDS = {"key", "name", "category", "type", "created_at", "updated_at", "last_modified"}
