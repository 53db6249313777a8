"""
app/schemas/config_parameter.py

Purpose: Config parameter request schemas
"""

from typing import Any, Dict, List, Optional

from pydantic import Field, field_validator

from app.schemas.base import DocumentModel
from app.models.config_parameter import ParameterType
from utils.validation_utils import CONFIG_KEY_PATTERN


class UIConfig(DocumentModel):
    component: Optional[str] = None
    editable: Optional[bool] = None
    hierarchical: Optional[bool] = None
    translatable: Optional[bool] = None
    rich_text: Optional[bool] = None
    price_editable: Optional[bool] = None
    feature_management: Optional[bool] = None


class ParameterMetadata(DocumentModel):
    description: Optional[str] = Field(None, max_length=500)
    validation: Optional[Dict[str, Any]] = None
    ui_config: Optional[UIConfig] = None
    cache_ttl: Optional[int] = Field(None, ge=0, le=86400)
    requires_restart: Optional[bool] = None
    environment: Optional[str] = None


def _lower_list(values: List[str]) -> List[str]:
    return [v.strip().lower() for v in values if v and v.strip()]


class ConfigParameterCreate(DocumentModel):
    key: str = Field(..., min_length=1, max_length=100)
    name: str = Field(..., min_length=1, max_length=200)
    type: ParameterType
    category: str = Field(..., min_length=1, max_length=50)
    value: Any
    metadata: ParameterMetadata = Field(default_factory=ParameterMetadata)
    is_active: bool = True
    tags: List[str] = Field(default_factory=list)
    dependencies: List[str] = Field(default_factory=list)

    @field_validator("key")
    @classmethod
    def validate_key(cls, v: str) -> str:
        v = v.strip()
        if not CONFIG_KEY_PATTERN.match(v):
            raise ValueError("Key must contain only lowercase letters, numbers, underscores, dots, and hyphens")
        return v

    @field_validator("category")
    @classmethod
    def lower_category(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("tags")
    @classmethod
    def lower_tags(cls, v: List[str]) -> List[str]:
        return _lower_list(v)


class ConfigParameterUpdate(DocumentModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    type: Optional[ParameterType] = None
    category: Optional[str] = Field(None, min_length=1, max_length=50)
    value: Optional[Any] = None
    metadata: Optional[ParameterMetadata] = None
    is_active: Optional[bool] = None
    tags: Optional[List[str]] = None
    dependencies: Optional[List[str]] = None

    @field_validator("category")
    @classmethod
    def lower_category(cls, v: Optional[str]) -> Optional[str]:
        return v.strip().lower() if v is not None else v

    @field_validator("tags")
    @classmethod
    def lower_tags(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        return _lower_list(v) if v is not None else v


class ConfigValuesRequest(DocumentModel):
    keys: List[str] = Field(..., min_length=1, max_length=100)
