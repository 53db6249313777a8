"""
app/schemas/catalog.py

Purpose: Plan and upgrade request schemas
"""

from typing import List, Literal, Optional

from pydantic import Field, field_validator

from app.schemas.base import DocumentModel
from app.models.catalog import DEFAULT_UPGRADE_HOURS, MAX_PLAN_LEVEL, MIN_PLAN_LEVEL, StackingPolicy
from utils.validation_utils import PLAN_CODE_PATTERN, normalize_code


class PlanVariant(DocumentModel):
    days: int = Field(..., ge=1)
    price: float = Field(..., ge=0)
    duration_rank: int = Field(..., ge=0)


class PlanFeatures(DocumentModel):
    show_in_home: bool = False
    show_in_filters: bool = False
    show_in_sponsored: bool = False


class Range(DocumentModel):
    min: int = Field(0, ge=0)
    max: int = Field(0, ge=0)


class ContentLimits(DocumentModel):
    photos: Range = Field(default_factory=Range)
    videos: Range = Field(default_factory=Range)
    audios: Range = Field(default_factory=Range)
    stories_per_day_max: int = Field(0, ge=0)


def _check_plan_code(v: str) -> str:
    v = normalize_code(v)
    if not PLAN_CODE_PATTERN.match(v):
        raise ValueError("Plan code must contain only A-Z and '_'")
    return v


class PlanCreate(DocumentModel):
    code: str
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    level: int = Field(..., ge=MIN_PLAN_LEVEL, le=MAX_PLAN_LEVEL)
    variants: List[PlanVariant] = Field(..., min_length=1)
    features: PlanFeatures = Field(default_factory=PlanFeatures)
    content_limits: ContentLimits = Field(default_factory=ContentLimits)
    included_upgrades: List[str] = Field(default_factory=list)
    active: bool = True

    @field_validator("code")
    @classmethod
    def validate_code(cls, v: str) -> str:
        return _check_plan_code(v)

    @field_validator("included_upgrades")
    @classmethod
    def normalize_upgrades(cls, v: List[str]) -> List[str]:
        return [normalize_code(code) for code in v]


class PlanUpdate(DocumentModel):
    code: Optional[str] = None
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    level: Optional[int] = Field(None, ge=MIN_PLAN_LEVEL, le=MAX_PLAN_LEVEL)
    variants: Optional[List[PlanVariant]] = Field(None, min_length=1)
    features: Optional[PlanFeatures] = None
    content_limits: Optional[ContentLimits] = None
    included_upgrades: Optional[List[str]] = None
    active: Optional[bool] = None

    @field_validator("code")
    @classmethod
    def validate_code(cls, v: Optional[str]) -> Optional[str]:
        return _check_plan_code(v) if v is not None else v


class UpgradeEffect(DocumentModel):
    level_delta: Optional[int] = Field(None, ge=-5, le=5)
    set_level_to: Optional[int] = Field(None, ge=MIN_PLAN_LEVEL, le=MAX_PLAN_LEVEL)
    priority_bonus: int = 0
    position_rule: Literal["FRONT", "BACK", "BY_SCORE"] = "BY_SCORE"


class UpgradeCreate(DocumentModel):
    code: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=100)
    duration_hours: int = Field(DEFAULT_UPGRADE_HOURS, ge=1)
    price: float = Field(0, ge=0)
    requires: List[str] = Field(default_factory=list)
    stacking_policy: StackingPolicy = StackingPolicy.EXTEND
    effect: UpgradeEffect = Field(default_factory=UpgradeEffect)
    active: bool = True

    @field_validator("code")
    @classmethod
    def normalize(cls, v: str) -> str:
        return normalize_code(v)

    @field_validator("requires")
    @classmethod
    def normalize_requires(cls, v: List[str]) -> List[str]:
        return [normalize_code(code) for code in v]


class UpgradeUpdate(DocumentModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    duration_hours: Optional[int] = Field(None, ge=1)
    price: Optional[float] = Field(None, ge=0)
    requires: Optional[List[str]] = None
    stacking_policy: Optional[StackingPolicy] = None
    effect: Optional[UpgradeEffect] = None
    active: Optional[bool] = None

    @field_validator("requires")
    @classmethod
    def normalize_requires(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        return [normalize_code(code) for code in v] if v is not None else v
