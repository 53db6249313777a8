"""
app/schemas/coupon.py

Purpose: Coupon request schemas

- Code format and normalization
- Value bounds per coupon type
- Plan assignment requirements and usage limits
"""

from typing import List, Optional

from pydantic import Field, field_validator, model_validator

from app.schemas.base import DocumentModel, UTCDateTime
from app.models.coupon import CouponType, MAX_CODE_LENGTH, UNLIMITED_USES
from utils.validation_utils import COUPON_CODE_PATTERN, normalize_code

def _check_code(v: str) -> str:
    v = normalize_code(v)
    if not v or len(v) > MAX_CODE_LENGTH or not COUPON_CODE_PATTERN.match(v):
        raise ValueError("Code must contain only A-Z, 0-9, '_' or '-' (max 50 chars)")
    return v

def _check_max_uses(v: Optional[int]) -> Optional[int]:
    if v is not None and v != UNLIMITED_USES and v <= 0:
        raise ValueError("max_uses must be -1 (unlimited) or a positive number")
    return v

class CouponCreate(DocumentModel):
    code: str
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    type: CouponType
    value: float = Field(..., ge=0)
    plan_code: Optional[str] = None
    variant_days: Optional[int] = Field(None, gt=0)
    valid_plan_ids: List[str] = Field(default_factory=list)
    valid_upgrade_ids: List[str] = Field(default_factory=list)
    max_uses: int = UNLIMITED_USES
    valid_from: UTCDateTime
    valid_until: UTCDateTime
    is_active: bool = True

    @field_validator("code")
    @classmethod
    def validate_code(cls, v: str) -> str:
        return _check_code(v)

    @field_validator("max_uses")
    @classmethod
    def validate_max_uses(cls, v: int) -> int:
        return _check_max_uses(v)

    @model_validator(mode="after")
    def check_type_rules(self):
        if self.type == CouponType.PERCENTAGE and self.value > 100:
            raise ValueError("Percentage coupons must have a value between 0 and 100")
        if self.type == CouponType.PLAN_ASSIGNMENT:
            if not self.plan_code or not self.variant_days:
                raise ValueError("plan_assignment coupons require plan_code and variant_days")
            self.plan_code = normalize_code(self.plan_code)
        if self.valid_from >= self.valid_until:
            raise ValueError("valid_from must be before valid_until")
        return self

class CouponUpdate(DocumentModel):
    """
    Partial update; date order and type rules are re-checked against the stored coupon.
    """
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    type: Optional[CouponType] = None
    value: Optional[float] = Field(None, ge=0)
    plan_code: Optional[str] = None
    variant_days: Optional[int] = Field(None, gt=0)
    valid_plan_ids: Optional[List[str]] = None
    valid_upgrade_ids: Optional[List[str]] = None
    max_uses: Optional[int] = None
    valid_from: Optional[UTCDateTime] = None
    valid_until: Optional[UTCDateTime] = None
    is_active: Optional[bool] = None

    @field_validator("max_uses")
    @classmethod
    def validate_max_uses(cls, v: Optional[int]) -> Optional[int]:
        return _check_max_uses(v)

class CouponApplyRequest(DocumentModel):
    code: str
    plan_code: str
    variant_days: int = Field(..., gt=0)
    upgrade_code: Optional[str] = None

    @field_validator("code")
    @classmethod
    def normalize(cls, v: str) -> str:
        return normalize_code(v)
