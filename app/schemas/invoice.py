"""
app/schemas/invoice.py

Purpose: Invoice request schemas
"""

from typing import List, Optional

from pydantic import Field, model_validator

from app.schemas.base import DocumentModel
from app.models.invoice import InvoiceStatus


class InvoiceCreate(DocumentModel):
    profile_id: str
    plan_code: Optional[str] = None
    plan_days: Optional[int] = Field(None, gt=0)
    upgrade_codes: List[str] = Field(default_factory=list)
    coupon_code: Optional[str] = None
    notes: Optional[str] = Field(None, max_length=1000)

    @model_validator(mode="after")
    def require_items(self):
        if not self.plan_code and not self.upgrade_codes:
            raise ValueError("An invoice needs a plan or at least one upgrade")
        if self.plan_code and not self.plan_days:
            raise ValueError("plan_days is required when plan_code is set")
        return self


class MarkPaidRequest(DocumentModel):
    payment_method: Optional[str] = Field(None, max_length=50)


class CancelRequest(DocumentModel):
    reason: Optional[str] = Field(None, max_length=500)


class InvoiceStatusUpdate(DocumentModel):
    status: InvoiceStatus
    payment_method: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = Field(None, max_length=1000)
