"""
app/models/invoice.py

Purpose: Invoice document model

- Status lifecycle: pending -> paid | cancelled | expired
- Line items for plans and upgrades
"""

from enum import Enum


class InvoiceStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class InvoiceItemType(str, Enum):
    PLAN = "plan"
    UPGRADE = "upgrade"
