"""
app/models/coupon.py

Purpose: Coupon document model

- Discount types (percentage, fixed amount, plan assignment)
- Availability error codes
- Unlimited-use sentinel
"""

from enum import Enum

UNLIMITED_USES = -1
MAX_CODE_LENGTH = 50


class CouponType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED_AMOUNT = "fixed_amount"
    PLAN_ASSIGNMENT = "plan_assignment"


class CouponErrorCode(str, Enum):
    """
    Reasons a coupon cannot be used right now, in the order they are checked.
    """
    NOT_FOUND = "COUPON_NOT_FOUND"
    INACTIVE = "COUPON_INACTIVE"
    NOT_STARTED = "COUPON_NOT_STARTED"
    EXPIRED = "COUPON_EXPIRED"
    EXHAUSTED = "COUPON_EXHAUSTED"
    NOT_APPLICABLE = "COUPON_NOT_APPLICABLE"


COUPON_ERROR_MESSAGES = {
    CouponErrorCode.NOT_FOUND: "Coupon not found",
    CouponErrorCode.INACTIVE: "Coupon is not active",
    CouponErrorCode.NOT_STARTED: "Coupon is not valid yet",
    CouponErrorCode.EXPIRED: "Coupon has expired",
    CouponErrorCode.EXHAUSTED: "Coupon has reached its usage limit",
    CouponErrorCode.NOT_APPLICABLE: "Coupon is not valid for this plan or upgrade",
}
