"""
app/services/payment_service.py

Purpose: Payment processing for paid invoices

- Assigns purchased plans
- Applies purchased upgrades
- Redeems the invoice coupon
"""

from typing import Any, Dict

from app.core.exceptions import MarketplaceError
from app.core.logging import get_logger, LogContext
from app.models.invoice import InvoiceItemType
from app.services import coupon_service, subscription_service

logger = get_logger(__name__)


async def process_invoice_payment(invoice: Dict[str, Any]) -> Dict[str, Any]:
    """
    Applies every item of a paid invoice to its profile.

    Each item is processed independently; a failing item is logged and
    reported in the result without stopping the others.

    Returns:
        Dict with plan_assigned, upgrades_applied, coupon_redeemed, errors
    """
    with LogContext(invoice_id=str(invoice["id"]), profile_id=str(invoice["profile_id"])):
        result: Dict[str, Any] = {
            "plan_assigned": None,
            "upgrades_applied": [],
            "coupon_redeemed": None,
            "errors": [],
        }

        for item in invoice.get("items") or []:
            try:
                if item["type"] == InvoiceItemType.PLAN:
                    await subscription_service.assign_plan(invoice["profile_id"], item["code"], item["days"])
                    result["plan_assigned"] = item["code"]
                elif item["type"] == InvoiceItemType.UPGRADE:
                    await subscription_service.apply_upgrade(invoice["profile_id"], item["code"])
                    result["upgrades_applied"].append(item["code"])
            except MarketplaceError as e:
                logger.error(f"Could not apply {item['type']} {item['code']}: {e.message}")
                result["errors"].append({"item": item["code"], "error": e.message})

        coupon = invoice.get("coupon")
        if coupon and coupon.get("code"):
            try:
                await coupon_service.redeem_coupon(coupon["code"])
                result["coupon_redeemed"] = coupon["code"]
            except MarketplaceError as e:
                logger.error(f"Could not redeem coupon: {e.message}", extra={"coupon_code": coupon["code"]})
                result["errors"].append({"item": coupon["code"], "error": e.message})

        logger.info(
            "Invoice payment processed",
            extra={"plan_assigned": result["plan_assigned"], "upgrades": result["upgrades_applied"]}
        )
        return result
