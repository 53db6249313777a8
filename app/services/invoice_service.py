"""
app/services/invoice_service.py

Purpose: Invoice lifecycle

- Generates pending invoices from a plan variant and/or upgrades
- Optional coupon discount recorded on the invoice
- Status transitions (paid, cancelled, expired) and payment processing
- Expiry sweep and aggregate statistics
"""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from pymongo import DESCENDING, ReturnDocument

from app.core.config import settings
from app.core.exceptions import BusinessRuleError, ConflictError, ResourceNotFoundError, ValidationError
from app.core.logging import get_logger, LogContext
from app.core.security import ensure_owner_or_admin
from app.db.mongo import get_invoices_collection, get_profiles_collection
from app.models.catalog import find_variant
from app.models.invoice import InvoiceItemType, InvoiceStatus
from app.services import coupon_service, payment_service, plan_service
from utils.mongo_utils import page_meta, pagination, serialize_doc
from utils.time_utils import to_naive_utc
from utils.validation_utils import to_object_id

logger = get_logger(__name__)


async def generate_invoice(
    profile_id: str,
    user_id: str,
    plan_code: Optional[str] = None,
    plan_days: Optional[int] = None,
    upgrade_codes: Optional[List[str]] = None,
    coupon_code: Optional[str] = None,
    notes: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Creates a pending invoice for a profile.

    The coupon, when given, discounts the plan item (or the first upgrade
    when the invoice has no plan) and is stored with its amounts. It is
    only redeemed once the invoice is paid.
    """
    with LogContext(profile_id=str(profile_id), user_id=str(user_id)):
        profile = await get_profiles_collection().find_one(
            {"_id": to_object_id(profile_id, "profile_id"), "is_deleted": {"$ne": True}}
        )
        if not profile:
            raise ResourceNotFoundError("Profile not found")

        items: List[Dict[str, Any]] = []
        plan = None

        if plan_code:
            plan = await plan_service.get_plan_by_code(plan_code)
            if not plan.get("active", True):
                raise BusinessRuleError(f"Plan '{plan['code']}' is not active", code="PLAN_INACTIVE")
            variant = find_variant(plan, plan_days or 0)
            if not variant:
                raise ValidationError(f"Plan '{plan['code']}' has no {plan_days}-day variant")
            items.append({
                "type": InvoiceItemType.PLAN.value,
                "code": plan["code"],
                "name": plan["name"],
                "days": int(plan_days),
                "price": float(variant["price"]),
                "quantity": 1,
            })

        for code in upgrade_codes or []:
            upgrade = await plan_service.get_upgrade_by_code(code)
            if not upgrade.get("active", True):
                raise BusinessRuleError(f"Upgrade '{upgrade['code']}' is not active", code="UPGRADE_INACTIVE")
            items.append({
                "type": InvoiceItemType.UPGRADE.value,
                "code": upgrade["code"],
                "name": upgrade["name"],
                "days": max(1, int(upgrade.get("duration_hours", 24)) // 24),
                "price": float(upgrade.get("price", 0)),
                "quantity": 1,
            })

        if not items:
            raise ValidationError("An invoice needs a plan or at least one upgrade")

        total = sum(item["price"] * item["quantity"] for item in items)
        coupon_info = None

        if coupon_code:
            target = items[0]
            if plan:
                priced = {"id": plan["id"], "code": plan["code"], "price": target["price"]}
                coupon, application = await coupon_service.resolve_coupon_for_price(coupon_code, priced)
            else:
                priced = {"code": None, "price": target["price"]}
                coupon, application = await coupon_service.resolve_coupon_for_price(
                    coupon_code, priced, upgrade_code=target["code"]
                )
            coupon_info = {
                "code": coupon["code"],
                "name": coupon["name"],
                "type": coupon["type"],
                "value": coupon["value"],
                "original_amount": total,
                "discount_amount": application.discount,
                "final_amount": max(0.0, total - application.discount),
            }
            total = coupon_info["final_amount"]

        now = datetime.utcnow()
        doc = {
            "profile_id": profile["_id"],
            "user_id": to_object_id(user_id, "user_id"),
            "status": InvoiceStatus.PENDING.value,
            "items": items,
            "total_amount": total,
            "coupon": coupon_info,
            "expires_at": now + timedelta(hours=settings.INVOICE_EXPIRY_HOURS),
            "paid_at": None,
            "cancelled_at": None,
            "payment_method": None,
            "notes": notes,
            "created_at": now,
            "updated_at": now,
        }
        result = await get_invoices_collection().insert_one(doc)
        doc["_id"] = result.inserted_id

        logger.info(f"Invoice generated (total={total})", extra={"invoice_id": str(result.inserted_id)})
        return serialize_doc(doc)


async def get_invoice(invoice_id: str, user: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Loads an invoice; when `user` is given it must own the invoice or be an admin.
    """
    invoice = await get_invoices_collection().find_one({"_id": to_object_id(invoice_id, "invoice_id")})
    if not invoice:
        raise ResourceNotFoundError("Invoice not found")
    if user is not None:
        ensure_owner_or_admin(user, invoice["user_id"])
    return serialize_doc(invoice)


async def list_invoices(
    profile_id: Optional[str] = None,
    user_id: Optional[str] = None,
    status: Optional[str] = None,
    from_date: Optional[datetime] = None,
    to_date: Optional[datetime] = None,
    page: int = 1,
    limit: int = 10,
) -> Dict[str, Any]:
    query: Dict[str, Any] = {}
    if profile_id:
        query["profile_id"] = to_object_id(profile_id, "profile_id")
    if user_id:
        query["user_id"] = to_object_id(user_id, "user_id")
    if status:
        query["status"] = status
    if from_date or to_date:
        query["created_at"] = {}
        if from_date:
            query["created_at"]["$gte"] = to_naive_utc(from_date)
        if to_date:
            query["created_at"]["$lte"] = to_naive_utc(to_date)

    page, limit, skip = pagination(page, limit)
    invoices = get_invoices_collection()
    cursor = invoices.find(query).sort("created_at", DESCENDING).skip(skip).limit(limit)
    items = [serialize_doc(doc) async for doc in cursor]
    total = await invoices.count_documents(query)
    return {"invoices": items, **page_meta(total, page, limit)}


async def get_pending_invoices_for_user(user_id: str) -> List[Dict[str, Any]]:
    cursor = get_invoices_collection().find({
        "user_id": to_object_id(user_id, "user_id"),
        "status": InvoiceStatus.PENDING.value,
        "expires_at": {"$gt": datetime.utcnow()},
    }).sort("created_at", DESCENDING)
    return [serialize_doc(doc) async for doc in cursor]


async def _run_payment_processing(invoice: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    # The status change stands even if applying the purchase fails
    try:
        return await payment_service.process_invoice_payment(invoice)
    except Exception as e:
        logger.error(
            f"Payment processing failed: {str(e)}",
            extra={"invoice_id": invoice["id"]},
            exc_info=True
        )
        return None


async def update_invoice_status(
    invoice_id: str,
    new_status: str,
    reason: Optional[str] = None,
    payment_method: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Admin status change. A transition into "paid" runs payment processing.
    """
    invoices = get_invoices_collection()
    oid = to_object_id(invoice_id, "invoice_id")
    invoice = await invoices.find_one({"_id": oid})
    if not invoice:
        raise ResourceNotFoundError("Invoice not found")

    old_status = invoice["status"]
    now = datetime.utcnow()
    update: Dict[str, Any] = {"status": new_status, "updated_at": now}

    if new_status == InvoiceStatus.PAID and old_status != InvoiceStatus.PAID:
        update["paid_at"] = now
        if payment_method:
            update["payment_method"] = payment_method
    elif new_status == InvoiceStatus.CANCELLED and old_status != InvoiceStatus.CANCELLED:
        update["cancelled_at"] = now

    if reason:
        note = f"Status changed from '{old_status}' to '{new_status}': {reason}"
        update["notes"] = f"{invoice['notes']}\n\n{note}" if invoice.get("notes") else note

    # Only one caller can move the invoice out of the status it was read in
    transitioned = await invoices.find_one_and_update(
        {"_id": oid, "status": old_status}, {"$set": update}, return_document=ReturnDocument.AFTER
    )
    if not transitioned:
        raise ConflictError(
            "Invoice status changed while updating it, please retry",
            details={"invoice_id": str(oid), "expected_status": old_status},
        )
    updated = serialize_doc(transitioned)

    with LogContext(invoice_id=str(oid)):
        logger.info(f"Invoice status {old_status} -> {new_status}")

    if new_status == InvoiceStatus.PAID and old_status != InvoiceStatus.PAID:
        updated["processing"] = await _run_payment_processing(updated)

    return updated


async def mark_invoice_paid(invoice_id: str, payment_method: Optional[str] = None) -> Dict[str, Any]:
    invoice = await get_invoice(invoice_id)
    if invoice["status"] != InvoiceStatus.PENDING:
        raise BusinessRuleError(
            f"Only pending invoices can be paid (current status: {invoice['status']})",
            code="INVALID_INVOICE_STATUS",
        )
    return await update_invoice_status(invoice_id, InvoiceStatus.PAID.value, payment_method=payment_method)


async def cancel_invoice(invoice_id: str, user: Dict[str, Any], reason: Optional[str] = None) -> Dict[str, Any]:
    invoice = await get_invoice(invoice_id, user)
    if invoice["status"] == InvoiceStatus.PAID:
        raise BusinessRuleError("Paid invoices cannot be cancelled", code="INVALID_INVOICE_STATUS")
    if invoice["status"] == InvoiceStatus.CANCELLED:
        return invoice
    return await update_invoice_status(invoice_id, InvoiceStatus.CANCELLED.value, reason=reason)


async def expire_overdue_invoices(now: Optional[datetime] = None) -> int:
    now = now or datetime.utcnow()
    result = await get_invoices_collection().update_many(
        {"status": InvoiceStatus.PENDING.value, "expires_at": {"$lt": now}},
        {"$set": {"status": InvoiceStatus.EXPIRED.value, "updated_at": now}},
    )
    if result.modified_count:
        logger.info(f"Expired {result.modified_count} overdue invoice(s)")
    return result.modified_count


async def get_invoice_stats(user_id: Optional[str] = None) -> Dict[str, Any]:
    match: Dict[str, Any] = {}
    if user_id:
        match["user_id"] = to_object_id(user_id, "user_id")

    def count_status(status: InvoiceStatus) -> Dict[str, Any]:
        return {"$sum": {"$cond": [{"$eq": ["$status", status.value]}, 1, 0]}}

    pipeline = [
        {"$match": match},
        {"$group": {
            "_id": None,
            "total": {"$sum": 1},
            "pending": count_status(InvoiceStatus.PENDING),
            "paid": count_status(InvoiceStatus.PAID),
            "cancelled": count_status(InvoiceStatus.CANCELLED),
            "expired": count_status(InvoiceStatus.EXPIRED),
            "total_amount": {"$sum": "$total_amount"},
            "paid_amount": {"$sum": {"$cond": [{"$eq": ["$status", InvoiceStatus.PAID.value]}, "$total_amount", 0]}},
        }},
    ]
    rows = await get_invoices_collection().aggregate(pipeline).to_list(length=1)
    if not rows:
        return {"total": 0, "pending": 0, "paid": 0, "cancelled": 0, "expired": 0, "total_amount": 0, "paid_amount": 0}
    stats = rows[0]
    stats.pop("_id", None)
    return stats
