"""
app/api/invoices.py

Purpose: Invoice endpoints

- Users generate, read and cancel their own invoices
- Admins list everything, mark invoices paid and change status
"""

from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from app.core.security import ensure_owner_or_admin, get_current_user, is_admin, require_admin
from app.models.invoice import InvoiceStatus
from app.schemas.invoice import CancelRequest, InvoiceCreate, InvoiceStatusUpdate, MarkPaidRequest
from app.schemas.response import success_response
from app.services import invoice_service, profile_service

router = APIRouter()


@router.post("", status_code=201)
async def generate_invoice(data: InvoiceCreate, user: Dict[str, Any] = Depends(get_current_user)):
    profile = await profile_service.get_profile(data.profile_id, user)
    ensure_owner_or_admin(user, profile["user_id"])
    invoice = await invoice_service.generate_invoice(
        profile_id=data.profile_id,
        user_id=profile["user_id"],
        plan_code=data.plan_code,
        plan_days=data.plan_days,
        upgrade_codes=data.upgrade_codes,
        coupon_code=data.coupon_code,
        notes=data.notes,
    )
    return success_response(invoice, "Invoice generated")


@router.get("")
async def list_invoices(
    profile_id: Optional[str] = None,
    user_id: Optional[str] = None,
    status: Optional[InvoiceStatus] = None,
    from_date: Optional[datetime] = None,
    to_date: Optional[datetime] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user: Dict[str, Any] = Depends(get_current_user),
):
    """Admins may filter by any user; everyone else only sees their own invoices."""
    if not is_admin(user):
        user_id = user["id"]
    result = await invoice_service.list_invoices(
        profile_id=profile_id,
        user_id=user_id,
        status=status.value if status else None,
        from_date=from_date,
        to_date=to_date,
        page=page,
        limit=limit,
    )
    return success_response(**result)


@router.get("/pending")
async def pending_invoices(user: Dict[str, Any] = Depends(get_current_user)):
    return success_response(await invoice_service.get_pending_invoices_for_user(user["id"]))


@router.get("/stats")
async def invoice_stats(user_id: Optional[str] = None, _: Dict[str, Any] = Depends(require_admin)):
    return success_response(await invoice_service.get_invoice_stats(user_id))


@router.post("/expire-overdue")
async def expire_overdue(_: Dict[str, Any] = Depends(require_admin)):
    count = await invoice_service.expire_overdue_invoices()
    return success_response({"expired": count})


@router.get("/{invoice_id}")
async def get_invoice(invoice_id: str, user: Dict[str, Any] = Depends(get_current_user)):
    return success_response(await invoice_service.get_invoice(invoice_id, user))


@router.post("/{invoice_id}/pay")
async def mark_paid(
    invoice_id: str,
    data: Optional[MarkPaidRequest] = None,
    _: Dict[str, Any] = Depends(require_admin),
):
    invoice = await invoice_service.mark_invoice_paid(invoice_id, data.payment_method if data else None)
    return success_response(invoice, "Invoice marked as paid")


@router.post("/{invoice_id}/cancel")
async def cancel_invoice(
    invoice_id: str,
    data: Optional[CancelRequest] = None,
    user: Dict[str, Any] = Depends(get_current_user),
):
    invoice = await invoice_service.cancel_invoice(invoice_id, user, data.reason if data else None)
    return success_response(invoice, "Invoice cancelled")


@router.patch("/{invoice_id}/status")
async def update_status(invoice_id: str, data: InvoiceStatusUpdate, _: Dict[str, Any] = Depends(require_admin)):
    invoice = await invoice_service.update_invoice_status(
        invoice_id, data.status, reason=data.notes, payment_method=data.payment_method
    )
    return success_response(invoice, "Invoice status updated")
