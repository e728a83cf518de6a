"""
Invoices router - Invoice lifecycle, payments and payment reminders
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query
from firebase_admin import firestore

from ..services import invoices as invoice_service
from ..services import ledger
from ..services.messaging import payment_reminder, whatsapp_link
from ..shared import config
from ..shared.auth import get_current_user, get_user_id
from ..shared.models import SuccessResponse

router = APIRouter()


# ============ INVOICES ============

@router.post("/", response_model=SuccessResponse)
async def create_invoice(
    payload: Dict[str, Any] = Body(...),
    current_user: dict = Depends(get_current_user)
):
    """Create an invoice; number, balance and status are assigned here"""
    user_id = get_user_id(current_user)
    invoice = await invoice_service.create_invoice(
        firestore, user_id, payload, timeout=config.store_timeout()
    )
    return SuccessResponse(message="Invoice created", id=invoice["id"], data=invoice)


@router.get("/")
async def list_invoices(current_user: dict = Depends(get_current_user)):
    """Get the caller's invoices, newest first"""
    user_id = get_user_id(current_user)
    invoices = await invoice_service.list_invoices(firestore, user_id, timeout=config.store_timeout())
    return {"invoices": invoices, "count": len(invoices)}


@router.get("/{invoice_id}")
async def get_invoice(invoice_id: str, current_user: dict = Depends(get_current_user)):
    user_id = get_user_id(current_user)
    return await invoice_service.get_invoice(firestore, user_id, invoice_id, timeout=config.store_timeout())


@router.patch("/{invoice_id}", response_model=SuccessResponse)
async def update_invoice(
    invoice_id: str,
    payload: Dict[str, Any] = Body(...),
    current_user: dict = Depends(get_current_user)
):
    """Partial update; balance and status follow any change to the totals"""
    user_id = get_user_id(current_user)
    invoice = await invoice_service.update_invoice(
        firestore, user_id, invoice_id, payload, timeout=config.store_timeout()
    )
    return SuccessResponse(message="Invoice updated", id=invoice_id, data=invoice)


# ============ PAYMENTS ============

@router.post("/{invoice_id}/payments", response_model=SuccessResponse)
async def record_payment(
    invoice_id: str,
    payload: Dict[str, Any] = Body(...),
    current_user: dict = Depends(get_current_user)
):
    """Record a payment against an invoice"""
    user_id = get_user_id(current_user)
    result = await ledger.record_payment(
        firestore,
        user_id,
        {**payload, "invoiceId": invoice_id},
        max_attempts=config.payment_max_attempts(),
        timeout=config.store_timeout(),
    )
    message = "Payment recorded"
    if result.overpayment:
        message = f"Payment recorded; {result.overpayment:.2f} over the balance due was not credited"
    return SuccessResponse(
        message=message,
        id=result.payment["id"],
        data={
            "invoice": result.invoice,
            "payment": result.payment,
            "overpayment": result.overpayment,
            "attempts": result.attempts,
        },
    )


@router.get("/{invoice_id}/payments")
async def list_payments(invoice_id: str, current_user: dict = Depends(get_current_user)):
    user_id = get_user_id(current_user)
    return await invoice_service.list_payments(firestore, user_id, invoice_id, timeout=config.store_timeout())


# ============ REMINDERS ============

@router.get("/{invoice_id}/reminder")
async def get_payment_reminder(
    invoice_id: str,
    business_name: Optional[str] = Query(None, alias="businessName"),
    phone: Optional[str] = None,
    current_user: dict = Depends(get_current_user)
):
    """Payment reminder text for the invoice, plus a wa.me link when a phone is given"""
    user_id = get_user_id(current_user)
    invoice = await invoice_service.get_invoice(firestore, user_id, invoice_id, timeout=config.store_timeout())
    message = payment_reminder(invoice, business_name)
    response = {"invoiceId": invoice_id, "message": message}
    if phone:
        response["whatsappLink"] = whatsapp_link(phone, message)
    return response
