"""
Receivables router - Invoices that still carry a balance
"""

from fastapi import APIRouter, Depends
from firebase_admin import firestore

from ..services.money import Currency, round_currency
from ..services.receivables import get_receivables
from ..shared import config
from ..shared.auth import get_current_user, get_user_id

router = APIRouter()


@router.get("/")
async def list_receivables(current_user: dict = Depends(get_current_user)):
    """Outstanding invoices ordered by due date, with totals per currency"""
    user_id = get_user_id(current_user)
    receivables = await get_receivables(firestore, user_id, timeout=config.store_timeout())

    totals = {currency.value: 0.0 for currency in Currency}
    for invoice in receivables:
        code = invoice.get("currency") or Currency.DOP.value
        if code in totals:
            totals[code] = round_currency(totals[code] + invoice["balanceDue"])

    return {"receivables": receivables, "count": len(receivables), "totals": totals}
