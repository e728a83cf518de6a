"""
Quotes router - Quotes and their conversion into invoices
"""

from typing import Any, Dict

from fastapi import APIRouter, Body, Depends
from firebase_admin import firestore

from ..services import quotes as quote_service
from ..shared import config
from ..shared.auth import get_current_user, get_user_id
from ..shared.models import SuccessResponse

router = APIRouter()


@router.post("/", response_model=SuccessResponse)
async def create_quote(
    payload: Dict[str, Any] = Body(...),
    current_user: dict = Depends(get_current_user)
):
    user_id = get_user_id(current_user)
    quote = await quote_service.create_quote(firestore, user_id, payload, timeout=config.store_timeout())
    return SuccessResponse(message="Quote created", id=quote["id"], data=quote)


@router.patch("/{quote_id}", response_model=SuccessResponse)
async def update_quote(
    quote_id: str,
    payload: Dict[str, Any] = Body(...),
    current_user: dict = Depends(get_current_user)
):
    user_id = get_user_id(current_user)
    quote = await quote_service.update_quote(firestore, user_id, quote_id, payload, timeout=config.store_timeout())
    return SuccessResponse(message="Quote updated", id=quote_id, data=quote)


@router.post("/{quote_id}/convert", response_model=SuccessResponse)
async def convert_quote(quote_id: str, current_user: dict = Depends(get_current_user)):
    """Turn a quote into an invoice. A quote converts only once."""
    user_id = get_user_id(current_user)
    invoice = await quote_service.convert_quote_to_invoice(
        firestore, user_id, quote_id, timeout=config.store_timeout()
    )
    return SuccessResponse(message="Quote converted to invoice", id=invoice["id"], data=invoice)
