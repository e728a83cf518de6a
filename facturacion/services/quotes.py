"""
Quotes and their one-way conversion into invoices.
"""

import logging
from datetime import date, timedelta
from typing import Mapping, Optional

from ..schemas.invoice_schema import QuoteStatus
from ..shared.firebase_client import Collections
from ..shared.utils.helpers import utc_now
from .counters import INVOICE_COUNTER, QUOTE_COUNTER, format_number, next_number, read_next, write_next
from .errors import NotFound, PermissionDenied, QuoteAlreadyConverted
from .inventory import plan_stock, write_stock
from .invoices import build_invoice_document
from .observability import Observer, default_observer
from .transactions import run_in_transaction
from .validation import validate_quote_create, validate_quote_update

logger = logging.getLogger(__name__)

DEFAULT_PAYMENT_TERM_DAYS = 30

# Quote fields carried over to the invoice created from it.
CONVERTED_FIELDS = (
    "clientId",
    "clientName",
    "clientEmail",
    "clientAddress",
    "items",
    "subtotal",
    "discountTotal",
    "itbis",
    "total",
    "currency",
    "includeITBIS",
)


def _owned_quote(snapshot, user_id: str) -> dict:
    if not snapshot.exists:
        raise NotFound("Quote", snapshot.id)
    data = snapshot.to_dict() or {}
    if data.get("userId") != user_id:
        raise PermissionDenied("Quote", snapshot.id)
    data["id"] = snapshot.id
    return data


async def create_quote(firestore_module, user_id: str, payload: Mapping, *, timeout: Optional[float] = None) -> dict:
    data = validate_quote_create(payload)
    counter_type, prefix = QUOTE_COUNTER
    quote_number = await next_number(firestore_module, user_id, counter_type, prefix, timeout=timeout)

    db = firestore_module.client()
    now = utc_now().isoformat()
    document = {k: v for k, v in data.model_dump().items() if v is not None}
    document.update({
        "userId": user_id,
        "quoteNumber": quote_number,
        "status": QuoteStatus.BORRADOR.value,
        "isActive": True,
        "createdAt": now,
        "updatedAt": now,
    })
    doc_ref = db.collection(Collections.QUOTES).document()
    doc_ref.set(document, timeout=timeout)
    return {**document, "id": doc_ref.id}


async def update_quote(
    firestore_module,
    user_id: str,
    quote_id: str,
    payload: Mapping,
    *,
    timeout: Optional[float] = None,
) -> dict:
    db = firestore_module.client()
    ref = db.collection(Collections.QUOTES).document(quote_id)
    payload = {**payload, "id": quote_id}

    def apply_update(txn):
        snapshot = ref.get(transaction=txn, timeout=timeout)
        existing = _owned_quote(snapshot, user_id) if snapshot.exists else None
        data = validate_quote_update(payload, existing)
        changes = data.changes()
        changes["updatedAt"] = utc_now().isoformat()
        txn.update(ref, changes)
        return {**existing, **changes}

    quote, _ = await run_in_transaction(firestore_module, apply_update, doc_id=quote_id, label="quote")
    return quote


async def convert_quote_to_invoice(
    firestore_module,
    user_id: str,
    quote_id: str,
    *,
    today: Optional[date] = None,
    observer: Optional[Observer] = None,
    timeout: Optional[float] = None,
) -> dict:
    """
    Create the invoice for a quote and mark the quote as invoiced, atomically.

    The invoice number, the stock taken by the items, the new invoice and the
    quote's status commit together. A quote converts at most once; later
    attempts raise ``QuoteAlreadyConverted``.
    """
    observer = observer or default_observer
    today = today or date.today()
    db = firestore_module.client()
    quote_ref = db.collection(Collections.QUOTES).document(quote_id)
    invoice_ref = db.collection(Collections.INVOICES).document()
    counter_type, prefix = INVOICE_COUNTER

    def convert(txn):
        current = _owned_quote(quote_ref.get(transaction=txn, timeout=timeout), user_id)
        if current.get("invoiceId") or current.get("status") == QuoteStatus.FACTURADA.value:
            raise QuoteAlreadyConverted(quote_id, current.get("invoiceId"))

        values = {field: current.get(field) for field in CONVERTED_FIELDS}
        values["issueDate"] = today.isoformat()
        values["dueDate"] = (today + timedelta(days=DEFAULT_PAYMENT_TERM_DAYS)).isoformat()
        values["quoteId"] = quote_id

        counter_ref, value = read_next(txn, db, user_id, counter_type, timeout)
        stock_writes = plan_stock(txn, db, user_id, values.get("items") or [], timeout=timeout)

        invoice = build_invoice_document(values, user_id, format_number(value, prefix))
        write_next(txn, counter_ref, user_id, counter_type, value)
        write_stock(txn, stock_writes)
        txn.set(invoice_ref, invoice)
        txn.update(quote_ref, {
            "status": QuoteStatus.FACTURADA.value,
            "invoiceId": invoice_ref.id,
            "updatedAt": utc_now().isoformat(),
        })
        return {**invoice, "id": invoice_ref.id}

    invoice, attempts = await run_in_transaction(
        firestore_module,
        convert,
        doc_id=quote_id,
        label="quote",
        observer=observer,
    )
    observer.event("quote.converted", quoteId=quote_id, invoiceId=invoice["id"], attempt=attempts)
    return invoice
