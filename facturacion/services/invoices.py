"""
Invoice lifecycle: creation, consistent updates and owner-scoped reads.
"""

import logging
from typing import List, Mapping, Optional

from ..shared.firebase_client import Collections
from ..shared.utils.helpers import utc_now
from .counters import INVOICE_COUNTER, format_number, read_next, write_next
from .errors import NotFound, PermissionDenied
from .inventory import plan_stock, write_stock
from .ledger import derive_status, paid_amount
from .money import round_currency
from .observability import Observer, default_observer
from .transactions import run_in_transaction
from .validation import MONEY_FIELDS, validate_invoice_create, validate_invoice_update

logger = logging.getLogger(__name__)


def build_invoice_document(values: Mapping, user_id: str, invoice_number: str) -> dict:
    """A fresh invoice: nothing paid yet, balanceDue equals total."""
    total = round_currency(values["total"])
    document = {k: v for k, v in values.items() if v is not None}
    now = utc_now().isoformat()
    document.update({
        "userId": user_id,
        "invoiceNumber": invoice_number,
        "total": total,
        "balanceDue": total,
        "status": derive_status(total, total, 0).value,
        "payments": [],
        "isActive": True,
        "createdAt": now,
        "updatedAt": now,
    })
    return document


def _owned(snapshot, user_id: str, kind: str) -> dict:
    if not snapshot.exists:
        raise NotFound(kind, snapshot.id)
    data = snapshot.to_dict() or {}
    if data.get("userId") != user_id:
        raise PermissionDenied(kind, snapshot.id)
    data["id"] = snapshot.id
    return data


async def create_invoice(
    firestore_module,
    user_id: str,
    payload: Mapping,
    *,
    observer: Optional[Observer] = None,
    timeout: Optional[float] = None,
) -> dict:
    """
    Allocate the next invoice number, take the items out of stock and store the
    invoice, all in one transaction.
    """
    observer = observer or default_observer
    data = validate_invoice_create(payload)
    values = data.model_dump()
    counter_type, prefix = INVOICE_COUNTER
    db = firestore_module.client()
    doc_ref = db.collection(Collections.INVOICES).document()

    def create(txn):
        counter_ref, value = read_next(txn, db, user_id, counter_type, timeout)
        stock_writes = plan_stock(txn, db, user_id, values["items"], timeout=timeout)

        document = build_invoice_document(values, user_id, format_number(value, prefix))
        write_next(txn, counter_ref, user_id, counter_type, value)
        write_stock(txn, stock_writes)
        txn.set(doc_ref, document)
        return document

    document, attempts = await run_in_transaction(
        firestore_module,
        create,
        doc_id=doc_ref.id,
        label="invoice",
        observer=observer,
    )
    logger.info("invoice.created", extra={"invoiceId": doc_ref.id, "invoiceNumber": document["invoiceNumber"]})
    return {**document, "id": doc_ref.id}


def recompute_balance(invoice: Mapping) -> dict:
    """balanceDue/status for an invoice whose total may have changed."""
    total = round_currency(invoice.get("total", 0))
    payments = invoice.get("payments") or []
    balance = max(0.0, round_currency(total - paid_amount(invoice)))
    return {"balanceDue": balance, "status": derive_status(balance, total, len(payments)).value}


async def update_invoice(
    firestore_module,
    user_id: str,
    invoice_id: str,
    payload: Mapping,
    *,
    observer: Optional[Observer] = None,
    timeout: Optional[float] = None,
) -> dict:
    observer = observer or default_observer
    db = firestore_module.client()
    ref = db.collection(Collections.INVOICES).document(invoice_id)
    payload = {**payload, "id": invoice_id}

    def apply_update(txn):
        snapshot = ref.get(transaction=txn, timeout=timeout)
        existing = None
        if snapshot.exists:
            existing = _owned(snapshot, user_id, "Invoice")
        data = validate_invoice_update(payload, existing)

        changes = data.changes()
        stock_writes = []
        if "items" in changes:
            stock_writes = plan_stock(txn, db, user_id, changes["items"], existing.get("items"), timeout=timeout)
        if "total" in changes:
            changes["total"] = round_currency(changes["total"])
        if any(field in changes for field in MONEY_FIELDS):
            changes.update(recompute_balance({**existing, **changes}))
        changes["updatedAt"] = utc_now().isoformat()
        write_stock(txn, stock_writes)
        txn.update(ref, changes)
        return {**existing, **changes}

    invoice, attempts = await run_in_transaction(
        firestore_module,
        apply_update,
        doc_id=invoice_id,
        label="invoice",
        observer=observer,
    )
    observer.event("invoice.updated", invoiceId=invoice_id, attempt=attempts)
    return invoice


async def get_invoice(firestore_module, user_id: str, invoice_id: str, *, timeout: Optional[float] = None) -> dict:
    db = firestore_module.client()
    snapshot = db.collection(Collections.INVOICES).document(invoice_id).get(timeout=timeout)
    return _owned(snapshot, user_id, "Invoice")


async def list_invoices(firestore_module, user_id: str, *, timeout: Optional[float] = None) -> List[dict]:
    db = firestore_module.client()
    query = db.collection(Collections.INVOICES).where("userId", "==", user_id)
    invoices = []
    for doc in query.stream(timeout=timeout):
        invoice = doc.to_dict()
        invoice["id"] = doc.id
        invoices.append(invoice)
    invoices.sort(key=lambda inv: (inv.get("issueDate") or "", inv["id"]), reverse=True)
    return invoices


async def list_payments(firestore_module, user_id: str, invoice_id: str, *, timeout: Optional[float] = None) -> dict:
    invoice = await get_invoice(firestore_module, user_id, invoice_id, timeout=timeout)
    return {
        "invoiceId": invoice_id,
        "currency": invoice.get("currency"),
        "total": invoice.get("total", 0),
        "amountPaid": paid_amount(invoice),
        "balanceDue": invoice.get("balanceDue", 0),
        "status": invoice.get("status"),
        "payments": invoice.get("payments", []),
    }
