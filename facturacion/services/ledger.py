"""
Payment ledger.

``apply_payment`` is the pure balance/status computation. ``record_payment`` runs
it as a single Firestore read-modify-write on the invoice document, retrying the
whole transaction when the store reports a conflicting write.
"""

import logging
import time
from dataclasses import dataclass
from typing import List, Mapping, Optional, Union

from ..schemas.invoice_schema import InvoiceStatus, Payment, PaymentStatus
from ..shared.firebase_client import Collections
from ..shared.utils.helpers import generate_id, utc_now
from .errors import (
    AlreadySettled,
    CurrencyMismatch,
    InvalidAmount,
    LedgerError,
    NotFound,
    PermissionDenied,
)
from .money import CURRENCY_CODES, DEFAULT_CURRENCY, EPSILON, is_zero, round_currency
from .observability import Observer, default_observer
from .transactions import run_in_transaction
from .validation import validate_payment

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3


@dataclass
class LedgerUpdate:
    balanceDue: float
    status: str
    payments: List[dict]
    overpayment: float = 0.0

    def fields(self) -> dict:
        return {"balanceDue": self.balanceDue, "status": self.status, "payments": self.payments}


@dataclass
class PaymentResult:
    invoice: dict
    payment: dict
    attempts: int
    overpayment: float = 0.0
    latency_ms: float = 0.0


def derive_status(balance_due: float, total: float, payment_count: int) -> InvoiceStatus:
    if is_zero(balance_due):
        return InvoiceStatus.PAGADA
    if payment_count > 0 and balance_due < total - EPSILON:
        return InvoiceStatus.PARCIAL
    return InvoiceStatus.PENDIENTE


def current_balance(invoice: Mapping) -> float:
    balance = invoice.get("balanceDue")
    if balance is None:
        balance = invoice.get("total", 0)
    return round_currency(balance)


def paid_amount(invoice: Mapping) -> float:
    return round_currency(sum(p.get("amount", 0) for p in invoice.get("payments") or []))


def _currency_code(document: Mapping) -> str:
    return document.get("currency") or DEFAULT_CURRENCY.value


def apply_payment(invoice: Mapping, payment: Union[Payment, Mapping]) -> LedgerUpdate:
    """
    Compute the invoice state after ``payment``.

    The full amount goes into the history; balanceDue is capped at zero and any
    excess is reported as ``overpayment`` without being credited anywhere.
    """
    if isinstance(payment, Payment):
        payment = payment.model_dump(exclude_none=True)
    invoice_id = invoice.get("id")
    amount = payment.get("amount")

    if not isinstance(amount, (int, float)) or isinstance(amount, bool) or amount <= 0:
        raise InvalidAmount(amount, invoiceId=invoice_id)

    old_balance = current_balance(invoice)
    if old_balance <= EPSILON:
        raise AlreadySettled(invoice_id, amount=amount)

    invoice_currency = _currency_code(invoice)
    payment_currency = _currency_code(payment)
    if invoice_currency not in CURRENCY_CODES or payment_currency != invoice_currency:
        raise CurrencyMismatch(invoice_currency, payment_currency, invoiceId=invoice_id, amount=amount)

    remaining = round_currency(old_balance - amount)
    new_balance = 0.0 if remaining <= EPSILON else remaining
    overpayment = round_currency(amount - old_balance) if amount > old_balance + EPSILON else 0.0

    payments = [dict(p) for p in invoice.get("payments") or []]
    payments.append(dict(payment))
    total = invoice.get("total", old_balance)
    status = derive_status(new_balance, total, len(payments))

    return LedgerUpdate(
        balanceDue=new_balance,
        status=status.value,
        payments=payments,
        overpayment=overpayment,
    )


def _receipt_number() -> str:
    return f"REC-{int(time.time() * 1000) % 10 ** 8:08d}"


def _invoice_ref(db, invoice_id: str):
    return db.collection(Collections.INVOICES).document(invoice_id)


def _transaction_apply(transaction, db, user_id: str, invoice_id: str, payment: dict, timeout: Optional[float]):
    """
    Transactional function compatible with the @firestore.transactional decorator.
    Reads the invoice, computes the new balance and writes balance, status and
    the appended payment in one commit.
    """
    ref = _invoice_ref(db, invoice_id)
    snapshot = ref.get(transaction=transaction, timeout=timeout)
    if not snapshot.exists:
        raise NotFound("Invoice", invoice_id)

    invoice = snapshot.to_dict() or {}
    invoice["id"] = snapshot.id
    if invoice.get("userId") != user_id:
        raise PermissionDenied("Invoice", invoice_id)

    payment = dict(payment)
    payment.setdefault("currency", _currency_code(invoice))

    update = apply_payment(invoice, payment)
    changes = {**update.fields(), "updatedAt": utc_now().isoformat()}
    transaction.update(ref, changes)
    return update, {**invoice, **changes}


async def run_payment_transaction(
    firestore_module,
    user_id: str,
    invoice_id: str,
    payment: dict,
    *,
    observer: Optional[Observer] = None,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    base_delay: float = 0.05,
    timeout: Optional[float] = None,
) -> PaymentResult:
    """Apply an already-built payment record to an invoice with bounded retries."""
    observer = observer or default_observer
    db = firestore_module.client()
    start = time.perf_counter()

    try:
        (update, invoice), attempts = await run_in_transaction(
            firestore_module,
            lambda txn: _transaction_apply(txn, db, user_id, invoice_id, payment, timeout),
            doc_id=invoice_id,
            label="ledger",
            observer=observer,
            max_attempts=max_attempts,
            base_delay=base_delay,
        )
    except LedgerError as exc:
        observer.failure(
            "ledger.payment_rejected",
            exc,
            invoiceId=invoice_id,
            amount=payment.get("amount"),
            code=exc.code,
        )
        raise

    observer.event(
        "ledger.payment_applied",
        invoiceId=invoice_id,
        amount=payment.get("amount"),
        balanceDue=update.balanceDue,
        status=update.status,
        attempt=attempts,
    )
    if update.overpayment:
        observer.event("ledger.overpayment_recorded", invoiceId=invoice_id, overpayment=update.overpayment)

    return PaymentResult(
        invoice=invoice,
        payment=update.payments[-1],
        attempts=attempts,
        overpayment=update.overpayment,
        latency_ms=(time.perf_counter() - start) * 1000,
    )


async def record_payment(
    firestore_module,
    user_id: str,
    payload: Mapping,
    *,
    observer: Optional[Observer] = None,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    base_delay: float = 0.05,
    timeout: Optional[float] = None,
) -> PaymentResult:
    """Validate a payment payload and apply it to the referenced invoice."""
    data = validate_payment(payload)
    payment = {
        "id": generate_id("pay"),
        "receiptNumber": _receipt_number(),
        "amount": data.amount,
        "paymentDate": data.paymentDate,
        "method": data.method,
        "status": PaymentStatus.PAGADO.value,
        "note": data.note or "",
        "imageUrl": data.imageUrl or "",
    }
    if data.currency:
        payment["currency"] = data.currency

    return await run_payment_transaction(
        firestore_module,
        user_id,
        data.invoiceId,
        payment,
        observer=observer,
        max_attempts=max_attempts,
        base_delay=base_delay,
        timeout=timeout,
    )
