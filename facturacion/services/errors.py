"""
Error kinds raised by the invoicing core.

Every error carries a stable ``code`` and a ``context`` dict with enough detail
(invoice id, attempted amount, field names) for the caller to build a message.
"""

from dataclasses import dataclass, asdict
from typing import List, Optional


class LedgerError(Exception):
    """Base class for invoicing core errors."""

    code = "ledger_error"

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context


@dataclass(frozen=True)
class FieldViolation:
    path: str
    reason: str

    def to_dict(self) -> dict:
        return asdict(self)


class ValidationError(LedgerError):
    """One or more field-level violations. Nothing is persisted."""

    code = "validation_error"

    def __init__(self, violations: List[FieldViolation], message: Optional[str] = None):
        self.violations = list(violations)
        fields = ", ".join(v.path for v in self.violations)
        super().__init__(message or f"Invalid fields: {fields}", fields=[v.path for v in self.violations])


class CurrencyMismatch(LedgerError):
    code = "currency_mismatch"

    def __init__(self, expected: str, actual: str, **context):
        super().__init__(f"Currency {actual} does not match {expected}", expected=expected, actual=actual, **context)


class AlreadySettled(LedgerError):
    code = "already_settled"

    def __init__(self, invoice_id: Optional[str], **context):
        super().__init__(f"Invoice {invoice_id} is already paid in full", invoiceId=invoice_id, **context)


class InvalidAmount(LedgerError):
    code = "invalid_amount"

    def __init__(self, amount, **context):
        super().__init__(f"Payment amount must be greater than zero (got {amount})", amount=amount, **context)


class ConcurrencyConflict(LedgerError):
    code = "concurrency_conflict"

    def __init__(self, invoice_id: Optional[str], attempts: int, **context):
        super().__init__(
            f"Could not apply change to {invoice_id} after {attempts} attempts",
            invoiceId=invoice_id,
            attempts=attempts,
            **context,
        )


class QueryUnavailable(LedgerError):
    """The store cannot run the filter shape (usually a missing composite index)."""

    code = "query_unavailable"


class NotFound(LedgerError):
    code = "not_found"

    def __init__(self, kind: str, doc_id: Optional[str], **context):
        super().__init__(f"{kind} {doc_id} not found", kind=kind, id=doc_id, **context)


class PermissionDenied(LedgerError):
    code = "permission_denied"

    def __init__(self, kind: str, doc_id: Optional[str], **context):
        super().__init__(f"{kind} {doc_id} belongs to another user", kind=kind, id=doc_id, **context)


class QuoteAlreadyConverted(LedgerError):
    code = "quote_already_converted"

    def __init__(self, quote_id: str, invoice_id: Optional[str], **context):
        super().__init__(
            f"Quote {quote_id} was already converted",
            quoteId=quote_id,
            invoiceId=invoice_id,
            **context,
        )


class TextGenerationUnavailable(LedgerError):
    """The message-drafting backend failed or did not answer in time."""

    code = "text_generation_unavailable"


class InsufficientStock(LedgerError):
    code = "insufficient_stock"

    def __init__(self, product_name: str, available: float, requested: float, **context):
        super().__init__(
            f"Insufficient stock for {product_name}: available {available}, requested {requested}",
            productName=product_name,
            available=available,
            requested=requested,
            **context,
        )
