"""
Payload validation for invoices, quotes and payments.

Each validator returns the normalized Pydantic model or raises ``ValidationError``
listing every violated field, not just the first one.
"""

import logging
from numbers import Real
from typing import Iterable, List, Mapping, Optional, Type

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ..schemas.invoice_schema import (
    InvoiceCreate,
    InvoiceUpdate,
    PaymentCreate,
    QuoteCreate,
    QuoteUpdate,
)
from .errors import FieldViolation, NotFound, ValidationError
from .money import DEFAULT_CURRENCY, amounts_equal

logger = logging.getLogger(__name__)

# Set by the ledger or by quote conversion; a payload may never carry them.
PROTECTED_FIELDS = ("status", "balanceDue", "payments", "userId", "invoiceNumber", "quoteNumber", "invoiceId", "quoteId")

MONEY_FIELDS = ("subtotal", "discountTotal", "itbis", "total")


def _format_loc(loc: Iterable) -> str:
    return ".".join(str(part) for part in loc) or "__root__"


def _pydantic_violations(exc: PydanticValidationError) -> List[FieldViolation]:
    return [FieldViolation(_format_loc(err["loc"]), err["msg"]) for err in exc.errors()]


def _protected_violations(payload: Mapping, allowed: Iterable[str] = ()) -> List[FieldViolation]:
    return [
        FieldViolation(field, "is derived and cannot be set")
        for field in PROTECTED_FIELDS
        if field in payload and field not in allowed
    ]


def _is_number(value) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


def totals_violations(values: Mapping) -> List[FieldViolation]:
    """total must equal subtotal - discountTotal + itbis."""
    subtotal = values.get("subtotal")
    itbis = values.get("itbis")
    total = values.get("total")
    discount = values.get("discountTotal") or 0
    if not all(_is_number(v) for v in (subtotal, itbis, total, discount)):
        return []
    expected = subtotal - discount + itbis
    if amounts_equal(total, expected):
        return []
    return [FieldViolation("total", f"must equal subtotal - discountTotal + itbis ({expected:.2f})")]


def _validate(model: Type[BaseModel], payload: Mapping, extra: List[FieldViolation]) -> BaseModel:
    violations = list(extra)
    parsed = None
    try:
        parsed = model.model_validate(payload)
    except PydanticValidationError as exc:
        violations[:0] = _pydantic_violations(exc)
    if violations:
        logger.debug("validation.failed", extra={"model": model.__name__, "fields": [v.path for v in violations]})
        raise ValidationError(violations)
    return parsed


def _validate_create(model: Type[BaseModel], payload: Mapping) -> BaseModel:
    if not isinstance(payload, Mapping):
        raise ValidationError([FieldViolation("__root__", "payload must be an object")])
    extra = _protected_violations(payload) + totals_violations(payload)
    return _validate(model, payload, extra)


def _validate_update(model: Type[BaseModel], payload: Mapping, existing: Optional[Mapping], kind: str):
    if not isinstance(payload, Mapping):
        raise ValidationError([FieldViolation("__root__", "payload must be an object")])
    extra = _protected_violations(payload)

    if existing is not None:
        changes = {k: v for k, v in payload.items() if k != "id"}
        if "currency" in changes:
            stored = existing.get("currency") or DEFAULT_CURRENCY.value
            if changes["currency"] != stored:
                extra.append(FieldViolation("currency", f"is immutable (stored as {stored})"))
        if any(field in changes for field in MONEY_FIELDS):
            merged = {field: existing.get(field) for field in MONEY_FIELDS}
            merged.update({k: v for k, v in changes.items() if k in MONEY_FIELDS})
            extra.extend(totals_violations(merged))

    parsed = _validate(model, payload, extra)
    if existing is None:
        raise NotFound(kind, parsed.id)
    return parsed


def validate_invoice_create(payload: Mapping) -> InvoiceCreate:
    return _validate_create(InvoiceCreate, payload)


def validate_quote_create(payload: Mapping) -> QuoteCreate:
    return _validate_create(QuoteCreate, payload)


def validate_invoice_update(payload: Mapping, existing: Optional[Mapping]) -> InvoiceUpdate:
    """
    Validate a partial invoice update against the stored invoice.

    ``existing`` is the current document (``None`` when the id does not resolve,
    which raises ``NotFound`` once the payload itself is well formed).
    """
    return _validate_update(InvoiceUpdate, payload, existing, "Invoice")


def validate_quote_update(payload: Mapping, existing: Optional[Mapping]) -> QuoteUpdate:
    return _validate_update(QuoteUpdate, payload, existing, "Quote")


def validate_payment(payload: Mapping) -> PaymentCreate:
    if not isinstance(payload, Mapping):
        raise ValidationError([FieldViolation("__root__", "payload must be an object")])
    return _validate(PaymentCreate, payload, [])
