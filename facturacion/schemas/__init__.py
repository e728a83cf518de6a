from .invoice_schema import (
    InvoiceStatus,
    PaymentMethod,
    PaymentStatus,
    FollowUpStatus,
    QuoteStatus,
    InvoiceItem,
    InvoiceCreate,
    InvoiceUpdate,
    QuoteCreate,
    QuoteUpdate,
    PaymentCreate,
    Payment,
)

__all__ = [
    "InvoiceStatus",
    "PaymentMethod",
    "PaymentStatus",
    "FollowUpStatus",
    "QuoteStatus",
    "InvoiceItem",
    "InvoiceCreate",
    "InvoiceUpdate",
    "QuoteCreate",
    "QuoteUpdate",
    "PaymentCreate",
    "Payment",
]
