"""
Invoice, quote and payment schemas

Field names follow the stored Firestore documents (camelCase). Status and
balance fields are derived by the ledger and are never part of a payload.
"""

import re
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..services.money import Currency

EMAIL_PATTERN = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'


class InvoiceStatus(str, Enum):
    PENDIENTE = "pendiente"
    PARCIAL = "parcial"
    PAGADA = "pagada"


class PaymentMethod(str, Enum):
    EFECTIVO = "efectivo"
    TRANSFERENCIA = "transferencia"
    TARJETA = "tarjeta"


class PaymentStatus(str, Enum):
    PAGADO = "pagado"


class FollowUpStatus(str, Enum):
    REALIZADO = "realizado"
    PENDIENTE = "pendiente"


class QuoteStatus(str, Enum):
    BORRADOR = "borrador"
    FACTURADA = "facturada"


class InvoiceItem(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    productId: str
    productName: str
    quantity: float = Field(ge=0)
    unitPrice: float = Field(ge=0)
    unitCost: Optional[float] = None
    discount: Optional[float] = None
    finalPrice: Optional[float] = None
    numberOfPeople: Optional[int] = None
    followUpStatus: Optional[FollowUpStatus] = None
    isTaxExempt: Optional[bool] = None


def _require_text(v: str) -> str:
    if not v.strip():
        raise ValueError("must not be blank")
    return v.strip()


def _normalize_email(v: str) -> str:
    email = v.strip().lower()
    if not re.match(EMAIL_PATTERN, email):
        raise ValueError("Invalid email format")
    return email


class _DocumentBase(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    clientId: str = Field(min_length=1)
    clientName: str = Field(min_length=1)
    clientEmail: str
    clientAddress: Optional[str] = None
    issueDate: str
    dueDate: str
    items: List[InvoiceItem] = Field(min_length=1)
    subtotal: float = Field(ge=0)
    discountTotal: Optional[float] = None
    itbis: float = Field(ge=0)
    total: float = Field(ge=0)
    currency: Currency
    includeITBIS: Optional[bool] = None

    @field_validator('clientId', 'clientName')
    @classmethod
    def not_blank(cls, v):
        return _require_text(v)

    @field_validator('clientEmail')
    @classmethod
    def validate_email(cls, v):
        return _normalize_email(v)


class InvoiceCreate(_DocumentBase):
    pass


class QuoteCreate(_DocumentBase):
    notes: Optional[str] = None


# Required on create: an update may leave them out but may not clear them.
REQUIRED_FIELDS = (
    "clientId",
    "clientName",
    "clientEmail",
    "issueDate",
    "dueDate",
    "items",
    "subtotal",
    "itbis",
    "total",
    "currency",
)


class _PartialDocument(BaseModel):
    """Update payload: every field optional except the target id."""

    model_config = ConfigDict(use_enum_values=True)

    id: str = Field(min_length=1)
    clientId: Optional[str] = Field(default=None, min_length=1)
    clientName: Optional[str] = Field(default=None, min_length=1)
    clientEmail: Optional[str] = None
    clientAddress: Optional[str] = None
    issueDate: Optional[str] = None
    dueDate: Optional[str] = None
    items: Optional[List[InvoiceItem]] = Field(default=None, min_length=1)
    subtotal: Optional[float] = Field(default=None, ge=0)
    discountTotal: Optional[float] = None
    itbis: Optional[float] = Field(default=None, ge=0)
    total: Optional[float] = Field(default=None, ge=0)
    currency: Optional[Currency] = None
    includeITBIS: Optional[bool] = None

    # Only runs for fields present in the payload; omitted fields keep their default.
    @field_validator(*REQUIRED_FIELDS, mode='before')
    @classmethod
    def not_null(cls, v):
        if v is None:
            raise ValueError("cannot be null")
        return v

    @field_validator('clientId', 'clientName')
    @classmethod
    def not_blank(cls, v):
        return _require_text(v)

    @field_validator('clientEmail')
    @classmethod
    def validate_email(cls, v):
        return _normalize_email(v)

    def changes(self) -> dict:
        """Fields explicitly sent by the caller, without the id."""
        data = self.model_dump(exclude_unset=True)
        data.pop("id", None)
        return data


class InvoiceUpdate(_PartialDocument):
    pass


class QuoteUpdate(_PartialDocument):
    notes: Optional[str] = None


class PaymentCreate(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    invoiceId: str = Field(min_length=1)
    amount: float = Field(gt=0)
    paymentDate: str
    method: PaymentMethod
    currency: Optional[Currency] = None
    note: Optional[str] = None
    imageUrl: Optional[str] = None


class Payment(BaseModel):
    """A payment as stored in an invoice's payment history."""

    model_config = ConfigDict(use_enum_values=True)

    id: str
    receiptNumber: str
    amount: float = Field(gt=0)
    currency: Currency
    paymentDate: str
    method: PaymentMethod
    status: PaymentStatus = PaymentStatus.PAGADO
    note: Optional[str] = None
    imageUrl: Optional[str] = None
