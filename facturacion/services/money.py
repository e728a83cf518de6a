"""
Currency-aware amounts for DOP and USD.

Amounts are floats (that is what Firestore stores). Comparisons go through
``EPSILON`` and stored values through ``round_currency``.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Optional, Union

from .errors import CurrencyMismatch, FieldViolation, ValidationError

EPSILON = 1e-6


class Currency(str, Enum):
    DOP = "DOP"
    USD = "USD"


DEFAULT_CURRENCY = Currency.DOP

CURRENCY_CODES = frozenset(currency.value for currency in Currency)

_SYMBOLS = {
    Currency.DOP: "RD$",
    Currency.USD: "US$",
}


def to_currency(value: Optional[Union[str, Currency]]) -> Currency:
    """Resolve a stored currency code; documents without one are DOP."""
    if not value:
        return DEFAULT_CURRENCY
    if value not in CURRENCY_CODES:
        raise ValidationError([FieldViolation("currency", f"must be one of DOP, USD (got {value!r})")])
    return Currency(value)


def round_currency(amount: float) -> float:
    """Round amount to currency precision (2 decimal places, half-up)"""
    return float(Decimal(str(amount)).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP))


def is_zero(amount: float) -> bool:
    return abs(amount) <= EPSILON


def amounts_equal(a: float, b: float) -> bool:
    return abs(a - b) <= EPSILON


def format_currency(amount: float, currency: Union[str, Currency, None] = None) -> str:
    """Format amount as a localized currency string with two fraction digits"""
    code = to_currency(currency)
    rounded = round_currency(amount)
    sign = "-" if rounded < 0 else ""
    return f"{sign}{_SYMBOLS[code]}{abs(rounded):,.2f}"


@dataclass(frozen=True)
class Money:
    amount: float
    currency: Currency

    def _check(self, other: "Money"):
        if other.currency != self.currency:
            raise CurrencyMismatch(self.currency.value, other.currency.value)

    def __add__(self, other: "Money") -> "Money":
        return add(self, other)

    def __sub__(self, other: "Money") -> "Money":
        return subtract(self, other)

    def format(self) -> str:
        return format_currency(self.amount, self.currency)


def add(a: Money, b: Money) -> Money:
    a._check(b)
    return Money(a.amount + b.amount, a.currency)


def subtract(a: Money, b: Money) -> Money:
    a._check(b)
    return Money(a.amount - b.amount, a.currency)
