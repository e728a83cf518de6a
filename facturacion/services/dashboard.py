"""
Dashboard metrics derived from a user's invoices, clients and products.

``compute_metrics`` is a pure projection with no I/O; nothing is cached between calls.
"""

from dataclasses import dataclass, field, asdict
from datetime import date
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from ..schemas.invoice_schema import InvoiceStatus
from ..shared.firebase_client import Collections
from ..shared.utils.helpers import parse_date
from .money import CURRENCY_CODES, DEFAULT_CURRENCY, Currency
from .observability import Observer, default_observer

TOP_PRODUCTS = 5
TOP_CLIENTS = 4
OTHERS_LABEL = "Otros"


@dataclass
class ProductSales:
    product: str
    sales: float


@dataclass
class ClientActivity:
    client: str
    value: float


@dataclass
class DashboardMetrics:
    salesThisMonth: Dict[str, float] = field(default_factory=dict)
    pendingBalance: Dict[str, float] = field(default_factory=dict)
    activeClientsCount: int = 0
    productsCount: int = 0
    productSales: List[ProductSales] = field(default_factory=list)
    clientActivity: Dict[str, List[ClientActivity]] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)


def _zero_by_currency() -> Dict[str, float]:
    return {currency.value: 0.0 for currency in Currency}


def _currency_of(invoice: Mapping) -> Optional[str]:
    """Stored currency code; missing means DOP, unknown codes are left out."""
    code = invoice.get("currency") or DEFAULT_CURRENCY.value
    return code if code in CURRENCY_CODES else None


def _issued_in_month(invoice: Mapping, today: date) -> bool:
    issued = parse_date(invoice.get("issueDate"))
    return issued is not None and issued.year == today.year and issued.month == today.month


def monthly_revenue(invoices: Iterable[Mapping], today: date) -> Dict[str, float]:
    totals = _zero_by_currency()
    for invoice in invoices:
        code = _currency_of(invoice)
        if code and _issued_in_month(invoice, today):
            totals[code] += invoice.get("total", 0)
    return totals


def outstanding_balance(invoices: Iterable[Mapping]) -> Dict[str, float]:
    totals = _zero_by_currency()
    for invoice in invoices:
        code = _currency_of(invoice)
        if code and invoice.get("status") != InvoiceStatus.PAGADA.value:
            totals[code] += invoice.get("balanceDue", 0)
    return totals


def top_products(invoices: Iterable[Mapping], limit: int = TOP_PRODUCTS) -> List[ProductSales]:
    # dict keeps first-encountered order, and sorted() is stable, so ties keep it too
    quantities: Dict[str, float] = {}
    for invoice in invoices:
        for item in invoice.get("items") or []:
            name = item.get("productName")
            quantities[name] = quantities.get(name, 0) + item.get("quantity", 0)
    ranked = sorted(quantities.items(), key=lambda pair: pair[1], reverse=True)
    return [ProductSales(product=name, sales=qty) for name, qty in ranked[:limit]]


def rollup_top(values: Mapping[str, float], limit: int = TOP_CLIENTS) -> List[ClientActivity]:
    """Largest ``limit`` groups, then one "Otros" entry holding the rest."""
    ranked = sorted(values.items(), key=lambda pair: pair[1], reverse=True)
    activity = [ClientActivity(client=name, value=value) for name, value in ranked[:limit]]
    if len(ranked) > limit:
        activity.append(ClientActivity(client=OTHERS_LABEL, value=sum(value for _, value in ranked[limit:])))
    return activity


def client_activity(invoices: Iterable[Mapping], currency: Currency, limit: int = TOP_CLIENTS) -> List[ClientActivity]:
    totals: Dict[str, float] = {}
    for invoice in invoices:
        if _currency_of(invoice) != currency.value:
            continue
        name = invoice.get("clientName")
        totals[name] = totals.get(name, 0) + invoice.get("total", 0)
    return rollup_top(totals, limit)


def compute_metrics(
    invoices: Sequence[Mapping],
    clients: Sequence[Mapping],
    products: Sequence[Mapping],
    *,
    is_loading: bool = False,
    today: Optional[date] = None,
    observer: Optional[Observer] = None,
) -> Optional[DashboardMetrics]:
    """
    Dashboard projection, or ``None`` while the caller is still loading data.

    An empty but loaded invoice set gives all-zero metrics.
    """
    if is_loading:
        return None
    observer = observer or default_observer
    today = today or date.today()

    metrics = DashboardMetrics(
        salesThisMonth=monthly_revenue(invoices, today),
        pendingBalance=outstanding_balance(invoices),
        activeClientsCount=len(clients),
        productsCount=len(products),
        productSales=top_products(invoices),
        clientActivity={currency.value: client_activity(invoices, currency) for currency in Currency},
    )
    observer.event("dashboard.metrics_computed", invoiceCount=len(invoices))
    return metrics


def _owned_documents(db, collection: str, user_id: str, timeout: Optional[float]) -> List[dict]:
    documents = []
    for doc in db.collection(collection).where("userId", "==", user_id).stream(timeout=timeout):
        data = doc.to_dict()
        data["id"] = doc.id
        documents.append(data)
    return documents


async def get_dashboard_metrics(
    firestore_module,
    user_id: str,
    *,
    today: Optional[date] = None,
    observer: Optional[Observer] = None,
    timeout: Optional[float] = None,
) -> DashboardMetrics:
    """Load the user's invoices, clients and products and project them."""
    db = firestore_module.client()
    invoices = _owned_documents(db, Collections.INVOICES, user_id, timeout)
    clients = _owned_documents(db, Collections.CLIENTS, user_id, timeout)
    products = _owned_documents(db, Collections.PRODUCTS, user_id, timeout)
    return compute_metrics(invoices, clients, products, today=today, observer=observer)
