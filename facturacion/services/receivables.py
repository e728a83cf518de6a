"""
Receivables: a user's invoices that still carry a balance.
"""

import logging
from datetime import date
from typing import Iterable, List, Mapping, Optional

from google.api_core import exceptions as g_exceptions

from ..shared.firebase_client import Collections
from ..shared.utils.helpers import parse_calendar_date
from .errors import QueryUnavailable
from .money import EPSILON
from .observability import Observer, default_observer

logger = logging.getLogger(__name__)


def _collections_order(invoice: Mapping):
    # Missing due dates sort last.
    due = invoice.get("dueDate") or ""
    return (due == "", due, invoice.get("id") or "")


def select_receivables(invoices: Iterable[Mapping], today: Optional[date] = None) -> List[dict]:
    """
    Keep invoices with a positive balance, ordered by dueDate then id, and
    annotate each with ``daysOverdue`` when its dueDate is an ISO date.
    """
    today = today or date.today()
    selected = []
    for invoice in invoices:
        balance = invoice.get("balanceDue")
        if not isinstance(balance, (int, float)) or balance <= EPSILON:
            continue
        entry = dict(invoice)
        due = parse_calendar_date(entry.get("dueDate"))
        if due is not None:
            entry["daysOverdue"] = max(0, (today - due).days)
        selected.append(entry)
    selected.sort(key=_collections_order)
    return selected


async def get_receivables(
    firestore_module,
    user_id: str,
    *,
    today: Optional[date] = None,
    observer: Optional[Observer] = None,
    timeout: Optional[float] = None,
) -> List[dict]:
    """
    Outstanding invoices for ``user_id``.

    Raises ``QueryUnavailable`` when Firestore rejects the ownership + balance
    filter (typically a missing composite index); that is not "no receivables".
    """
    observer = observer or default_observer
    db = firestore_module.client()
    query = (
        db.collection(Collections.INVOICES)
        .where("userId", "==", user_id)
        .where("balanceDue", ">", 0)
    )

    try:
        invoices = []
        for doc in query.stream(timeout=timeout):
            invoice = doc.to_dict()
            invoice["id"] = doc.id
            invoices.append(invoice)
    except (g_exceptions.FailedPrecondition, g_exceptions.InvalidArgument) as exc:
        observer.failure("receivables.query_unavailable", exc, userId=user_id)
        raise QueryUnavailable(
            "Receivables query cannot run; the composite index on (userId, balanceDue) may be missing",
            userId=user_id,
        ) from exc

    receivables = select_receivables(invoices, today=today)
    observer.event("receivables.fetched", userId=user_id, count=len(receivables))
    return receivables
