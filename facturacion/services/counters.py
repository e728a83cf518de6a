"""
Sequential per-user document numbers (INV-000001, COT-000001).

``read_next``/``write_next`` split the increment into the read and write phases
of a caller's transaction, so a number can be allocated in the same commit as
the document that uses it.
"""

from ..shared.firebase_client import Collections
from ..shared.utils.helpers import utc_now
from .transactions import run_in_transaction

INVOICE_COUNTER = ("invoices", "INV")
QUOTE_COUNTER = ("quotes", "COT")


def format_number(value: int, prefix: str = "", padding: int = 6) -> str:
    padded = str(value).zfill(padding)
    return f"{prefix}-{padded}" if prefix else padded


def _counter_ref(db, user_id: str, counter_type: str):
    return db.collection(Collections.COUNTERS).document(Collections.counter_id(user_id, counter_type))


def read_next(txn, db, user_id: str, counter_type: str, timeout=None):
    """Read phase: returns ``(counter_ref, next_value)``."""
    counter_ref = _counter_ref(db, user_id, counter_type)
    snapshot = counter_ref.get(transaction=txn, timeout=timeout)
    current = 0
    if snapshot.exists:
        current = int((snapshot.to_dict() or {}).get("current", 0))
    return counter_ref, current + 1


def write_next(txn, counter_ref, user_id: str, counter_type: str, value: int):
    txn.set(
        counter_ref,
        {
            "current": value,
            "lastUpdated": utc_now().isoformat(),
            "userId": user_id,
            "type": counter_type,
        },
        merge=True,
    )


async def next_number(
    firestore_module,
    user_id: str,
    counter_type: str,
    prefix: str = "",
    *,
    padding: int = 6,
    max_attempts: int = 5,
    base_delay: float = 0.05,
    timeout=None,
) -> str:
    db = firestore_module.client()

    def update_sequence(txn):
        counter_ref, value = read_next(txn, db, user_id, counter_type, timeout)
        write_next(txn, counter_ref, user_id, counter_type, value)
        return value

    value, _ = await run_in_transaction(
        firestore_module,
        update_sequence,
        doc_id=Collections.counter_id(user_id, counter_type),
        label="counter",
        max_attempts=max_attempts,
        base_delay=base_delay,
    )
    return format_number(value, prefix, padding)
