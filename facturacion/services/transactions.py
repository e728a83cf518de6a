"""
Bounded-retry wrapper around Firestore transactions.

Each attempt runs the whole read-modify-write from scratch in a fresh
transaction. Contention (``Aborted``) backs off exponentially with jitter;
domain errors and anything unexpected propagate immediately.
"""

import asyncio
import logging
import random
from typing import Any, Callable, Optional, Tuple

from google.api_core import exceptions as g_exceptions

from .errors import ConcurrencyConflict, LedgerError
from .observability import Observer, default_observer

logger = logging.getLogger(__name__)


def is_contention(exc: BaseException) -> bool:
    # google-cloud-firestore reports exhausted in-transaction retries as a
    # ValueError chained to the Aborted that caused it.
    if isinstance(exc, g_exceptions.Aborted):
        return True
    return isinstance(exc, ValueError) and isinstance(exc.__cause__, g_exceptions.Aborted)


async def run_in_transaction(
    firestore_module,
    txn_fn: Callable[[Any], Any],
    *,
    doc_id: str,
    label: str,
    observer: Optional[Observer] = None,
    max_attempts: int = 3,
    base_delay: float = 0.05,
) -> Tuple[Any, int]:
    """
    Run ``txn_fn(transaction)`` until it commits.

    Returns ``(result, attempts)``. Raises ``ConcurrencyConflict`` once
    ``max_attempts`` transactions in a row were aborted.
    """
    observer = observer or default_observer
    db = firestore_module.client()

    attempt = 0
    while attempt < max_attempts:
        attempt += 1
        transaction = db.transaction(max_attempts=1)
        try:
            @firestore_module.transactional
            def run_transaction(txn):
                return txn_fn(txn)

            return run_transaction(transaction), attempt
        except LedgerError:
            raise
        except Exception as exc:
            if not is_contention(exc):
                logger.exception(
                    f"{label}.txn_unexpected_error",
                    extra={"docId": doc_id, "attempt": attempt},
                )
                raise
            delay = base_delay * (2 ** (attempt - 1))
            jitter = random.uniform(0, delay * 0.1)
            observer.failure(
                f"{label}.txn_aborted",
                exc,
                docId=doc_id,
                attempt=attempt,
                delaySeconds=round(delay + jitter, 4),
            )
            if attempt < max_attempts:
                await asyncio.sleep(delay + jitter)

    raise ConcurrencyConflict(doc_id, attempt)
