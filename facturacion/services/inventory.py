"""
Product stock held by invoices.

Creating an invoice takes its item quantities out of stock; editing the items
returns the old quantities and takes the new ones. Both happen inside the
invoice's own transaction: ``plan_stock`` does the reads, ``write_stock`` the
writes, so callers can keep Firestore's reads-before-writes ordering.
"""

import logging
from collections import OrderedDict
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from ..shared.firebase_client import Collections
from .errors import InsufficientStock, NotFound, PermissionDenied

logger = logging.getLogger(__name__)

SERVICE_PRODUCT = "service"


def quantities(items: Optional[Iterable[Mapping]]) -> Dict[str, float]:
    """Quantity per productId, in first-seen order."""
    totals: Dict[str, float] = OrderedDict()
    for item in items or []:
        product_id = item.get("productId")
        if not product_id:
            continue
        totals[product_id] = totals.get(product_id, 0) + (item.get("quantity") or 0)
    return totals


def _tracked(product: Mapping) -> bool:
    return product.get("productType") != SERVICE_PRODUCT


def plan_stock(
    txn,
    db,
    user_id: str,
    items: Iterable[Mapping],
    previous_items: Iterable[Mapping] = (),
    *,
    timeout: Optional[float] = None,
) -> List[Tuple[object, float]]:
    """
    Read every product touched by ``items`` (and ``previous_items`` on an edit)
    and return the ``(product_ref, new_stock)`` writes.

    Products only referenced by ``previous_items`` may have been deleted since;
    their quantities are not returned anywhere. Raises ``NotFound`` for a
    missing product in ``items`` and ``InsufficientStock`` when a product would
    go below zero without ``allowNegativeStock``.
    """
    items = list(items)
    requested = quantities(items)
    returned = quantities(previous_items)
    names = {item.get("productId"): item.get("productName") for item in items}

    products = OrderedDict()
    for product_id in list(returned) + [pid for pid in requested if pid not in returned]:
        ref = db.collection(Collections.PRODUCTS).document(product_id)
        snapshot = ref.get(transaction=txn, timeout=timeout)
        if not snapshot.exists:
            if product_id in requested:
                raise NotFound("Product", product_id, productName=names.get(product_id))
            continue
        data = snapshot.to_dict() or {}
        owner = data.get("userId")
        if owner is not None and owner != user_id:
            raise PermissionDenied("Product", product_id)
        products[product_id] = (ref, data)

    writes = []
    for product_id, (ref, data) in products.items():
        if not _tracked(data):
            continue
        stock = data.get("stock") or 0
        available = stock + returned.get(product_id, 0)
        wanted = requested.get(product_id, 0)
        if wanted > available and not data.get("allowNegativeStock"):
            raise InsufficientStock(
                data.get("name") or names.get(product_id) or product_id,
                available,
                wanted,
                productId=product_id,
            )
        new_stock = available - wanted
        if new_stock != stock:
            writes.append((ref, new_stock))
    return writes


def write_stock(txn, writes: Iterable[Tuple[object, float]]) -> None:
    for ref, stock in writes:
        txn.update(ref, {"stock": stock})
        logger.debug("inventory.stock_updated", extra={"productId": ref.id, "stock": stock})
