from __future__ import annotations

import logging
from datetime import date
from typing import Dict, Iterable, List, Optional
from uuid import uuid4

from ..errors import PartialWriteError, PreconditionError, StoreError
from ..models.order_models import Order, OrderItem
from . import lifecycle
from .ledger import OrderLedger

logger = logging.getLogger(__name__)


MIN_ORDERS_TO_MERGE = 2


def combine_lines(orders: Iterable[Order]) -> List[OrderItem]:
    """Sum quantities per item id, in first-seen order.

    The price of the first line seen for an item wins; later prices are not
    compared against it or against the catalog.
    """
    combined: List[OrderItem] = []
    by_item: Dict[str, OrderItem] = {}
    for order in orders:
        for line in order.items:
            existing = by_item.get(line.item_id)
            if existing is not None:
                existing.quantity += line.quantity
                continue
            copy = OrderItem(item_id=line.item_id, quantity=line.quantity, price=line.price)
            by_item[line.item_id] = copy
            combined.append(copy)
    return combined


def merge_notes(order_ids: Iterable[str]) -> str:
    return "Merged from orders: " + ", ".join(order_id[-8:] for order_id in order_ids)


def merge_orders(
    ledger: OrderLedger,
    order_ids: Iterable[str],
    new_delivery_date: date,
    *,
    operation_token: Optional[str] = None,
) -> Order:
    """Consolidate several orders of one client into a new ``merge`` order.

    Source orders move to ``delivered``. The writes are not atomic: the merged
    order is stored first, then each source status. If a status update fails
    a ``PartialWriteError`` is raised; calling again with the same
    ``operation_token`` (the merged order id from the error) finishes the
    remaining updates without creating a second merged order.
    """
    unique_ids = list(dict.fromkeys(order_ids))
    if len(unique_ids) < MIN_ORDERS_TO_MERGE:
        raise PreconditionError(
            f"At least {MIN_ORDERS_TO_MERGE} orders are required to merge, got {len(unique_ids)}."
        )

    sources = [ledger.get_order(order_id) for order_id in unique_ids]

    client_ids = {order.client_id for order in sources}
    if len(client_ids) != 1:
        raise PreconditionError("Orders belonging to different clients cannot be merged.")

    merged_id = operation_token or str(uuid4())
    existing = ledger.find_order(merged_id)
    if existing is not None:
        if existing.status != lifecycle.MERGE:
            raise PreconditionError(f"Operation token {merged_id} belongs to a non-merge order.")
        if existing.client_id != sources[0].client_id or existing.notes != merge_notes(unique_ids):
            raise PreconditionError(
                f"Operation token {merged_id} belongs to a merge of other orders."
            )

    # A resumed merge skips sources that were already absorbed.
    to_absorb = sources if existing is None else [
        order for order in sources if order.status != lifecycle.DELIVERED
    ]
    for order in to_absorb:
        if lifecycle.DELIVERED not in lifecycle.allowed_transitions(order.status):
            raise PreconditionError(
                f"Order {order.short_id} is '{order.status}' and cannot be merged."
            )

    if existing is None:
        combined = combine_lines(sources)
        merged = Order(
            id=merged_id,
            client_id=sources[0].client_id,
            delivery_date=new_delivery_date,
            status=lifecycle.MERGE,
            notes=merge_notes(unique_ids),
            total=sum(line.line_total for line in combined),
            items=combined,
        )
        ledger.insert_order(merged)
        logger.info("Created merge order %s from %d orders", merged.short_id, len(sources))
    else:
        merged = existing
        logger.info("Resuming merge %s", merged.short_id)

    completed: List[str] = []
    for order in to_absorb:
        absorbed = lifecycle.absorb_into_merge(order)
        try:
            ledger.set_status(order.id, absorbed.status)
        except StoreError as exc:
            remaining = [entry.id for entry in to_absorb if entry.id not in completed]
            raise PartialWriteError(
                f"Merge order {merged.id} was created but source statuses were not all updated.",
                [merged.id, *remaining],
            ) from exc
        completed.append(order.id)

    try:
        ledger.refresh()
    except StoreError:
        logger.warning("Ledger refresh after merge %s failed", merged.short_id, exc_info=True)

    return ledger.find_order(merged.id) or merged
