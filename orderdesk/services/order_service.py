from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union
from uuid import uuid4

from ..data import settings_repository
from ..data.database import get_storage_root
from ..errors import PartialWriteError, StoreError, ValidationError
from ..models.order_models import (
    LastOrderSnapshot,
    Order,
    OrderDraft,
    OrderItem,
    OrderSummary,
    SnapshotLine,
)
from . import invoice_service, lifecycle, merge_service
from .discount_service import compute_discount
from .ledger import OrderLedger

logger = logging.getLogger(__name__)


_INVOICE_DIRECTORY = "invoices"


def build_order(
    ledger: OrderLedger,
    draft: OrderDraft,
    *,
    order_id: Optional[str] = None,
    status: str = lifecycle.INITIAL_STATUS,
) -> Order:
    """Validate a draft and turn it into an order priced from the catalog.

    Lines naming the same item are folded into one. Nothing is written.
    """
    client_id = (draft.client_id or "").strip()
    if not client_id:
        raise ValidationError("A client is required.")
    if ledger.find_client(client_id) is None:
        raise ValidationError(f"Client {client_id} does not exist.")
    if draft.delivery_date is None:
        raise ValidationError("A delivery date is required.")
    if not draft.items:
        raise ValidationError("At least one line item is required.")

    items = _normalize_lines(ledger, draft.items)
    summary = compute_discount(sum(item.line_total for item in items))

    return Order(
        id=order_id or str(uuid4()),
        client_id=client_id,
        delivery_date=draft.delivery_date,
        status=lifecycle.normalize_status(status),
        notes=(draft.notes or "").strip(),
        total=summary.final_total,
        items=items,
    )


def create_order(ledger: OrderLedger, draft: OrderDraft) -> Order:
    order = build_order(ledger, draft)
    ledger.insert_order(order)
    logger.info("Created order %s with %d lines", order.short_id, len(order.items))
    _remember_last_order(ledger, order, draft)
    return order


def update_order(
    ledger: OrderLedger,
    order_id: str,
    draft: OrderDraft,
    *,
    status: Optional[str] = None,
) -> Order:
    """Replace a pending order's lines, date and notes.

    The status is kept unless ``status`` is given, in which case the change
    has to be one the lifecycle allows.
    """
    existing = ledger.get_order(order_id)
    if not lifecycle.is_editable(existing):
        raise ValidationError(f"Order {existing.short_id} is '{existing.status}' and can no longer be edited.")

    rebuilt = build_order(ledger, draft, order_id=existing.id, status=existing.status)
    rebuilt = replace(rebuilt, created_at=existing.created_at)
    if status is not None:
        rebuilt = lifecycle.transition(rebuilt, status)

    ledger.replace_order(rebuilt)
    logger.info("Updated order %s", rebuilt.short_id)
    _remember_last_order(ledger, rebuilt, draft)
    return rebuilt


def change_status(ledger: OrderLedger, order_id: str, status: str) -> Order:
    order = ledger.get_order(order_id)
    moved = lifecycle.transition(order, status)
    if moved is order:
        return order
    return ledger.set_status(order_id, moved.status)


def mark_delivered(ledger: OrderLedger, order_id: str) -> Order:
    return change_status(ledger, order_id, lifecycle.DELIVERED)


def delete_order(ledger: OrderLedger, order_id: str) -> None:
    order = ledger.get_order(order_id)
    ledger.remove_order(order_id)
    logger.info("Deleted order %s (%s)", order.short_id, order.status)


def duplicate_order(ledger: OrderLedger, order_id: str) -> OrderDraft:
    order = ledger.get_order(order_id)
    return OrderDraft(
        client_id=order.client_id,
        delivery_date=order.delivery_date,
        notes=order.notes,
        items=[SnapshotLine(item_id=line.item_id, quantity=line.quantity) for line in order.items],
    )


def duplicate_last_order(ledger: OrderLedger, client_id: str) -> OrderDraft:
    client = ledger.get_client(client_id)
    snapshot = client.last_order
    if snapshot is None:
        raise ValidationError("No previous order found. Please create a new order.")
    return OrderDraft(
        client_id=client.id,
        delivery_date=None,
        notes=snapshot.notes,
        items=[SnapshotLine(item_id=line.item_id, quantity=line.quantity) for line in snapshot.items],
    )


def add_to_cart(
    ledger: OrderLedger,
    client_id: str,
    item_id: str,
    *,
    today: Optional[date] = None,
) -> Order:
    """Add one unit of a catalog item to the client's open pending order.

    A new pending order, delivered today, is started when the client has
    none.
    """
    client = ledger.get_client(client_id)
    item = ledger.get_item(item_id)
    target = ledger.pending_order_for_client(client.id)

    if target is None:
        line = OrderItem(item_id=item.id, quantity=1, price=item.price)
        order = Order(
            id=str(uuid4()),
            client_id=client.id,
            delivery_date=today or date.today(),
            total=compute_discount(line.line_total).final_total,
            items=[line],
        )
        ledger.insert_order(order)
        logger.info("Started order %s for %s with %s", order.short_id, client.name, item.name)
        return order

    lines = [OrderItem(item_id=line.item_id, quantity=line.quantity, price=line.price) for line in target.items]
    existing_line = next((line for line in lines if line.item_id == item.id), None)
    if existing_line is not None:
        existing_line.quantity += 1
    else:
        lines.append(OrderItem(item_id=item.id, quantity=1, price=item.price))

    updated = replace(
        target,
        items=lines,
        total=compute_discount(sum(line.line_total for line in lines)).final_total,
    )
    ledger.replace_order(updated)
    return updated


def summarize_order(ledger: OrderLedger, order: Order) -> OrderSummary:
    summary = order.recompute()
    client = ledger.find_client(order.client_id)
    return OrderSummary(
        order_id=order.id,
        short_id=order.short_id,
        client_name=client.name if client else "Unknown",
        delivery_date=order.delivery_date,
        status=order.status,
        subtotal=summary.subtotal,
        discount=summary.discount,
        final_total=summary.final_total,
    )


def list_order_summaries(
    ledger: OrderLedger,
    *,
    search: str = "",
    status: Optional[str] = None,
) -> List[OrderSummary]:
    return [summarize_order(ledger, order) for order in ledger.filter_orders(search, status)]


def merge_orders(
    ledger: OrderLedger,
    order_ids: Iterable[str],
    new_delivery_date: date,
    *,
    operation_token: Optional[str] = None,
) -> Order:
    return merge_service.merge_orders(
        ledger,
        order_ids,
        new_delivery_date,
        operation_token=operation_token,
    )


def export_order_invoice(
    ledger: OrderLedger,
    order_id: str,
    destination: Union[str, Path, None] = None,
) -> Path:
    """Render an order's delivery note, save it, and confirm a pending order."""
    order = ledger.get_order(order_id)
    client = ledger.get_client(order.client_id)
    settings = settings_repository.get_app_settings()

    rendered = invoice_service.render_invoice(order, client, ledger.resolve_lines(order), settings)
    path = invoice_service.save_document(
        rendered.content,
        rendered.filename,
        destination or _default_invoice_directory(settings.export_directory),
    )
    logger.info("Saved invoice for order %s to %s", order.short_id, path)

    if order.status == lifecycle.PENDING:
        confirmed = lifecycle.confirm(order)
        ledger.set_status(order.id, confirmed.status)
    return path


def _normalize_lines(ledger: OrderLedger, lines: Iterable[SnapshotLine]) -> List[OrderItem]:
    normalized: List[OrderItem] = []
    by_item: Dict[str, OrderItem] = {}
    for line in lines:
        item_id = (line.item_id or "").strip()
        if not item_id:
            raise ValidationError("Every line needs an item.")
        quantity = _parse_quantity(line.quantity)
        item = ledger.find_item(item_id)
        if item is None:
            raise ValidationError(f"Item {item_id} does not exist.")

        existing = by_item.get(item_id)
        if existing is not None:
            existing.quantity += quantity
            continue
        order_item = OrderItem(item_id=item_id, quantity=quantity, price=item.price)
        by_item[item_id] = order_item
        normalized.append(order_item)
    return normalized


def _parse_quantity(value: object) -> int:
    if isinstance(value, bool):
        raise ValidationError("Quantity must be a whole number.")
    try:
        quantity = int(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError("Quantity must be a whole number.") from exc
    if quantity != value and not isinstance(value, str):
        raise ValidationError("Quantity must be a whole number.")
    if quantity < 1:
        raise ValidationError("Quantity must be at least 1.")
    return quantity


def _remember_last_order(ledger: OrderLedger, order: Order, draft: OrderDraft) -> None:
    snapshot = LastOrderSnapshot(
        notes=(draft.notes or "").strip(),
        items=[SnapshotLine(item_id=line.item_id, quantity=line.quantity) for line in order.items],
    )
    try:
        ledger.record_last_order(order.client_id, snapshot)
    except StoreError as exc:
        raise PartialWriteError(
            f"Order {order.id} was saved but the client's last order was not recorded.",
            [order.id],
        ) from exc


def _default_invoice_directory(configured: str) -> Path:
    if configured:
        return Path(configured).expanduser()
    return get_storage_root() / _INVOICE_DIRECTORY
