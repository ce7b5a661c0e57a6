"""In-memory projection of clients, catalog items and orders.

The ledger is loaded from the record store and kept in step with it: every
command writes to the store first and only touches the in-memory lists once
the write has succeeded. Readers (merge, invoice, listings) work from the
projection.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Sequence

from ..data import client_repository, item_repository, order_repository
from ..errors import ClientNotFound, ItemNotFound, OrderNotFound
from ..models.order_models import Client, Item, LastOrderSnapshot, Order, ResolvedLine
from . import lifecycle

logger = logging.getLogger(__name__)

UNKNOWN_ITEM_NAME = "Unknown Item"

# Orders a client sees on their own dashboard; merge orders are internal.
CLIENT_VISIBLE_STATUSES: List[str] = [
    lifecycle.PENDING,
    lifecycle.CONFIRMED,
    lifecycle.DELIVERED,
]


class OrderLedger:
    def __init__(self) -> None:
        self._clients: List[Client] = []
        self._items: List[Item] = []
        self._orders: List[Order] = []

    @classmethod
    def load(cls) -> "OrderLedger":
        ledger = cls()
        ledger.refresh()
        return ledger

    def refresh(self) -> None:
        clients = client_repository.list_clients()
        items = item_repository.list_items()
        orders = order_repository.fetch_orders()
        self._clients, self._items, self._orders = clients, items, orders
        logger.debug(
            "Ledger refreshed: %d clients, %d items, %d orders",
            len(clients),
            len(items),
            len(orders),
        )

    @property
    def clients(self) -> List[Client]:
        return list(self._clients)

    @property
    def items(self) -> List[Item]:
        return list(self._items)

    @property
    def orders(self) -> List[Order]:
        return list(self._orders)

    # Queries

    def find_order(self, order_id: str) -> Optional[Order]:
        return next((order for order in self._orders if order.id == order_id), None)

    def get_order(self, order_id: str) -> Order:
        order = self.find_order(order_id)
        if order is None:
            raise OrderNotFound(f"Order {order_id} not found.")
        return order

    def find_client(self, client_id: str) -> Optional[Client]:
        return next((client for client in self._clients if client.id == client_id), None)

    def get_client(self, client_id: str) -> Client:
        client = self.find_client(client_id)
        if client is None:
            raise ClientNotFound(f"Client {client_id} not found.")
        return client

    def find_item(self, item_id: str) -> Optional[Item]:
        return next((item for item in self._items if item.id == item_id), None)

    def get_item(self, item_id: str) -> Item:
        item = self.find_item(item_id)
        if item is None:
            raise ItemNotFound(f"Item {item_id} not found.")
        return item

    def filter_orders(self, search: str = "", status: Optional[str] = None) -> List[Order]:
        """Match ``search`` against client name or order id, case-insensitively."""
        term = search.strip().lower()
        wanted_status = lifecycle.normalize_status(status) if status else None
        client_names: Dict[str, str] = {client.id: client.name.lower() for client in self._clients}

        results: List[Order] = []
        for order in self._orders:
            if wanted_status and order.status != wanted_status:
                continue
            if term and term not in client_names.get(order.client_id, "") and term not in order.id.lower():
                continue
            results.append(order)
        return results

    def orders_for_client(
        self,
        client_id: str,
        statuses: Optional[Iterable[str]] = None,
    ) -> List[Order]:
        wanted = set(statuses) if statuses is not None else set(CLIENT_VISIBLE_STATUSES)
        return [
            order
            for order in self._orders
            if order.client_id == client_id and order.status in wanted
        ]

    def pending_order_for_client(self, client_id: str) -> Optional[Order]:
        return next(
            (
                order
                for order in self._orders
                if order.client_id == client_id and order.status == lifecycle.PENDING
            ),
            None,
        )

    def resolve_lines(self, order: Order) -> List[ResolvedLine]:
        """Attach catalog names to an order's lines, keeping the captured prices."""
        resolved: List[ResolvedLine] = []
        for line in order.items:
            item = self.find_item(line.item_id)
            resolved.append(
                ResolvedLine(
                    item_id=line.item_id,
                    name=item.name if item else UNKNOWN_ITEM_NAME,
                    quantity=line.quantity,
                    price=line.price,
                )
            )
        return resolved

    # Client commands

    def add_client(self, client: Client) -> Client:
        client_repository.insert_client(client)
        self._clients.insert(0, client)
        return client

    def update_client(self, client: Client) -> Client:
        existing = self.get_client(client.id)
        client_repository.update_client(client)
        updated = replace(client, created_at=existing.created_at, last_order=existing.last_order)
        self._replace_client(updated)
        return updated

    def record_last_order(self, client_id: str, snapshot: LastOrderSnapshot) -> None:
        client_repository.update_client_last_order(client_id, snapshot)
        client = self.find_client(client_id)
        if client is not None:
            self._replace_client(replace(client, last_order=snapshot))

    def delete_client(self, client_id: str) -> None:
        order_repository.delete_orders_for_client(client_id)
        client_repository.delete_client(client_id)
        self._clients = [client for client in self._clients if client.id != client_id]
        self._orders = [order for order in self._orders if order.client_id != client_id]

    # Item commands

    def add_item(self, item: Item) -> Item:
        item_repository.insert_item(item)
        self._items.append(item)
        self._items.sort(key=lambda entry: entry.name)
        return item

    def update_item(self, item: Item) -> Item:
        existing = self.get_item(item.id)
        item_repository.update_item(item)
        updated = replace(item, created_at=existing.created_at)
        self._items = [updated if entry.id == item.id else entry for entry in self._items]
        self._items.sort(key=lambda entry: entry.name)
        return updated

    def delete_item(self, item_id: str) -> None:
        item_repository.delete_item(item_id)
        # Order lines keep the item id; reload so their displays pick up the removal.
        self.refresh()

    # Order commands

    def insert_order(self, order: Order) -> Order:
        order_repository.insert_order(order)
        self._orders.insert(0, order)
        return order

    def replace_order(self, order: Order) -> Order:
        self.get_order(order.id)
        order_repository.update_order(order)
        self._orders = [order if entry.id == order.id else entry for entry in self._orders]
        return order

    def set_status(self, order_id: str, status: str) -> Order:
        order = self.get_order(order_id)
        order_repository.update_order_status(order_id, status)
        updated = replace(order, status=status)
        self._orders = [updated if entry.id == order_id else entry for entry in self._orders]
        return updated

    def remove_order(self, order_id: str) -> None:
        self.get_order(order_id)
        order_repository.delete_order(order_id)
        self._orders = [order for order in self._orders if order.id != order_id]

    def _replace_client(self, client: Client) -> None:
        self._clients = [client if entry.id == client.id else entry for entry in self._clients]


def group_by_status(orders: Sequence[Order]) -> Dict[str, List[Order]]:
    """Bucket orders the way a client's dashboard lists them."""
    groups: Dict[str, List[Order]] = {status: [] for status in CLIENT_VISIBLE_STATUSES}
    for order in orders:
        if order.status in groups:
            groups[order.status].append(order)
    return groups
