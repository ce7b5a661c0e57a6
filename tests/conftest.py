import os
from datetime import date, datetime, timedelta, timezone
from uuid import uuid4

import pytest

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from orderdesk.data import database  # noqa: E402
from orderdesk.models.order_models import Client, Item, Order, OrderItem  # noqa: E402
from orderdesk.services.ledger import OrderLedger  # noqa: E402


@pytest.fixture
def storage(tmp_path, monkeypatch):
    home = tmp_path / "orderdesk-home"
    monkeypatch.setenv("ORDERDESK_HOME", str(home))
    database.initialize()
    return home


@pytest.fixture
def ledger(storage):
    return OrderLedger.load()


@pytest.fixture
def client(ledger):
    return ledger.add_client(
        Client(
            id=str(uuid4()),
            name="Bistro U Lipy",
            address="Masarykova 12, 602 00 Brno",
            vat="12345678",
            phone="+420 777 123 456",
            email="objednavky@ulipy.cz",
        )
    )


@pytest.fixture
def other_client(ledger):
    return ledger.add_client(Client(id=str(uuid4()), name="Kavarna Nadrazi", address="Brno"))


@pytest.fixture
def catalog(ledger):
    items = {
        "hummus": Item(id="item-hummus", name="Hummus", category="Spreads", price=10.0, weight=0.25),
        "falafel": Item(id="item-falafel", name="Falafel", category="Frozen", price=5.0, weight=0.5),
        "tahini": Item(id="item-tahini", name="Tahini", category="Spreads", price=250.0, weight=1.0),
    }
    for item in items.values():
        ledger.add_item(item)
    return items


_BASE_TIME = datetime(2024, 1, 1, 8, 0, tzinfo=timezone.utc)
_counter = {"value": 0}


@pytest.fixture
def make_order(ledger):
    """Store an order with explicit lines, bypassing catalog pricing."""

    def _make(client_id, lines, *, status="pending", delivery_date=date(2024, 3, 5), total=None):
        _counter["value"] += 1
        items = [OrderItem(item_id=item_id, quantity=quantity, price=price) for item_id, quantity, price in lines]
        order = Order(
            id=str(uuid4()),
            client_id=client_id,
            delivery_date=delivery_date,
            status=status,
            total=sum(item.line_total for item in items) if total is None else total,
            items=items,
            created_at=_BASE_TIME + timedelta(minutes=_counter["value"]),
        )
        return ledger.insert_order(order)

    return _make


@pytest.fixture
def order_line_count(storage):
    def _count(order_id):
        with database.create_connection() as connection:
            row = connection.execute("SELECT COUNT(*) FROM order_items WHERE order_id = ?", (order_id,)).fetchone()
        return row[0]

    return _count
