import sqlite3
from datetime import date

import pytest

from orderdesk.data import client_repository, database, item_repository, order_repository, settings_repository
from orderdesk.errors import StoreError
from orderdesk.models.order_models import Client, Item, LastOrderSnapshot, Order, OrderItem, SnapshotLine


def test_initialize_is_repeatable(storage):
    database.initialize()

    with database.create_connection() as connection:
        columns = [row[1] for row in connection.execute("PRAGMA table_info(clients);")]
    assert "last_order_json" in columns


def test_updating_a_missing_order_raises_store_error(storage):
    ghost = Order(id="ghost", client_id="c", delivery_date=date(2024, 1, 1), items=[OrderItem("x", 1, 1.0)])

    with pytest.raises(StoreError):
        order_repository.update_order(ghost)
    with pytest.raises(StoreError):
        order_repository.update_order_status("ghost", "confirmed")


def test_failed_update_leaves_lines_untouched(storage):
    order = Order(id="o-1", client_id="c", delivery_date=date(2024, 1, 1), items=[OrderItem("x", 2, 1.0)])
    order_repository.insert_order(order)

    broken = Order(id="o-1", client_id="c", delivery_date=date(2024, 1, 1), items=[OrderItem("x", 0, 1.0)])
    with pytest.raises(StoreError):
        order_repository.update_order(broken)

    assert [(line.item_id, line.quantity) for line in order_repository.fetch_order("o-1").items] == [("x", 2)]


def test_store_error_keeps_sqlite_cause(storage):
    with pytest.raises(StoreError) as excinfo:
        order_repository.update_order_status("missing", "pending")

    assert isinstance(excinfo.value.__cause__, sqlite3.Error)


def test_fetch_orders_by_client_and_status(storage):
    for order_id, client_id, status in (("a", "c1", "pending"), ("b", "c1", "merge"), ("c", "c2", "pending")):
        order_repository.insert_order(
            Order(id=order_id, client_id=client_id, delivery_date=date(2024, 1, 1), status=status)
        )

    assert {order.id for order in order_repository.fetch_orders(client_id="c1")} == {"a", "b"}
    assert {order.id for order in order_repository.fetch_orders(statuses=["pending"])} == {"a", "c"}
    assert [order.id for order in order_repository.fetch_orders(client_id="c1", statuses=["merge"])] == ["b"]


def test_order_dates_round_trip(storage):
    order_repository.insert_order(Order(id="d", client_id="c", delivery_date=date(2024, 2, 29), notes=" keep "))

    stored = order_repository.fetch_order("d")

    assert stored.delivery_date == date(2024, 2, 29)
    assert stored.notes == "keep"
    assert stored.created_at.tzinfo is not None


def test_last_order_snapshot_is_stored_as_json(storage):
    client_repository.insert_client(Client(id="c1", name="Client"))
    snapshot = LastOrderSnapshot(notes="Ring twice", items=[SnapshotLine(item_id="item-1", quantity=3)])

    client_repository.update_client_last_order("c1", snapshot)

    with database.create_connection() as connection:
        raw = connection.execute("SELECT last_order_json FROM clients WHERE id = 'c1'").fetchone()[0]
    assert '"itemId": "item-1"' in raw
    assert client_repository.get_client("c1").last_order == snapshot


def test_unreadable_snapshot_is_ignored(storage):
    client_repository.insert_client(Client(id="c1", name="Client"))
    with database.create_connection() as connection:
        connection.execute("UPDATE clients SET last_order_json = '{broken' WHERE id = 'c1'")
        connection.commit()

    assert client_repository.get_client("c1").last_order is None


def test_items_are_listed_by_name(storage):
    item_repository.insert_item(Item(id="2", name="Zaatar", price=3.5))
    item_repository.insert_item(Item(id="1", name="Baba ganoush", price=7.25))

    assert [item.name for item in item_repository.list_items()] == ["Baba ganoush", "Zaatar"]
    assert item_repository.get_item("1").price == 7.25
    assert item_repository.get_item("missing") is None


def test_settings_fall_back_to_defaults(storage):
    settings = settings_repository.get_app_settings()

    assert settings.company_name == "Sesamo Food s.r.o."
    assert settings.currency_label == "CZK"
    assert settings.export_directory == ""


def test_settings_update(storage):
    current = settings_repository.get_app_settings()
    current.company_name = "  Other Food  "
    current.currency_label = ""

    updated = settings_repository.update_app_settings(current)

    assert updated.company_name == "Other Food"
    assert updated.currency_label == "CZK"
    assert settings_repository.get_setting("company_name") == "Other Food"


def test_timeout_comes_from_environment(monkeypatch):
    monkeypatch.setenv("ORDERDESK_DB_TIMEOUT", "12.5")
    assert database.get_timeout() == 12.5

    monkeypatch.setenv("ORDERDESK_DB_TIMEOUT", "soon")
    assert database.get_timeout() == 5.0

    monkeypatch.delenv("ORDERDESK_DB_TIMEOUT")
    assert database.get_timeout() == 5.0


def test_storage_root_follows_environment(storage):
    assert database.get_storage_root() == storage
    assert database.get_database_path().parent == storage
