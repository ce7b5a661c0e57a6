from datetime import date

import pytest

from orderdesk.data import order_repository
from orderdesk.errors import OrderNotFound, PartialWriteError, PreconditionError, StoreError
from orderdesk.models.order_models import Order, OrderItem
from orderdesk.services.merge_service import combine_lines, merge_notes, merge_orders


def test_merge_combines_lines_and_absorbs_sources(ledger, client, catalog, make_order):
    first = make_order(client.id, [("item-hummus", 2, 10.0)])
    second = make_order(client.id, [("item-hummus", 1, 10.0), ("item-falafel", 1, 5.0)])

    merged = merge_orders(ledger, [first.id, second.id], date(2024, 4, 1))

    assert merged.status == "merge"
    assert merged.client_id == client.id
    assert merged.delivery_date == date(2024, 4, 1)
    assert [(line.item_id, line.quantity) for line in merged.items] == [("item-hummus", 3), ("item-falafel", 1)]
    assert merged.total == pytest.approx(35)
    assert ledger.get_order(first.id).status == "delivered"
    assert ledger.get_order(second.id).status == "delivered"

    stored = order_repository.fetch_order(merged.id)
    assert stored is not None
    assert stored.status == "merge"
    assert order_repository.fetch_order(first.id).status == "delivered"
    assert order_repository.fetch_order(second.id).status == "delivered"


def test_merged_total_is_not_discounted(ledger, client, catalog, make_order):
    first = make_order(client.id, [("item-tahini", 3, 250.0)])
    second = make_order(client.id, [("item-tahini", 2, 250.0)])

    merged = merge_orders(ledger, [first.id, second.id], date(2024, 4, 1))

    assert merged.total == pytest.approx(1250)
    assert merged.recompute().final_total == pytest.approx(1000)


def test_merge_notes_list_short_ids(ledger, client, catalog, make_order):
    first = make_order(client.id, [("item-hummus", 1, 10.0)])
    second = make_order(client.id, [("item-falafel", 1, 5.0)])

    merged = merge_orders(ledger, [first.id, second.id], date(2024, 4, 1))

    assert merged.notes == f"Merged from orders: {first.id[-8:]}, {second.id[-8:]}"


def test_merge_with_one_order_fails_and_changes_nothing(ledger, client, catalog, make_order):
    only = make_order(client.id, [("item-hummus", 1, 10.0)])
    before = [(order.id, order.status) for order in ledger.orders]

    with pytest.raises(PreconditionError):
        merge_orders(ledger, [only.id], date(2024, 4, 1))

    assert [(order.id, order.status) for order in ledger.orders] == before
    assert len(order_repository.fetch_orders()) == 1


def test_repeated_id_counts_once(ledger, client, catalog, make_order):
    only = make_order(client.id, [("item-hummus", 1, 10.0)])

    with pytest.raises(PreconditionError):
        merge_orders(ledger, [only.id, only.id], date(2024, 4, 1))


def test_orders_of_different_clients_are_rejected(ledger, client, other_client, catalog, make_order):
    first = make_order(client.id, [("item-hummus", 1, 10.0)])
    second = make_order(other_client.id, [("item-hummus", 1, 10.0)])

    with pytest.raises(PreconditionError):
        merge_orders(ledger, [first.id, second.id], date(2024, 4, 1))

    assert len(order_repository.fetch_orders()) == 2
    assert ledger.get_order(first.id).status == "pending"


def test_unknown_order_id(ledger, client, catalog, make_order):
    first = make_order(client.id, [("item-hummus", 1, 10.0)])

    with pytest.raises(OrderNotFound):
        merge_orders(ledger, [first.id, "missing"], date(2024, 4, 1))


def test_delivered_or_merge_orders_cannot_be_merged_again(ledger, client, catalog, make_order):
    first = make_order(client.id, [("item-hummus", 1, 10.0)])
    delivered = make_order(client.id, [("item-hummus", 1, 10.0)], status="delivered")
    merge = make_order(client.id, [("item-hummus", 1, 10.0)], status="merge")

    with pytest.raises(PreconditionError):
        merge_orders(ledger, [first.id, delivered.id], date(2024, 4, 1))
    with pytest.raises(PreconditionError):
        merge_orders(ledger, [first.id, merge.id], date(2024, 4, 1))


def test_confirmed_orders_can_be_merged(ledger, client, catalog, make_order):
    first = make_order(client.id, [("item-hummus", 1, 10.0)], status="confirmed")
    second = make_order(client.id, [("item-hummus", 1, 10.0)])

    merged = merge_orders(ledger, [first.id, second.id], date(2024, 4, 1))

    assert merged.items[0].quantity == 2
    assert ledger.get_order(first.id).status == "delivered"


def test_failed_status_update_reports_partial_write_and_can_resume(
    ledger, client, catalog, make_order, monkeypatch
):
    first = make_order(client.id, [("item-hummus", 2, 10.0)])
    second = make_order(client.id, [("item-falafel", 1, 5.0)])

    real_update = order_repository.update_order_status
    calls = []

    def flaky_update(order_id, status):
        calls.append(order_id)
        if len(calls) == 2:
            raise StoreError("connection lost")
        real_update(order_id, status)

    monkeypatch.setattr(order_repository, "update_order_status", flaky_update)

    with pytest.raises(PartialWriteError) as excinfo:
        merge_orders(ledger, [first.id, second.id], date(2024, 4, 1))

    merged_id = excinfo.value.order_ids[0]
    assert second.id in excinfo.value.order_ids
    assert "inconsistent" in str(excinfo.value)
    assert order_repository.fetch_order(merged_id).status == "merge"
    assert order_repository.fetch_order(second.id).status == "pending"

    monkeypatch.setattr(order_repository, "update_order_status", real_update)
    resumed = merge_orders(ledger, [first.id, second.id], date(2024, 4, 1), operation_token=merged_id)

    assert resumed.id == merged_id
    merge_orders_in_store = [order for order in order_repository.fetch_orders() if order.status == "merge"]
    assert [order.id for order in merge_orders_in_store] == [merged_id]
    assert order_repository.fetch_order(second.id).status == "delivered"


def test_token_of_another_merge_is_rejected(ledger, client, other_client, catalog, make_order):
    b1 = make_order(other_client.id, [("item-tahini", 1, 250.0)])
    b2 = make_order(other_client.id, [("item-tahini", 1, 250.0)])
    foreign = merge_orders(ledger, [b1.id, b2.id], date(2024, 4, 1))
    a1 = make_order(client.id, [("item-hummus", 5, 10.0)])
    a2 = make_order(client.id, [("item-falafel", 7, 5.0)])

    with pytest.raises(PreconditionError):
        merge_orders(ledger, [a1.id, a2.id], date(2024, 4, 1), operation_token=foreign.id)

    assert order_repository.fetch_order(a1.id).status == "pending"
    assert order_repository.fetch_order(a2.id).status == "pending"
    assert [(line.item_id, line.quantity) for line in order_repository.fetch_order(foreign.id).items] == [
        ("item-tahini", 2)
    ]


def test_token_of_same_client_merge_with_other_sources_is_rejected(ledger, client, catalog, make_order):
    first = make_order(client.id, [("item-hummus", 1, 10.0)])
    second = make_order(client.id, [("item-hummus", 1, 10.0)])
    earlier = merge_orders(ledger, [first.id, second.id], date(2024, 4, 1))
    third = make_order(client.id, [("item-falafel", 1, 5.0)])
    fourth = make_order(client.id, [("item-falafel", 2, 5.0)])

    with pytest.raises(PreconditionError):
        merge_orders(ledger, [third.id, fourth.id], date(2024, 4, 1), operation_token=earlier.id)

    assert order_repository.fetch_order(third.id).status == "pending"
    assert order_repository.fetch_order(fourth.id).status == "pending"


def test_refresh_failure_after_merge_is_not_raised(ledger, client, catalog, make_order, monkeypatch):
    first = make_order(client.id, [("item-hummus", 1, 10.0)])
    second = make_order(client.id, [("item-hummus", 1, 10.0)])

    def broken_refresh():
        raise StoreError("store unavailable")

    monkeypatch.setattr(ledger, "refresh", broken_refresh)

    merged = merge_orders(ledger, [first.id, second.id], date(2024, 4, 1))

    assert merged.status == "merge"


def test_combine_lines_keeps_first_price():
    orders = [
        Order(id="a", client_id="c", delivery_date=date(2024, 1, 1), items=[OrderItem("x", 1, 10.0)]),
        Order(id="b", client_id="c", delivery_date=date(2024, 1, 1), items=[OrderItem("x", 4, 12.0), OrderItem("y", 2, 1.5)]),
    ]

    combined = combine_lines(orders)

    assert [(line.item_id, line.quantity, line.price) for line in combined] == [("x", 5, 10.0), ("y", 2, 1.5)]
    assert orders[0].items[0].quantity == 1


def test_merge_notes_format():
    assert merge_notes(["aaaa-11111111", "bbbb-22222222"]) == "Merged from orders: 11111111, 22222222"
