from __future__ import annotations

import sqlite3
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional

from ..models.order_models import Order, OrderItem
from .database import create_connection, format_timestamp, parse_timestamp, store_errors


_DATE_FORMAT = "%Y-%m-%d"

_ORDER_COLUMNS = """
    id,
    client_id,
    delivery_date,
    status,
    notes,
    total,
    created_at
"""


def insert_order(order: Order) -> Order:
    with store_errors(f"insert order {order.id}"), create_connection() as connection:
        cursor = connection.cursor()
        try:
            cursor.execute(
                """
                INSERT INTO orders (
                    id,
                    client_id,
                    delivery_date,
                    status,
                    notes,
                    total,
                    created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    order.id,
                    order.client_id,
                    order.delivery_date.strftime(_DATE_FORMAT),
                    order.status.strip(),
                    order.notes.strip(),
                    float(order.total),
                    format_timestamp(order.created_at),
                ),
            )
            _insert_items(cursor, order.id, order.items)
            connection.commit()
        except sqlite3.Error:
            connection.rollback()
            raise
        finally:
            cursor.close()
    return order


def update_order(order: Order) -> None:
    """Rewrite an order's header fields and replace its full line set."""
    with store_errors(f"update order {order.id}"), create_connection() as connection:
        cursor = connection.cursor()
        try:
            cursor.execute(
                """
                UPDATE orders
                SET
                    client_id = ?,
                    delivery_date = ?,
                    status = ?,
                    notes = ?,
                    total = ?
                WHERE id = ?
                """,
                (
                    order.client_id,
                    order.delivery_date.strftime(_DATE_FORMAT),
                    order.status.strip(),
                    order.notes.strip(),
                    float(order.total),
                    order.id,
                ),
            )
            if cursor.rowcount == 0:
                raise sqlite3.DatabaseError(f"order {order.id} does not exist")

            cursor.execute("DELETE FROM order_items WHERE order_id = ?", (order.id,))
            _insert_items(cursor, order.id, order.items)
            connection.commit()
        except sqlite3.Error:
            connection.rollback()
            raise
        finally:
            cursor.close()


def update_order_status(order_id: str, status: str) -> None:
    with store_errors(f"update status of order {order_id}"), create_connection() as connection:
        cursor = connection.execute(
            "UPDATE orders SET status = ? WHERE id = ?",
            (status.strip(), order_id),
        )
        if cursor.rowcount == 0:
            raise sqlite3.DatabaseError(f"order {order_id} does not exist")
        connection.commit()


def delete_order(order_id: str) -> None:
    with store_errors(f"delete order {order_id}"), create_connection() as connection:
        connection.execute("DELETE FROM orders WHERE id = ?", (order_id,))
        connection.commit()


def delete_orders_for_client(client_id: str) -> None:
    with store_errors(f"delete orders of client {client_id}"), create_connection() as connection:
        connection.execute("DELETE FROM orders WHERE client_id = ?", (client_id,))
        connection.commit()


def fetch_order(order_id: str) -> Optional[Order]:
    with store_errors(f"load order {order_id}"), create_connection() as connection:
        order_row = connection.execute(
            f"""
            SELECT {_ORDER_COLUMNS}
            FROM orders
            WHERE id = ?
            LIMIT 1
            """,
            (order_id,),
        ).fetchone()

        if order_row is None:
            return None

        items = _fetch_items(connection, [order_id])

    return _row_to_order(order_row, items.get(order_id, []))


def fetch_orders(
    *,
    client_id: Optional[str] = None,
    statuses: Optional[Iterable[str]] = None,
) -> List[Order]:
    """Return orders newest first, each with its lines in insertion order."""
    sql = [f"SELECT {_ORDER_COLUMNS} FROM orders WHERE 1 = 1"]
    params: List[object] = []

    if client_id:
        sql.append("AND client_id = ?")
        params.append(client_id)

    status_list = [status.strip() for status in statuses or [] if status.strip()]
    if status_list:
        placeholder = ",".join("?" for _ in status_list)
        sql.append(f"AND status IN ({placeholder})")
        params.extend(status_list)

    sql.append("ORDER BY created_at DESC")

    with store_errors("load orders"), create_connection() as connection:
        order_rows = connection.execute("\n".join(sql), params).fetchall()
        items_by_order = _fetch_items(connection, [row["id"] for row in order_rows])

    return [_row_to_order(row, items_by_order.get(row["id"], [])) for row in order_rows]


def _insert_items(cursor: sqlite3.Cursor, order_id: str, items: Iterable[OrderItem]) -> None:
    cursor.executemany(
        """
        INSERT INTO order_items (
            order_id,
            item_id,
            quantity,
            price
        ) VALUES (?, ?, ?, ?)
        """,
        [
            (
                order_id,
                item.item_id,
                int(item.quantity),
                float(item.price),
            )
            for item in items
        ],
    )


def _fetch_items(connection: sqlite3.Connection, order_ids: List[str]) -> Dict[str, List[OrderItem]]:
    items_by_order: Dict[str, List[OrderItem]] = {order_id: [] for order_id in order_ids}
    if not order_ids:
        return items_by_order

    placeholder = ",".join("?" for _ in order_ids)
    rows = connection.execute(
        f"""
        SELECT
            order_id,
            item_id,
            quantity,
            price
        FROM order_items
        WHERE order_id IN ({placeholder})
        ORDER BY id
        """,
        order_ids,
    ).fetchall()

    for row in rows:
        items_by_order[row["order_id"]].append(
            OrderItem(
                item_id=row["item_id"],
                quantity=int(row["quantity"]),
                price=float(row["price"]),
            )
        )
    return items_by_order


def _row_to_order(row: sqlite3.Row, items: List[OrderItem]) -> Order:
    return Order(
        id=row["id"],
        client_id=row["client_id"],
        delivery_date=_parse_date(row["delivery_date"]),
        status=row["status"],
        notes=row["notes"] or "",
        total=float(row["total"] or 0.0),
        items=items,
        created_at=parse_timestamp(row["created_at"]),
    )


def _parse_date(raw: str) -> date:
    return datetime.strptime(raw[:10], _DATE_FORMAT).date()

