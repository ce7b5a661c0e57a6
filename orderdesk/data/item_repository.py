from __future__ import annotations

import sqlite3
from typing import List, Optional

from ..models.order_models import Item
from .database import create_connection, format_timestamp, parse_timestamp, store_errors


def list_items() -> List[Item]:
    with store_errors("load catalog items"), create_connection() as connection:
        rows = connection.execute(
            """
            SELECT
                id,
                name,
                category,
                price,
                weight,
                picture_url,
                description,
                created_at
            FROM items
            ORDER BY name ASC
            """
        ).fetchall()

    return [_row_to_item(row) for row in rows]


def get_item(item_id: str) -> Optional[Item]:
    with store_errors(f"load item {item_id}"), create_connection() as connection:
        row = connection.execute(
            """
            SELECT
                id,
                name,
                category,
                price,
                weight,
                picture_url,
                description,
                created_at
            FROM items
            WHERE id = ?
            """,
            (item_id,),
        ).fetchone()

    if row is None:
        return None
    return _row_to_item(row)


def insert_item(item: Item) -> Item:
    with store_errors(f"insert item {item.name!r}"), create_connection() as connection:
        connection.execute(
            """
            INSERT INTO items (
                id,
                name,
                category,
                price,
                weight,
                picture_url,
                description,
                created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                item.id,
                item.name.strip(),
                item.category.strip(),
                max(0.0, float(item.price)),
                max(0.0, float(item.weight)),
                (item.picture_url or "").strip(),
                (item.description or "").strip(),
                format_timestamp(item.created_at),
            ),
        )
        connection.commit()
    return item


def update_item(item: Item) -> None:
    with store_errors(f"update item {item.id}"), create_connection() as connection:
        cursor = connection.execute(
            """
            UPDATE items
            SET name = ?,
                category = ?,
                price = ?,
                weight = ?,
                picture_url = ?,
                description = ?
            WHERE id = ?
            """,
            (
                item.name.strip(),
                item.category.strip(),
                max(0.0, float(item.price)),
                max(0.0, float(item.weight)),
                (item.picture_url or "").strip(),
                (item.description or "").strip(),
                item.id,
            ),
        )
        if cursor.rowcount == 0:
            raise sqlite3.DatabaseError(f"item {item.id} does not exist")
        connection.commit()


def delete_item(item_id: str) -> None:
    with store_errors(f"delete item {item_id}"), create_connection() as connection:
        connection.execute("DELETE FROM items WHERE id = ?", (item_id,))
        connection.commit()


def _row_to_item(row: sqlite3.Row) -> Item:
    return Item(
        id=row["id"],
        name=row["name"],
        category=row["category"] or "",
        price=float(row["price"] or 0.0),
        weight=float(row["weight"] or 0.0),
        picture_url=row["picture_url"] or "",
        description=row["description"] or "",
        created_at=parse_timestamp(row["created_at"]),
    )
