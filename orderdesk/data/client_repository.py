from __future__ import annotations

import json
import sqlite3
from typing import List, Optional

from ..models.order_models import Client, LastOrderSnapshot
from .database import create_connection, format_timestamp, iter_rows, parse_timestamp, store_errors


_CLIENT_COLUMNS = """
    id,
    name,
    address,
    vat,
    phone,
    email,
    notes,
    created_at,
    last_order_json
"""


def list_clients() -> List[Client]:
    with store_errors("load clients"):
        return [
            _row_to_client(row)
            for row in iter_rows(f"SELECT {_CLIENT_COLUMNS} FROM clients ORDER BY created_at DESC")
        ]


def get_client(client_id: str) -> Optional[Client]:
    with store_errors(f"load client {client_id}"), create_connection() as connection:
        row = connection.execute(
            f"SELECT {_CLIENT_COLUMNS} FROM clients WHERE id = ?",
            (client_id,),
        ).fetchone()

    if row is None:
        return None
    return _row_to_client(row)


def insert_client(client: Client) -> Client:
    with store_errors(f"insert client {client.name!r}"), create_connection() as connection:
        connection.execute(
            """
            INSERT INTO clients (
                id,
                name,
                address,
                vat,
                phone,
                email,
                notes,
                created_at,
                last_order_json
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                client.id,
                client.name.strip(),
                client.address.strip(),
                client.vat.strip(),
                client.phone.strip(),
                client.email.strip(),
                client.notes.strip(),
                format_timestamp(client.created_at),
                _serialize_snapshot(client.last_order),
            ),
        )
        connection.commit()
    return client


def update_client(client: Client) -> None:
    with store_errors(f"update client {client.id}"), create_connection() as connection:
        cursor = connection.execute(
            """
            UPDATE clients
            SET name = ?,
                address = ?,
                vat = ?,
                phone = ?,
                email = ?,
                notes = ?
            WHERE id = ?
            """,
            (
                client.name.strip(),
                client.address.strip(),
                client.vat.strip(),
                client.phone.strip(),
                client.email.strip(),
                client.notes.strip(),
                client.id,
            ),
        )
        if cursor.rowcount == 0:
            raise sqlite3.DatabaseError(f"client {client.id} does not exist")
        connection.commit()


def update_client_last_order(client_id: str, snapshot: LastOrderSnapshot) -> None:
    with store_errors(f"store last order of client {client_id}"), create_connection() as connection:
        connection.execute(
            "UPDATE clients SET last_order_json = ? WHERE id = ?",
            (_serialize_snapshot(snapshot), client_id),
        )
        connection.commit()


def delete_client(client_id: str) -> None:
    with store_errors(f"delete client {client_id}"), create_connection() as connection:
        connection.execute("DELETE FROM clients WHERE id = ?", (client_id,))
        connection.commit()


def _row_to_client(row: sqlite3.Row) -> Client:
    return Client(
        id=row["id"],
        name=row["name"],
        address=row["address"] or "",
        vat=row["vat"] or "",
        phone=row["phone"] or "",
        email=row["email"] or "",
        notes=row["notes"] or "",
        created_at=parse_timestamp(row["created_at"]),
        last_order=_deserialize_snapshot(row["last_order_json"]),
    )


def _serialize_snapshot(snapshot: Optional[LastOrderSnapshot]) -> Optional[str]:
    if snapshot is None:
        return None
    return json.dumps(snapshot.to_payload(), ensure_ascii=False)


def _deserialize_snapshot(raw: Optional[str]) -> Optional[LastOrderSnapshot]:
    if not raw:
        return None
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError:
        return None
    return LastOrderSnapshot.from_payload(payload)
