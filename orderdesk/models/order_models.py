from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import List, Optional


ORDER_STATUSES: List[str] = [
    "pending",
    "confirmed",
    "merge",
    "delivered",
]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class DiscountSummary:
    subtotal: float
    discount_percentage: int
    discount: float
    final_total: float
    message: Optional[str] = None

    @property
    def factor(self) -> float:
        return 1 - self.discount_percentage / 100


@dataclass
class SnapshotLine:
    item_id: str
    quantity: int


@dataclass
class LastOrderSnapshot:
    """Copy of the most recently submitted order form of a client."""

    notes: str = ""
    items: List[SnapshotLine] = field(default_factory=list)

    def to_payload(self) -> dict:
        return {
            "notes": self.notes,
            "items": [{"itemId": line.item_id, "quantity": line.quantity} for line in self.items],
        }

    @classmethod
    def from_payload(cls, payload: object) -> Optional["LastOrderSnapshot"]:
        if not isinstance(payload, dict):
            return None
        lines: List[SnapshotLine] = []
        for entry in payload.get("items") or []:
            if not isinstance(entry, dict):
                continue
            item_id = str(entry.get("itemId") or entry.get("item_id") or "").strip()
            try:
                quantity = int(entry.get("quantity", 0))
            except (TypeError, ValueError):
                continue
            if item_id and quantity > 0:
                lines.append(SnapshotLine(item_id=item_id, quantity=quantity))
        return cls(notes=str(payload.get("notes") or ""), items=lines)


@dataclass
class Client:
    id: str
    name: str
    address: str = ""
    vat: str = ""
    phone: str = ""
    email: str = ""
    notes: str = ""
    created_at: datetime = field(default_factory=utc_now)
    last_order: Optional[LastOrderSnapshot] = None

    @property
    def address_lines(self) -> List[str]:
        return [segment.strip() for segment in self.address.split(",")]


@dataclass
class Item:
    id: str
    name: str
    category: str = ""
    price: float = 0.0
    weight: float = 0.0
    picture_url: str = ""
    description: str = ""
    created_at: datetime = field(default_factory=utc_now)


@dataclass
class OrderItem:
    item_id: str
    quantity: int
    price: float

    @property
    def line_total(self) -> float:
        return self.price * self.quantity


@dataclass
class Order:
    id: str
    client_id: str
    delivery_date: date
    status: str = "pending"
    notes: str = ""
    total: float = 0.0
    items: List[OrderItem] = field(default_factory=list)
    created_at: datetime = field(default_factory=utc_now)

    @property
    def short_id(self) -> str:
        return self.id[-8:]

    @property
    def subtotal(self) -> float:
        return sum(item.line_total for item in self.items)

    def recompute(self) -> DiscountSummary:
        from ..services.discount_service import compute_discount

        return compute_discount(self.subtotal)


@dataclass
class OrderDraft:
    """Unsaved order form contents, as submitted by a create/edit/duplicate."""

    client_id: str
    delivery_date: Optional[date]
    notes: str = ""
    items: List[SnapshotLine] = field(default_factory=list)


@dataclass
class OrderSummary:
    order_id: str
    short_id: str
    client_name: str
    delivery_date: date
    status: str
    subtotal: float
    discount: float
    final_total: float


@dataclass
class ResolvedLine:
    item_id: str
    name: str
    quantity: int
    price: float


@dataclass
class AppSettings:
    company_name: str
    company_address: str
    company_ico: str
    company_dic: str
    contact_website: str
    contact_email: str
    currency_label: str = "CZK"
    export_directory: str = ""
