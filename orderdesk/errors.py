"""Order desk exceptions.

Raised by the data and service layers; the entry point catches
``OrderDeskError`` and reports the message.
"""

from __future__ import annotations

from typing import Iterable, Tuple


class OrderDeskError(Exception):
    """Base class for every error raised by orderdesk."""


class ValidationError(OrderDeskError, ValueError):
    """Input rejected before anything was written to the store."""


class InvalidTransition(ValidationError):
    """An order status change the lifecycle does not permit."""

    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"Cannot move order from '{current}' to '{target}'.")
        self.current = current
        self.target = target


class PreconditionError(OrderDeskError):
    """A command was invoked in a state where it cannot run."""


class OrderNotFound(OrderDeskError, LookupError):
    pass


class ClientNotFound(OrderDeskError, LookupError):
    pass


class ItemNotFound(OrderDeskError, LookupError):
    pass


class StoreError(OrderDeskError):
    """The record store failed to complete a read or write."""


class PartialWriteError(StoreError):
    """A multi-step write stopped part-way; stored state may be inconsistent."""

    def __init__(self, message: str, order_ids: Iterable[str] = ()) -> None:
        ids: Tuple[str, ...] = tuple(order_ids)
        detail = f" Affected orders: {', '.join(ids)}." if ids else ""
        super().__init__(f"{message} The order may be in an inconsistent state.{detail}")
        self.order_ids = ids
