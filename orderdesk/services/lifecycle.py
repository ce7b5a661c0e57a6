from __future__ import annotations

import logging
from dataclasses import replace
from typing import Dict, FrozenSet, List

from ..models.order_models import ORDER_STATUSES, Order
from ..errors import InvalidTransition, ValidationError

logger = logging.getLogger(__name__)


PENDING = "pending"
CONFIRMED = "confirmed"
MERGE = "merge"
DELIVERED = "delivered"

INITIAL_STATUS = PENDING

# Orders enter MERGE only when the merger creates them, so no edge leads there.
_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    PENDING: frozenset({CONFIRMED, DELIVERED}),
    CONFIRMED: frozenset({DELIVERED}),
    MERGE: frozenset(),
    DELIVERED: frozenset(),
}


def list_order_statuses() -> List[str]:
    return list(ORDER_STATUSES)


def normalize_status(status: str) -> str:
    candidate = (status or "").strip().lower()
    if not candidate:
        return INITIAL_STATUS
    if candidate not in _TRANSITIONS:
        raise ValidationError(f"Unknown order status '{status}'.")
    return candidate


def allowed_transitions(status: str) -> FrozenSet[str]:
    return _TRANSITIONS[normalize_status(status)]


def is_editable(order: Order) -> bool:
    """Only pending orders may have their lines replaced."""
    return normalize_status(order.status) == PENDING


def transition(order: Order, target: str) -> Order:
    """Return a copy of ``order`` moved to ``target``.

    Staying in the same status is a no-op. Raises ``InvalidTransition`` for
    any move the state machine does not define.
    """
    current_status = normalize_status(order.status)
    target_status = normalize_status(target)
    if current_status == target_status:
        return order
    if target_status not in _TRANSITIONS[current_status]:
        raise InvalidTransition(current_status, target_status)
    logger.info("Order %s: %s -> %s", order.short_id, current_status, target_status)
    return replace(order, status=target_status)


def confirm(order: Order) -> Order:
    """Confirm a pending order; any other status is returned unchanged."""
    if normalize_status(order.status) != PENDING:
        return order
    return transition(order, CONFIRMED)


def absorb_into_merge(order: Order) -> Order:
    return transition(order, DELIVERED)
