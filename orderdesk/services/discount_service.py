from __future__ import annotations

from typing import List, Optional, Tuple

from ..models.order_models import DiscountSummary


# (lower bound inclusive, percentage); upper bound is the next tier's lower bound.
DISCOUNT_TIERS: List[Tuple[float, int]] = [
    (0.0, 0),
    (600.0, 10),
    (1200.0, 20),
]


def discount_percentage(subtotal: float) -> int:
    amount = max(0.0, float(subtotal))
    percentage = 0
    for lower_bound, tier_percentage in DISCOUNT_TIERS:
        if amount >= lower_bound:
            percentage = tier_percentage
    return percentage


def discount_factor(subtotal: float) -> float:
    return 1 - discount_percentage(subtotal) / 100


def compute_discount(subtotal: float) -> DiscountSummary:
    """Apply the volume discount tier to an order subtotal.

    Used wherever a total is shown or stored so the tier table lives in one
    place. Negative subtotals are treated as zero.
    """
    amount = max(0.0, float(subtotal))
    percentage = discount_percentage(amount)
    final_total = amount * discount_factor(amount)
    return DiscountSummary(
        subtotal=amount,
        discount_percentage=percentage,
        discount=amount - final_total,
        final_total=final_total,
        message=_next_tier_message(amount),
    )


def _next_tier_message(subtotal: float) -> Optional[str]:
    for lower_bound, tier_percentage in DISCOUNT_TIERS:
        if subtotal < lower_bound:
            return f"Add {lower_bound - subtotal:,.2f} more to reach a {tier_percentage}% discount."
    return None
