"""
Reorder thresholds -- pure low-stock math.

Invariants enforced:
    - needs_reorder is strictly on_hand < min_stock.
    - The suggested quantity is the shortfall rounded UP to the next whole
      multiple of reorder_multiple, so ordering it restores at least
      min_stock.  Zero when no reorder is needed.
"""

from decimal import ROUND_CEILING, Decimal

from inventory_engines.tracer import traced_engine

ZERO = Decimal("0")


def needs_reorder(on_hand: Decimal, min_stock: Decimal) -> bool:
    return on_hand < min_stock


@traced_engine(
    "reorder_quantity",
    "1.0",
    fingerprint_fields=("on_hand", "min_stock", "reorder_multiple"),
)
def suggested_reorder_quantity(
    *,
    on_hand: Decimal,
    min_stock: Decimal,
    reorder_multiple: Decimal,
) -> Decimal:
    """
    Quantity to order, as a whole multiple of ``reorder_multiple``.

    Raises:
        ValueError: reorder_multiple is not positive.
    """
    if reorder_multiple <= ZERO:
        raise ValueError(f"reorder_multiple must be positive, got {reorder_multiple}")
    if not needs_reorder(on_hand, min_stock):
        return ZERO
    shortfall = min_stock - on_hand
    multiples = (shortfall / reorder_multiple).to_integral_value(rounding=ROUND_CEILING)
    return multiples * reorder_multiple
