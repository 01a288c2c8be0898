"""
Ledger folds -- stock and valuation as pure functions of movements.

Responsibility:
    Derive on-hand quantity, valuation and per-batch remaining quantity
    from an ordered sequence of MovementRecords.  Nothing is cached; the
    selectors feed these folds straight from the ledger.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Movements are folded in the order given (callers pass seq order).
    - Valuation uses exact Decimal products of quantity and integer cost,
      summed without intermediate rounding and rounded once at the end.
    - Only movements that carry a cost snapshot contribute to valuation.
      Every batch movement carries one, so valuation equals
      Σ batch remaining × batch cost; simple-item movements move quantity only.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from inventory_kernel.db.types import round_minor
from inventory_kernel.domain.dtos import MovementRecord

ZERO = Decimal("0")


@dataclass(frozen=True)
class LedgerTotals:
    """Result of folding a movement sequence."""

    on_hand: Decimal
    value_minor_exact: Decimal
    movement_count: int
    batch_remaining: dict[UUID, Decimal]

    @property
    def valuation_minor(self) -> int:
        return round_minor(self.value_minor_exact)


def fold_movements(movements: Iterable[MovementRecord]) -> LedgerTotals:
    """Fold movements into on-hand, exact value and per-batch remaining."""
    on_hand = ZERO
    value = ZERO
    count = 0
    remaining: dict[UUID, Decimal] = {}
    for movement in movements:
        count += 1
        on_hand += movement.quantity_delta
        delta_value = movement.value_delta_minor
        if delta_value is not None:
            value += delta_value
        if movement.batch_id is not None:
            remaining[movement.batch_id] = (
                remaining.get(movement.batch_id, ZERO) + movement.quantity_delta
            )
    return LedgerTotals(
        on_hand=on_hand,
        value_minor_exact=value,
        movement_count=count,
        batch_remaining=remaining,
    )


def on_hand_quantity(movements: Iterable[MovementRecord]) -> Decimal:
    return sum((m.quantity_delta for m in movements), ZERO)


def valuation_minor(movements: Iterable[MovementRecord]) -> int:
    """Σ quantity_delta × cost over costed movements, rounded once."""
    exact = sum(
        (m.value_delta_minor for m in movements if m.value_delta_minor is not None),
        ZERO,
    )
    return round_minor(exact)
