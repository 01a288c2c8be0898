"""
FEFO Allocation Engine -- which batches satisfy a consumption, and how much of each.

Responsibility:
    Given candidate batches and a requested quantity, produce the ordered
    allocation plan: batches in FEFO order, each drained greedily until the
    request is met.  Pure function, no I/O.

Architecture position:
    Engines -- pure calculation layer.  Called by
    inventory_services.allocation_engine, which supplies locked candidates
    and turns the plan into ledger movements.

Invariants enforced:
    - Deterministic: identical candidates and request give an identical plan.
    - Order: ascending expires_on, no-expiry last, then older received_at
      (inventory_kernel.domain.ordering.fefo_key).
    - Greedy: take min(remaining request, batch quantity) from each batch in
      order; a batch is only touched once every earlier batch is exhausted.
    - Conservation: Σ line quantities + remaining == requested.
    - Cost attribution: each line carries its batch's cost verbatim.

Failure modes:
    - ValueError if requested <= 0 (services validate before calling).
    - A plan with remaining > 0 is not an error here; the caller decides
      between InsufficientStockError and ExpiredBatchBlockedError.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from inventory_engines.tracer import traced_engine
from inventory_kernel.domain.dtos import BatchInfo
from inventory_kernel.domain.ordering import sort_fefo

ZERO = Decimal("0")


@dataclass(frozen=True)
class AllocationLine:
    """Quantity drawn from one batch at that batch's frozen unit cost."""

    batch_id: UUID
    lot_number: str
    quantity: Decimal
    cost_per_unit_minor: int
    expires_on: date | None = None

    def __post_init__(self) -> None:
        if self.quantity <= ZERO:
            raise ValueError(f"Allocation quantity must be positive, got {self.quantity}")

    @property
    def line_cost_minor(self) -> Decimal:
        """Exact cost of this line in minor units (not rounded)."""
        return self.quantity * self.cost_per_unit_minor


@dataclass(frozen=True)
class AllocationPlan:
    """Ordered allocation lines plus any unmet quantity."""

    requested: Decimal
    lines: tuple[AllocationLine, ...]
    remaining: Decimal

    @property
    def is_complete(self) -> bool:
        return self.remaining == ZERO

    @property
    def allocated(self) -> Decimal:
        return sum((line.quantity for line in self.lines), ZERO)

    @property
    def total_cost_minor(self) -> Decimal:
        return sum((line.line_cost_minor for line in self.lines), ZERO)


def partition_expired(
    batches: Iterable[BatchInfo],
    as_of: date,
) -> tuple[list[BatchInfo], list[BatchInfo]]:
    """Split batches into (usable, expired) as of a date, each in FEFO order."""
    usable: list[BatchInfo] = []
    expired: list[BatchInfo] = []
    for batch in sort_fefo(batches):
        (expired if batch.is_expired(as_of) else usable).append(batch)
    return usable, expired


def available_quantity(batches: Iterable[BatchInfo]) -> Decimal:
    return sum((b.quantity for b in batches if b.quantity > ZERO), ZERO)


@traced_engine("fefo_allocation", "1.0", fingerprint_fields=("requested",))
def plan_allocation(
    *,
    candidates: Iterable[BatchInfo],
    requested: Decimal,
) -> AllocationPlan:
    """
    Plan a FEFO allocation of ``requested`` across ``candidates``.

    Candidates with no remaining quantity are skipped.  The caller is
    responsible for having filtered out expired batches it does not want.
    """
    if requested <= ZERO:
        raise ValueError(f"Requested quantity must be positive, got {requested}")

    remaining = requested
    lines: list[AllocationLine] = []
    for batch in sort_fefo(candidates):
        if remaining == ZERO:
            break
        if batch.quantity <= ZERO:
            continue
        take = min(remaining, batch.quantity)
        lines.append(
            AllocationLine(
                batch_id=batch.id,
                lot_number=batch.lot_number,
                quantity=take,
                cost_per_unit_minor=batch.cost_per_unit_minor,
                expires_on=batch.expires_on,
            )
        )
        remaining -= take

    return AllocationPlan(requested=requested, lines=tuple(lines), remaining=remaining)
