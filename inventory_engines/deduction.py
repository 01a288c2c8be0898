"""
Task deduction math -- how much of each item a task uses, and what to do when short.

Responsibility:
    Resolve each entry of a task's deduction map to a concrete quantity
    (fixed per task, or per plant times the plant count), and describe the
    recovery choices offered when an item cannot cover its quantity.

Architecture position:
    Engines -- pure calculation layer.  Called by
    inventory_services.task_deduction before any stock is touched.

Invariants enforced:
    - A resolved quantity is always positive.
    - Entries naming the same item are merged into one line, so an item is
      allocated exactly once per deduction.
    - Recovery options are always offered in the order partial, skip, adjust.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from uuid import UUID

from inventory_engines.tracer import traced_engine

ZERO = Decimal("0")


class ScalingMode(str, Enum):
    """How an entry's quantity grows with the task."""

    FIXED = "fixed"
    PER_PLANT = "per_plant"


class RecoveryAction(str, Enum):
    PARTIAL = "partial"
    SKIP = "skip"
    ADJUST = "adjust"


@dataclass(frozen=True)
class DeductionEntry:
    """One line of a task's deduction map."""

    item_id: UUID
    per_task_quantity: Decimal | None = None
    per_plant_quantity: Decimal | None = None
    scaling_mode: ScalingMode = ScalingMode.FIXED
    label: str | None = None


@dataclass(frozen=True)
class RecoveryOption:
    action: RecoveryAction
    description: str
    quantity: Decimal | None = None


def scaled_quantity(entry: DeductionEntry, plant_count: int | None = None) -> Decimal:
    """
    Quantity of ``entry.item_id`` the task consumes.

    Raises:
        ValueError: the entry lacks the quantity its mode needs, or a
            per-plant entry is resolved without a positive plant count.
    """
    mode = ScalingMode(entry.scaling_mode)
    if mode == ScalingMode.FIXED:
        if entry.per_task_quantity is None or entry.per_task_quantity <= ZERO:
            raise ValueError(
                f"fixed entry for item {entry.item_id} needs a positive per_task_quantity"
            )
        return entry.per_task_quantity

    if entry.per_plant_quantity is None or entry.per_plant_quantity <= ZERO:
        raise ValueError(
            f"per_plant entry for item {entry.item_id} needs a positive per_plant_quantity"
        )
    if plant_count is None or plant_count <= 0:
        raise ValueError(f"per_plant entry for item {entry.item_id} needs a plant count")
    return entry.per_plant_quantity * plant_count


@traced_engine("deduction_quantities", "1.0", fingerprint_fields=("plant_count",))
def resolve_quantities(
    entries: Iterable[DeductionEntry],
    *,
    plant_count: int | None = None,
) -> dict[UUID, Decimal]:
    """Resolved quantity per item, merging repeated items, in first-seen order."""
    resolved: dict[UUID, Decimal] = {}
    for entry in entries:
        quantity = scaled_quantity(entry, plant_count)
        resolved[entry.item_id] = resolved.get(entry.item_id, ZERO) + quantity
    if not resolved:
        raise ValueError("a deduction needs at least one entry")
    return resolved


def recovery_options(required: Decimal, available: Decimal) -> tuple[RecoveryOption, ...]:
    """Choices offered to the caller for an item short by ``required - available``."""
    available = max(available, ZERO)
    shortfall = required - available
    return (
        RecoveryOption(
            action=RecoveryAction.PARTIAL,
            description=(
                f"Use the available {_text(available)} and record a shortage "
                f"of {_text(shortfall)}"
            ),
            quantity=available,
        ),
        RecoveryOption(
            action=RecoveryAction.SKIP,
            description="Complete the task without deducting this item",
        ),
        RecoveryOption(
            action=RecoveryAction.ADJUST,
            description=f"Receive at least {_text(shortfall)} more, then retry",
            quantity=shortfall,
        ),
    )


def _text(quantity: Decimal) -> str:
    return format(quantity.normalize(), "f")
