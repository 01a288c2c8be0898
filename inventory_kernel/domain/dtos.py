"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Defines the immutable data structures that cross the kernel boundary:
    item definitions and snapshots, batch snapshots, movement drafts
    (ledger input) and movement records (ledger output), and stock levels
    (projection output).

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Free of ORM dependencies.  ORM models convert themselves to these DTOs
    via ``to_dto()``; services and selectors return DTOs, never ORM rows.

Invariants enforced:
    - Quantities are Decimal; costs are int minor units or None.
    - A MovementRecord's cost snapshot is a copy, never a reference to
      the batch's current cost.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID


class TrackingMode(str, Enum):
    """How an item's stock is tracked."""

    SIMPLE = "simple"
    BATCHED = "batched"


class MovementType(str, Enum):
    """Kind of ledger movement; fixes the sign of quantity_delta."""

    RECEIPT = "receipt"
    CONSUMPTION = "consumption"
    ADJUSTMENT = "adjustment"


@dataclass(frozen=True)
class ItemSpec:
    """Input for creating a catalog item."""

    name: str
    category: str
    unit_of_measure: str
    tracking_mode: TrackingMode = TrackingMode.SIMPLE
    is_consumable: bool = True
    min_stock: Decimal = Decimal("0")
    reorder_multiple: Decimal = Decimal("1")
    lead_time_days: int | None = None
    sku: str | None = None
    barcode: str | None = None


@dataclass(frozen=True)
class ItemInfo:
    """Snapshot of a catalog item."""

    id: UUID
    name: str
    category: str
    unit_of_measure: str
    tracking_mode: TrackingMode
    is_consumable: bool
    min_stock: Decimal
    reorder_multiple: Decimal
    lead_time_days: int | None
    sku: str | None
    barcode: str | None
    created_at: datetime
    updated_at: datetime
    deleted_at: datetime | None = None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def is_batched(self) -> bool:
        return self.tracking_mode == TrackingMode.BATCHED


@dataclass(frozen=True)
class BatchInfo:
    """
    Snapshot of a batch.

    ``quantity`` is the stored remaining quantity at the time of the
    snapshot.  ``cost_per_unit_minor`` never changes after receipt.
    """

    id: UUID
    item_id: UUID
    lot_number: str
    quantity: Decimal
    cost_per_unit_minor: int
    received_at: datetime
    expires_on: date | None = None

    def is_expired(self, as_of: date) -> bool:
        """A batch is usable through its expiry date and expired the day after."""
        return self.expires_on is not None and self.expires_on < as_of


@dataclass(frozen=True)
class MovementDraft:
    """
    A movement not yet appended to the ledger.

    Contract:
        Sign of quantity_delta must match movement_type (validated by the
        ledger before any write, not here, so that a batch of drafts is
        rejected as a whole with a typed error).
    """

    item_id: UUID
    movement_type: MovementType
    quantity_delta: Decimal
    reason: str
    batch_id: UUID | None = None
    cost_per_unit_minor: int | None = None
    task_id: str | None = None
    external_key: str | None = None
    override_reason: str | None = None


@dataclass(frozen=True)
class MovementRecord:
    """A committed ledger movement."""

    id: UUID
    item_id: UUID
    batch_id: UUID | None
    movement_type: MovementType
    quantity_delta: Decimal
    cost_per_unit_minor: int | None
    reason: str
    task_id: str | None
    external_key: str | None
    override_reason: str | None
    operation_id: UUID
    seq: int
    created_at: datetime

    @property
    def value_delta_minor(self) -> Decimal | None:
        """Exact signed value of this movement in minor units, if it carries a cost."""
        if self.cost_per_unit_minor is None:
            return None
        return self.quantity_delta * self.cost_per_unit_minor


@dataclass(frozen=True)
class BatchStock:
    """Remaining quantity of one batch, derived from the ledger."""

    batch_id: UUID
    lot_number: str
    remaining: Decimal
    cost_per_unit_minor: int
    received_at: datetime
    expires_on: date | None


@dataclass(frozen=True)
class StockLevel:
    """On-hand quantity and valuation of one item, derived from the ledger."""

    item_id: UUID
    on_hand: Decimal
    valuation_minor: int
    movement_count: int
    batches: tuple[BatchStock, ...] = ()
