"""
Module: inventory_kernel.models.batch
Responsibility: ORM persistence for inventory batches -- discrete lots of a
    batched item received at a specific per-unit cost, optionally expiring.
Architecture position: Kernel > Models.  May import from db/ and domain/dtos
    only.  MUST NOT import from services/, selectors/, or outer layers.

Invariants enforced:
    - quantity >= 0 (CHECK constraint; BatchStore refuses negative deltas).
    - cost_per_unit_minor >= 0 and frozen after creation (ORM listener and,
      on PostgreSQL, a trigger).  Movements copy it at allocation time.
    - (item_id, lot_number) is unique.
    - Batches are never deleted; fully consumed batches stay with quantity 0.
    - (item_id, expires_on, received_at) index supports FEFO candidate scans.

Audit relevance:
    quantity is a denormalized running balance kept in step with the
    ledger inside the same transaction.  The ledger remains authoritative:
    StockProjector.batch_remaining() re-derives it from movements.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import TimestampedBase, UUIDString
from inventory_kernel.domain.dtos import BatchInfo


class InventoryBatch(TimestampedBase):
    """Persistent storage for one lot of a batched item."""

    __tablename__ = "inventory_batches"

    __table_args__ = (
        UniqueConstraint("item_id", "lot_number", name="uq_inventory_batch_item_lot"),
        CheckConstraint("quantity >= 0", name="ck_inventory_batch_quantity"),
        CheckConstraint(
            "cost_per_unit_minor >= 0", name="ck_inventory_batch_cost"
        ),
        # Query: FEFO candidates for an item
        Index(
            "idx_inventory_batch_item_expiry",
            "item_id",
            "expires_on",
            "received_at",
        ),
    )

    item_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("inventory_items.id"),
        nullable=False,
    )
    lot_number: Mapped[str] = mapped_column(String(100), nullable=False)

    # Current remaining quantity, never negative
    quantity: Mapped[Decimal] = mapped_column(nullable=False)

    # Frozen after creation
    cost_per_unit_minor: Mapped[int] = mapped_column(nullable=False)

    received_at: Mapped[datetime] = mapped_column(nullable=False)
    expires_on: Mapped[date | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return (
            f"<InventoryBatch {self.id}: item={self.item_id} lot={self.lot_number} "
            f"qty={self.quantity} @ {self.cost_per_unit_minor}>"
        )

    def to_dto(self) -> BatchInfo:
        """Convert ORM model to frozen domain DTO."""
        return BatchInfo(
            id=self.id,
            item_id=self.item_id,
            lot_number=self.lot_number,
            quantity=self.quantity,
            cost_per_unit_minor=self.cost_per_unit_minor,
            received_at=self.received_at,
            expires_on=self.expires_on,
        )
