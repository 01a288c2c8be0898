"""
Module: inventory_kernel.models.movement
Responsibility: ORM persistence for the inventory movement ledger -- the
    single source of truth for stock and valuation.
Architecture position: Kernel > Models.  May import from db/ and domain/dtos
    only.  MUST NOT import from services/, selectors/, or outer layers.

Invariants enforced:
    - Append-only: rows are never updated or deleted (ORM listener in
      db/immutability.py; PostgreSQL trigger in db/triggers.py).
    - external_key is globally unique when present (idempotency).
    - (item_id, seq) is unique; seq is the per-item insertion order that
      every projection folds in.
    - quantity_delta != 0.
    - cost_per_unit_minor is a snapshot copied from the batch at write time.

Failure modes:
    - IntegrityError on a duplicate external_key: the ledger treats this as
      an idempotent replay, not an error.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import Base, UUIDString
from inventory_kernel.domain.dtos import MovementRecord, MovementType


class InventoryMovement(Base):
    """
    One immutable stock change.

    Contract:
        receipt: quantity_delta > 0; consumption: quantity_delta < 0;
        adjustment: quantity_delta != 0.  All movements written by one
        ledger append share an operation_id.
    """

    __tablename__ = "inventory_movements"

    __table_args__ = (
        UniqueConstraint("external_key", name="uq_inventory_movement_external_key"),
        UniqueConstraint("item_id", "seq", name="uq_inventory_movement_item_seq"),
        CheckConstraint("quantity_delta <> 0", name="ck_inventory_movement_nonzero"),
        # Query: ledger fold for a batch
        Index("idx_inventory_movement_batch", "batch_id"),
        # Query: consumption triggered by a task
        Index("idx_inventory_movement_task", "task_id"),
        # Query: replay of one append call
        Index("idx_inventory_movement_operation", "operation_id"),
        # Query: movement history in a time range
        Index("idx_inventory_movement_item_created", "item_id", "created_at"),
    )

    item_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("inventory_items.id"),
        nullable=False,
    )
    batch_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("inventory_batches.id"),
        nullable=True,
    )

    movement_type: Mapped[str] = mapped_column(String(20), nullable=False)
    quantity_delta: Mapped[Decimal] = mapped_column(nullable=False)

    # Snapshot of the batch cost at write time; NULL for simple items
    cost_per_unit_minor: Mapped[int | None] = mapped_column(nullable=True)

    reason: Mapped[str] = mapped_column(String(2000), nullable=False)
    task_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    external_key: Mapped[str | None] = mapped_column(String(255), nullable=True)
    override_reason: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    operation_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    seq: Mapped[int] = mapped_column(nullable=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return (
            f"<InventoryMovement {self.id}: item={self.item_id} "
            f"{self.movement_type} {self.quantity_delta} seq={self.seq}>"
        )

    def to_dto(self) -> MovementRecord:
        """Convert ORM model to frozen domain DTO."""
        return MovementRecord(
            id=self.id,
            item_id=self.item_id,
            batch_id=self.batch_id,
            movement_type=MovementType(self.movement_type),
            quantity_delta=self.quantity_delta,
            cost_per_unit_minor=self.cost_per_unit_minor,
            reason=self.reason,
            task_id=self.task_id,
            external_key=self.external_key,
            override_reason=self.override_reason,
            operation_id=self.operation_id,
            seq=self.seq,
            created_at=self.created_at,
        )
