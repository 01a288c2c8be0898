"""
BatchStore -- lots of batched items with quantity, expiry and frozen cost.

Responsibility:
    Creates batches on receipt, lists allocation candidates in FEFO order,
    row-locks candidate batches, and keeps each batch's stored remaining
    quantity in step with the ledger.

Architecture position:
    Kernel > Services.  ``apply_delta`` is called only by MovementLedger,
    inside the same SAVEPOINT as the movement insert it mirrors.

Invariants enforced:
    - Batch quantity never goes negative.
    - cost_per_unit_minor is a non-negative integer fixed at receipt.
    - (item_id, lot_number) unique.
    - Expiry: a batch with expires_on before the evaluation date is
      expired; a batch without expires_on never expires.

Failure modes:
    - ItemNotFoundError / TrackingModeError when receiving into a missing
      or simple item.
    - ConstraintViolationError on duplicate lot or a delta that would make
      quantity negative.
    - BatchNotFoundError on unknown batch ids.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from inventory_kernel.domain import validation
from inventory_kernel.domain.clock import Clock
from inventory_kernel.domain.dtos import BatchInfo, TrackingMode
from inventory_kernel.domain.ordering import sort_fefo
from inventory_kernel.exceptions import (
    BatchNotFoundError,
    ConstraintViolationError,
    TrackingModeError,
    ValidationError,
)
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.batch import InventoryBatch
from inventory_kernel.services.base import BaseService
from inventory_kernel.services.item_catalog import ItemCatalog

logger = get_logger("services.batch_store")


class BatchStore(BaseService[InventoryBatch]):
    """Batch persistence and FEFO candidate selection."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        catalog: ItemCatalog | None = None,
    ):
        super().__init__(session, clock)
        self.catalog = catalog or ItemCatalog(session, self.clock)

    def receive_batch(
        self,
        item_id: UUID,
        lot_number: str,
        quantity: Decimal,
        cost_per_unit_minor: int,
        received_at: datetime | None = None,
        expires_on: date | None = None,
    ) -> BatchInfo:
        """
        Create a batch holding ``quantity``.

        Preconditions: the item exists, is live, and is batched.
        Postconditions: the batch row is flushed.  The matching receipt
            movement is the caller's responsibility (same transaction).
        """
        item = self.catalog.lock_item(item_id)
        if item.tracking_mode != TrackingMode.BATCHED:
            raise TrackingModeError(str(item_id), item.tracking_mode.value, "receive_batch")

        lot = validation.required_text("lot_number", lot_number, max_length=100)
        qty = validation.non_negative_quantity("quantity", quantity)
        cost = validation.minor_units("cost_per_unit_minor", cost_per_unit_minor)
        received = received_at or self.clock.now()
        if received.tzinfo is None:
            raise ValidationError("received_at", "must be timezone-aware")
        if expires_on is not None and isinstance(expires_on, datetime):
            expires_on = expires_on.date()

        duplicate = self.find_by_lot(item_id, lot)
        if duplicate is not None:
            raise ConstraintViolationError(
                "batch_lot_unique",
                f"Lot {lot!r} already exists for item {item_id}",
            )

        now = self.clock.now()
        batch = InventoryBatch(
            item_id=item_id,
            lot_number=lot,
            quantity=qty,
            cost_per_unit_minor=cost,
            received_at=received,
            expires_on=expires_on,
            created_at=now,
            updated_at=now,
        )
        try:
            with self.session.begin_nested():
                self.session.add(batch)
                self.session.flush()
        except IntegrityError as exc:
            raise ConstraintViolationError(
                "batch_lot_unique",
                f"Lot {lot!r} already exists for item {item_id}",
            ) from exc

        logger.info(
            "batch_received",
            extra={
                "item_id": str(item_id),
                "batch_id": str(batch.id),
                "lot_number": lot,
                "quantity": qty,
                "cost_per_unit_minor": cost,
                "expires_on": expires_on,
            },
        )
        return batch.to_dto()

    def get_batch(self, batch_id: UUID, item_id: UUID | None = None) -> BatchInfo:
        """Look up a batch, optionally asserting it belongs to ``item_id``."""
        return self._load(batch_id, item_id=item_id).to_dto()

    def find_by_lot(self, item_id: UUID, lot_number: str) -> BatchInfo | None:
        row = self.session.execute(
            select(InventoryBatch).where(
                InventoryBatch.item_id == item_id,
                InventoryBatch.lot_number == lot_number,
            )
        ).scalar_one_or_none()
        return row.to_dto() if row is not None else None

    def list_batches(self, item_id: UUID) -> list[BatchInfo]:
        """All batches of an item, depleted ones included, in FEFO order."""
        rows = self.session.scalars(
            select(InventoryBatch).where(InventoryBatch.item_id == item_id)
        )
        return sort_fefo(row.to_dto() for row in rows)

    def list_available_batches(
        self,
        item_id: UUID,
        include_expired: bool = False,
        as_of: date | None = None,
        lock: bool = False,
    ) -> list[BatchInfo]:
        """
        Allocation candidates: quantity > 0, expired ones excluded unless asked.

        Args:
            item_id: Item whose batches to list.
            include_expired: Keep batches whose expiry date has passed.
            as_of: Expiry evaluation date; defaults to the clock's today.
            lock: Row-lock the returned batches (``SELECT ... FOR UPDATE``).

        Returns:
            Batches in FEFO order.
        """
        as_of = as_of or self.clock.today()
        stmt = select(InventoryBatch).where(
            InventoryBatch.item_id == item_id,
            InventoryBatch.quantity > 0,
        )
        if not include_expired:
            stmt = stmt.where(
                (InventoryBatch.expires_on.is_(None))
                | (InventoryBatch.expires_on >= as_of)
            )
        if lock:
            stmt = stmt.with_for_update()
        rows = self.session.scalars(stmt.execution_options(populate_existing=True))
        return sort_fefo(row.to_dto() for row in rows)

    def apply_delta(self, batch_id: UUID, delta: Decimal) -> BatchInfo:
        """
        Move a batch's stored quantity by ``delta``.

        Only the ledger calls this, mirroring a movement it is appending.

        Raises:
            ConstraintViolationError: the result would be negative.
        """
        batch = self._load(batch_id, lock=True)
        new_quantity = batch.quantity + delta
        if new_quantity < 0:
            raise ConstraintViolationError(
                "batch_quantity_non_negative",
                f"Batch {batch_id} holds {batch.quantity}; cannot apply {delta}",
            )
        batch.quantity = new_quantity
        batch.updated_at = self.clock.now()
        self.session.flush()
        logger.debug(
            "batch_quantity_changed",
            extra={
                "batch_id": str(batch_id),
                "delta": delta,
                "quantity": new_quantity,
            },
        )
        return batch.to_dto()

    def _load(
        self,
        batch_id: UUID,
        item_id: UUID | None = None,
        lock: bool = False,
    ) -> InventoryBatch:
        stmt = select(InventoryBatch).where(InventoryBatch.id == batch_id)
        if lock:
            stmt = stmt.with_for_update()
        batch = self.session.execute(
            stmt.execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if batch is None or (item_id is not None and batch.item_id != item_id):
            raise BatchNotFoundError(
                str(batch_id), str(item_id) if item_id is not None else None
            )
        return batch
