"""
Module: inventory_kernel.selectors.movement_selector
Responsibility: Movement history queries -- by item, by task, by external
    key, and consumption ranges for cost analysis.
Architecture position: Kernel > Selectors.  Read-only.
"""

from collections.abc import Iterable
from datetime import datetime
from uuid import UUID

from sqlalchemy import select

from inventory_kernel.domain.dtos import MovementRecord, MovementType
from inventory_kernel.models.movement import InventoryMovement
from inventory_kernel.selectors.base import BaseSelector


class MovementSelector(BaseSelector[InventoryMovement]):
    """Read access to the movement ledger."""

    def movements_for_item(
        self,
        item_id: UUID,
        movement_type: MovementType | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[MovementRecord]:
        """Movement history for an item, newest first."""
        stmt = select(InventoryMovement).where(InventoryMovement.item_id == item_id)
        if movement_type is not None:
            stmt = stmt.where(
                InventoryMovement.movement_type == MovementType(movement_type).value
            )
        if start is not None:
            stmt = stmt.where(InventoryMovement.created_at >= start)
        if end is not None:
            stmt = stmt.where(InventoryMovement.created_at <= end)
        stmt = stmt.order_by(InventoryMovement.seq.desc()).offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        return [row.to_dto() for row in self.session.scalars(stmt)]

    def movements_for_task(self, task_id: str) -> list[MovementRecord]:
        """Movements triggered by a task, in write order."""
        stmt = (
            select(InventoryMovement)
            .where(InventoryMovement.task_id == task_id)
            .order_by(InventoryMovement.created_at, InventoryMovement.item_id, InventoryMovement.seq)
        )
        return [row.to_dto() for row in self.session.scalars(stmt)]

    def by_external_key(self, external_key: str) -> MovementRecord | None:
        row = self.session.execute(
            select(InventoryMovement).where(InventoryMovement.external_key == external_key)
        ).scalar_one_or_none()
        return row.to_dto() if row is not None else None

    def consumptions(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
        item_ids: Iterable[UUID] | None = None,
    ) -> list[MovementRecord]:
        """Consumption movements in a time range, optionally for some items."""
        stmt = select(InventoryMovement).where(
            InventoryMovement.movement_type == MovementType.CONSUMPTION.value
        )
        if start is not None:
            stmt = stmt.where(InventoryMovement.created_at >= start)
        if end is not None:
            stmt = stmt.where(InventoryMovement.created_at <= end)
        if item_ids is not None:
            stmt = stmt.where(InventoryMovement.item_id.in_(list(item_ids)))
        stmt = stmt.order_by(InventoryMovement.item_id, InventoryMovement.seq)
        return [row.to_dto() for row in self.session.scalars(stmt)]
