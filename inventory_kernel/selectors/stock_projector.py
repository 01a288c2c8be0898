"""
Module: inventory_kernel.selectors.stock_projector
Responsibility: Derive on-hand quantity, valuation and per-batch remaining
    quantity from the movement ledger.
Architecture position: Kernel > Selectors.  Read-only.

Invariants enforced:
    - There are NO stored balances.  Every figure is a fold over
      inventory_movements in per-item seq order (see domain/ledger_fold.py).
    - Valuation is an integer in minor units, computed exactly and rounded
      once.

Audit relevance:
    Because the projection re-derives everything from the ledger, a stored
    batch quantity that disagrees with batch_remaining() is detectable.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from inventory_kernel.domain.dtos import BatchStock, MovementRecord, StockLevel
from inventory_kernel.domain.ledger_fold import fold_movements, on_hand_quantity, valuation_minor
from inventory_kernel.domain.ordering import fefo_key
from inventory_kernel.models.batch import InventoryBatch
from inventory_kernel.models.movement import InventoryMovement
from inventory_kernel.selectors.base import BaseSelector


class StockProjector(BaseSelector[InventoryMovement]):
    """Ledger projections per item and per batch."""

    def item_movements(self, item_id: UUID) -> list[MovementRecord]:
        """All movements of an item in insertion (seq) order."""
        rows = self.session.scalars(
            select(InventoryMovement)
            .where(InventoryMovement.item_id == item_id)
            .order_by(InventoryMovement.seq)
        )
        return [row.to_dto() for row in rows]

    def on_hand_quantity(self, item_id: UUID) -> Decimal:
        return on_hand_quantity(self.item_movements(item_id))

    def valuation(self, item_id: UUID) -> int:
        """Σ quantity_delta × cost_per_unit_minor, in minor units."""
        return valuation_minor(self.item_movements(item_id))

    def batch_remaining(self, batch_id: UUID) -> Decimal:
        rows = self.session.scalars(
            select(InventoryMovement)
            .where(InventoryMovement.batch_id == batch_id)
            .order_by(InventoryMovement.seq)
        )
        return on_hand_quantity(row.to_dto() for row in rows)

    def stock_level(self, item_id: UUID) -> StockLevel:
        """On-hand, valuation and the remaining quantity of every non-empty batch."""
        totals = fold_movements(self.item_movements(item_id))
        batches = [
            row.to_dto()
            for row in self.session.scalars(
                select(InventoryBatch).where(InventoryBatch.item_id == item_id)
            )
        ]
        batch_stock = tuple(
            BatchStock(
                batch_id=batch.id,
                lot_number=batch.lot_number,
                remaining=totals.batch_remaining[batch.id],
                cost_per_unit_minor=batch.cost_per_unit_minor,
                received_at=batch.received_at,
                expires_on=batch.expires_on,
            )
            for batch in sorted(batches, key=fefo_key)
            if totals.batch_remaining.get(batch.id)
        )
        return StockLevel(
            item_id=item_id,
            on_hand=totals.on_hand,
            valuation_minor=totals.valuation_minor,
            movement_count=totals.movement_count,
            batches=batch_stock,
        )
