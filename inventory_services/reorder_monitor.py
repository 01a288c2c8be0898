"""
ReorderMonitor -- low-stock detection over the ledger projection.

Responsibility:
    Compares each live item's projected on-hand quantity with its
    min_stock threshold and proposes an order quantity rounded up to the
    item's reorder_multiple.

Architecture position:
    Services -- composes StockProjector (kernel) with the pure reorder math
    in inventory_engines.reorder.  Read-only.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from inventory_engines.reorder import needs_reorder, suggested_reorder_quantity
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import ItemInfo
from inventory_kernel.logging_config import get_logger
from inventory_kernel.selectors.stock_projector import StockProjector
from inventory_kernel.services.item_catalog import ItemCatalog

logger = get_logger("services.reorder")


@dataclass(frozen=True)
class ReorderCandidate:
    """An item whose on-hand quantity is below its min_stock."""

    item_id: UUID
    name: str
    category: str
    unit_of_measure: str
    on_hand: Decimal
    min_stock: Decimal
    reorder_multiple: Decimal
    suggested_quantity: Decimal
    lead_time_days: int | None = None

    @property
    def shortfall(self) -> Decimal:
        return self.min_stock - self.on_hand


class ReorderMonitor:
    """Reorder checks for single items and for the whole catalog."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        catalog: ItemCatalog | None = None,
        projector: StockProjector | None = None,
    ):
        self.session = session
        self.clock = clock or SystemClock()
        self.catalog = catalog or ItemCatalog(session, self.clock)
        self.projector = projector or StockProjector(session)

    def needs_reorder(self, item_id: UUID) -> bool:
        item = self.catalog.get_item(item_id)
        return needs_reorder(self.projector.on_hand_quantity(item.id), item.min_stock)

    def suggested_reorder_quantity(self, item_id: UUID) -> Decimal:
        item = self.catalog.get_item(item_id)
        return suggested_reorder_quantity(
            on_hand=self.projector.on_hand_quantity(item.id),
            min_stock=item.min_stock,
            reorder_multiple=item.reorder_multiple,
        )

    def evaluate(self, item: ItemInfo) -> ReorderCandidate | None:
        """Candidate for ``item``, or None when it is stocked at or above min_stock."""
        on_hand = self.projector.on_hand_quantity(item.id)
        if not needs_reorder(on_hand, item.min_stock):
            return None
        return ReorderCandidate(
            item_id=item.id,
            name=item.name,
            category=item.category,
            unit_of_measure=item.unit_of_measure,
            on_hand=on_hand,
            min_stock=item.min_stock,
            reorder_multiple=item.reorder_multiple,
            suggested_quantity=suggested_reorder_quantity(
                on_hand=on_hand,
                min_stock=item.min_stock,
                reorder_multiple=item.reorder_multiple,
            ),
            lead_time_days=item.lead_time_days,
        )

    def reorder_candidates(self, category: str | None = None) -> list[ReorderCandidate]:
        """
        Live items below min_stock, largest shortfall first.

        Soft-deleted items are never candidates.  Ties are ordered by name.
        """
        items = self.catalog.list_items(category=category)
        candidates = [c for c in (self.evaluate(item) for item in items) if c is not None]
        candidates.sort(key=lambda c: (-c.shortfall, c.name, str(c.item_id)))
        logger.info(
            "reorder_candidates_evaluated",
            extra={
                "item_count": len(items),
                "candidate_count": len(candidates),
                "category": category,
            },
        )
        return candidates
