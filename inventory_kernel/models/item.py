"""
Module: inventory_kernel.models.item
Responsibility: ORM persistence for catalog items -- the things that are
    stocked (nutrients, seeds, growing media, tools, ...), how they are
    tracked, and their reorder thresholds.
Architecture position: Kernel > Models.  May import from db/ and domain/dtos
    only.  MUST NOT import from services/, selectors/, or outer layers.

Invariants enforced:
    - tracking_mode is immutable once the item exists (no API changes it).
    - Items are soft-deleted (deleted_at) and never hard-deleted; the ORM
      listener in db/immutability.py rejects DELETE.
    - sku and barcode are unique among live (non-deleted) items, via
      partial unique indexes on PostgreSQL and SQLite.

Failure modes:
    - IntegrityError on a duplicate live sku/barcode that slipped past the
      catalog's pre-check (concurrent creates).
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from inventory_kernel.db.base import TimestampedBase
from inventory_kernel.domain.dtos import ItemInfo, TrackingMode

_LIVE = text("deleted_at IS NULL")


class InventoryItem(TimestampedBase):
    """
    Persistent storage for a stocked item.

    Contract:
        Current on-hand quantity is NOT stored here.  It is always a
        projection over inventory_movements.
    """

    __tablename__ = "inventory_items"

    __table_args__ = (
        CheckConstraint("min_stock >= 0", name="ck_inventory_item_min_stock"),
        CheckConstraint(
            "reorder_multiple > 0", name="ck_inventory_item_reorder_multiple"
        ),
        Index(
            "uq_inventory_item_sku_live",
            "sku",
            unique=True,
            postgresql_where=_LIVE,
            sqlite_where=_LIVE,
        ),
        Index(
            "uq_inventory_item_barcode_live",
            "barcode",
            unique=True,
            postgresql_where=_LIVE,
            sqlite_where=_LIVE,
        ),
        Index("idx_inventory_item_category", "category"),
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False)
    unit_of_measure: Mapped[str] = mapped_column(String(20), nullable=False)
    tracking_mode: Mapped[str] = mapped_column(String(20), nullable=False)
    is_consumable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    min_stock: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    reorder_multiple: Mapped[Decimal] = mapped_column(
        nullable=False, default=Decimal("1")
    )
    lead_time_days: Mapped[int | None] = mapped_column(Integer, nullable=True)

    sku: Mapped[str | None] = mapped_column(String(100), nullable=True)
    barcode: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Tombstone
    deleted_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<InventoryItem {self.id}: {self.name} ({self.tracking_mode})>"

    def to_dto(self) -> ItemInfo:
        """Convert ORM model to frozen domain DTO."""
        return ItemInfo(
            id=self.id,
            name=self.name,
            category=self.category,
            unit_of_measure=self.unit_of_measure,
            tracking_mode=TrackingMode(self.tracking_mode),
            is_consumable=self.is_consumable,
            min_stock=self.min_stock,
            reorder_multiple=self.reorder_multiple,
            lead_time_days=self.lead_time_days,
            sku=self.sku,
            barcode=self.barcode,
            created_at=self.created_at,
            updated_at=self.updated_at,
            deleted_at=self.deleted_at,
        )
