"""
ItemCatalog -- CRUD over stocked item definitions.

Responsibility:
    Creates items, updates reorder thresholds, soft-deletes items, and
    answers item lookups.  Never touches movements or batches.

Architecture position:
    Kernel > Services.  Used by BatchStore, MovementLedger callers and the
    services layer to resolve and lock items.

Invariants enforced:
    - min_stock >= 0, reorder_multiple > 0, lead_time_days >= 0.
    - category is one of the configured categories.
    - sku / barcode unique among live items.
    - Items are soft-deleted; deleted items are invisible to every
      operation except lookups that ask for them explicitly.

Failure modes:
    - ValidationError / InvalidQuantityError on bad fields.
    - ConstraintViolationError on duplicate live sku or barcode.
    - ItemNotFoundError for unknown or deleted items.
"""

from collections.abc import Iterable
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from inventory_kernel.domain import validation
from inventory_kernel.domain.clock import Clock
from inventory_kernel.domain.dtos import ItemInfo, ItemSpec, TrackingMode
from inventory_kernel.exceptions import (
    ConstraintViolationError,
    InvalidQuantityError,
    ItemNotFoundError,
    ValidationError,
)
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.item import InventoryItem
from inventory_kernel.services.base import BaseService

logger = get_logger("services.item_catalog")

DEFAULT_CATEGORIES: tuple[str, ...] = (
    "Nutrients",
    "Seeds",
    "Growing Media",
    "Tools",
    "Containers",
    "Amendments",
)


class ItemCatalog(BaseService[InventoryItem]):
    """Item definitions and thresholds."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        categories: Iterable[str] | None = None,
    ):
        super().__init__(session, clock)
        self.categories = frozenset(categories or DEFAULT_CATEGORIES)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_item(self, spec: ItemSpec) -> ItemInfo:
        """
        Create a catalog item.

        Raises:
            ValidationError: empty name/unit, unknown category or tracking mode.
            InvalidQuantityError: negative min_stock, non-positive
                reorder_multiple, negative lead time.
            ConstraintViolationError: sku or barcode already used by a live item.
        """
        name = validation.required_text("name", spec.name, max_length=200)
        unit = validation.required_text("unit_of_measure", spec.unit_of_measure, max_length=20)
        category = self._validate_category(spec.category)
        try:
            tracking_mode = TrackingMode(spec.tracking_mode)
        except ValueError as exc:
            raise ValidationError(
                "tracking_mode", f"must be one of {[m.value for m in TrackingMode]}"
            ) from exc
        min_stock, reorder_multiple = self._validate_thresholds(
            spec.min_stock, spec.reorder_multiple
        )
        lead_time_days = spec.lead_time_days
        if lead_time_days is not None and (
            isinstance(lead_time_days, bool)
            or not isinstance(lead_time_days, int)
            or lead_time_days < 0
        ):
            raise InvalidQuantityError(
                "lead_time_days", lead_time_days, "must be a non-negative integer"
            )
        sku = validation.optional_text("sku", spec.sku, max_length=100)
        barcode = validation.optional_text("barcode", spec.barcode, max_length=100)

        self._check_unique_identifier("sku", sku)
        self._check_unique_identifier("barcode", barcode)

        now = self.clock.now()
        item = InventoryItem(
            name=name,
            category=category,
            unit_of_measure=unit,
            tracking_mode=tracking_mode.value,
            is_consumable=bool(spec.is_consumable),
            min_stock=min_stock,
            reorder_multiple=reorder_multiple,
            lead_time_days=lead_time_days,
            sku=sku,
            barcode=barcode,
            created_at=now,
            updated_at=now,
        )
        try:
            with self.session.begin_nested():
                self.session.add(item)
                self.session.flush()
        except IntegrityError as exc:
            raise ConstraintViolationError(
                "item_identifier_unique",
                "sku or barcode is already used by another item",
            ) from exc

        logger.info(
            "item_created",
            extra={
                "item_id": str(item.id),
                "category": category,
                "tracking_mode": tracking_mode.value,
            },
        )
        return item.to_dto()

    def update_thresholds(
        self,
        item_id: UUID,
        min_stock: Decimal | None = None,
        reorder_multiple: Decimal | None = None,
    ) -> ItemInfo:
        """Update reorder thresholds; ``None`` keeps the current value."""
        item = self._load(item_id, lock=True)
        new_min, new_multiple = self._validate_thresholds(
            item.min_stock if min_stock is None else min_stock,
            item.reorder_multiple if reorder_multiple is None else reorder_multiple,
        )
        item.min_stock = new_min
        item.reorder_multiple = new_multiple
        item.updated_at = self.clock.now()
        self.session.flush()
        logger.info(
            "item_thresholds_updated",
            extra={
                "item_id": str(item.id),
                "min_stock": new_min,
                "reorder_multiple": new_multiple,
            },
        )
        return item.to_dto()

    def soft_delete(self, item_id: UUID) -> None:
        """Mark the item deleted.  Deleting an already-deleted item is a no-op."""
        item = self._load(item_id, lock=True, include_deleted=True)
        if item.deleted_at is not None:
            return
        now = self.clock.now()
        item.deleted_at = now
        item.updated_at = now
        self.session.flush()
        logger.info("item_soft_deleted", extra={"item_id": str(item.id)})

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_item(self, item_id: UUID, include_deleted: bool = False) -> ItemInfo:
        return self._load(item_id, include_deleted=include_deleted).to_dto()

    def lock_item(self, item_id: UUID) -> ItemInfo:
        """
        Lock the live item row (``SELECT ... FOR UPDATE``) and return it.

        Every stock-changing operation takes this lock first, which
        serializes writers per item.
        """
        return self._load(item_id, lock=True).to_dto()

    def list_items(
        self,
        category: str | None = None,
        tracking_mode: TrackingMode | None = None,
        include_deleted: bool = False,
    ) -> list[ItemInfo]:
        stmt = select(InventoryItem)
        if not include_deleted:
            stmt = stmt.where(InventoryItem.deleted_at.is_(None))
        if category is not None:
            stmt = stmt.where(InventoryItem.category == category)
        if tracking_mode is not None:
            stmt = stmt.where(
                InventoryItem.tracking_mode == TrackingMode(tracking_mode).value
            )
        stmt = stmt.order_by(InventoryItem.name, InventoryItem.id)
        return [row.to_dto() for row in self.session.scalars(stmt)]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load(
        self,
        item_id: UUID,
        lock: bool = False,
        include_deleted: bool = False,
    ) -> InventoryItem:
        stmt = select(InventoryItem).where(InventoryItem.id == item_id)
        if lock:
            stmt = stmt.with_for_update()
        item = self.session.execute(
            stmt.execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if item is None or (item.deleted_at is not None and not include_deleted):
            raise ItemNotFoundError(str(item_id))
        return item

    def _validate_category(self, category: str) -> str:
        value = validation.required_text("category", category, max_length=50)
        if value not in self.categories:
            raise ValidationError(
                "category", f"must be one of {sorted(self.categories)}"
            )
        return value

    @staticmethod
    def _validate_thresholds(min_stock, reorder_multiple) -> tuple[Decimal, Decimal]:
        return (
            validation.non_negative_quantity("min_stock", min_stock),
            validation.positive_quantity("reorder_multiple", reorder_multiple),
        )

    def _check_unique_identifier(self, field: str, value: str | None) -> None:
        if value is None:
            return
        column = getattr(InventoryItem, field)
        existing = self.session.execute(
            select(InventoryItem.id).where(
                column == value,
                InventoryItem.deleted_at.is_(None),
            )
        ).first()
        if existing is not None:
            raise ConstraintViolationError(
                f"item_{field}_unique",
                f"{field} {value!r} is already used by item {existing[0]}",
            )
