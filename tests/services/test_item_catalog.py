"""
Tests for ItemCatalog.

Covers creation and validation, sku/barcode uniqueness among live items,
threshold updates, soft delete and listing.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from inventory_kernel.domain.dtos import TrackingMode
from inventory_kernel.exceptions import (
    ConstraintViolationError,
    InvalidQuantityError,
    ItemNotFoundError,
    ValidationError,
)
from inventory_kernel.services.item_catalog import ItemCatalog


class TestCreateItem:
    def test_create_and_get(self, catalog, item_spec):
        item = catalog.create_item(
            item_spec(name="Bloom A", min_stock=Decimal("2"), sku="BA-1")
        )

        fetched = catalog.get_item(item.id)
        assert fetched.name == "Bloom A"
        assert fetched.tracking_mode == TrackingMode.BATCHED
        assert fetched.min_stock == Decimal("2")
        assert fetched.reorder_multiple == Decimal("1")
        assert fetched.sku == "BA-1"
        assert not fetched.is_deleted

    def test_unknown_category(self, catalog, item_spec):
        with pytest.raises(ValidationError) as exc_info:
            catalog.create_item(item_spec(category="Snacks"))
        assert exc_info.value.field == "category"

    def test_custom_categories(self, session, deterministic_clock, item_spec):
        custom = ItemCatalog(session, deterministic_clock, categories=["Snacks"])

        assert custom.create_item(item_spec(category="Snacks")).category == "Snacks"

    @pytest.mark.parametrize(
        "field, value",
        [("min_stock", Decimal("-1")), ("reorder_multiple", Decimal("0")), ("lead_time_days", -3)],
    )
    def test_rejects_bad_thresholds(self, catalog, item_spec, field, value):
        with pytest.raises(InvalidQuantityError):
            catalog.create_item(item_spec(**{field: value}))

    def test_rejects_blank_name(self, catalog, item_spec):
        with pytest.raises(ValidationError):
            catalog.create_item(item_spec(name="   "))

    def test_rejects_unknown_tracking_mode(self, catalog, item_spec):
        with pytest.raises(ValidationError):
            catalog.create_item(item_spec(tracking_mode="fifo"))


class TestIdentifierUniqueness:
    def test_duplicate_live_sku(self, catalog, item_spec):
        catalog.create_item(item_spec(sku="SKU-1"))

        with pytest.raises(ConstraintViolationError) as exc_info:
            catalog.create_item(item_spec(sku="SKU-1"))
        assert exc_info.value.constraint == "item_sku_unique"

    def test_duplicate_barcode(self, catalog, item_spec):
        catalog.create_item(item_spec(barcode="0123"))

        with pytest.raises(ConstraintViolationError):
            catalog.create_item(item_spec(barcode="0123"))

    def test_sku_reusable_after_soft_delete(self, catalog, item_spec):
        first = catalog.create_item(item_spec(sku="SKU-2"))
        catalog.soft_delete(first.id)

        second = catalog.create_item(item_spec(sku="SKU-2"))
        assert second.id != first.id


class TestThresholds:
    def test_update_keeps_unspecified_values(self, catalog, item_spec):
        item = catalog.create_item(item_spec(min_stock=Decimal("5"), reorder_multiple=Decimal("2")))

        updated = catalog.update_thresholds(item.id, min_stock=Decimal("8"))

        assert updated.min_stock == Decimal("8")
        assert updated.reorder_multiple == Decimal("2")

    def test_update_validates(self, catalog, item_spec):
        item = catalog.create_item(item_spec())

        with pytest.raises(InvalidQuantityError):
            catalog.update_thresholds(item.id, reorder_multiple=Decimal("-1"))


class TestSoftDelete:
    def test_deleted_item_is_not_found(self, catalog, item_spec):
        item = catalog.create_item(item_spec())
        catalog.soft_delete(item.id)

        with pytest.raises(ItemNotFoundError):
            catalog.get_item(item.id)
        assert catalog.get_item(item.id, include_deleted=True).is_deleted

    def test_delete_twice_is_noop(self, catalog, item_spec):
        item = catalog.create_item(item_spec())
        catalog.soft_delete(item.id)
        catalog.soft_delete(item.id)

        assert catalog.get_item(item.id, include_deleted=True).is_deleted

    def test_unknown_item(self, catalog):
        with pytest.raises(ItemNotFoundError) as exc_info:
            catalog.soft_delete(uuid4())
        assert exc_info.value.code == "ITEM_NOT_FOUND"


class TestListItems:
    def test_filters(self, catalog, item_spec):
        seeds = catalog.create_item(item_spec(category="Seeds", tracking_mode=TrackingMode.SIMPLE))
        nutrient = catalog.create_item(item_spec(category="Nutrients"))
        gone = catalog.create_item(item_spec(category="Seeds"))
        catalog.soft_delete(gone.id)

        assert [i.id for i in catalog.list_items(category="Seeds")] == [seeds.id]
        assert [i.id for i in catalog.list_items(tracking_mode=TrackingMode.BATCHED)] == [nutrient.id]
        assert {i.id for i in catalog.list_items(include_deleted=True)} == {
            seeds.id, nutrient.id, gone.id,
        }
