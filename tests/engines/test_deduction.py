"""Tests for task deduction quantities and recovery options."""

from decimal import Decimal
from uuid import uuid4

import pytest

from inventory_engines.deduction import (
    DeductionEntry,
    RecoveryAction,
    ScalingMode,
    recovery_options,
    resolve_quantities,
    scaled_quantity,
)


class TestScaledQuantity:
    def test_fixed_ignores_plant_count(self):
        entry = DeductionEntry(uuid4(), per_task_quantity=Decimal("2.5"))

        assert scaled_quantity(entry, plant_count=40) == Decimal("2.5")
        assert scaled_quantity(entry) == Decimal("2.5")

    def test_per_plant_multiplies(self):
        entry = DeductionEntry(
            uuid4(), per_plant_quantity=Decimal("0.25"), scaling_mode=ScalingMode.PER_PLANT
        )

        assert scaled_quantity(entry, plant_count=12) == Decimal("3.00")

    def test_mode_given_as_text(self):
        entry = DeductionEntry(uuid4(), per_plant_quantity=Decimal("1"), scaling_mode="per_plant")

        assert scaled_quantity(entry, plant_count=3) == Decimal("3")

    @pytest.mark.parametrize("quantity", [None, Decimal("0"), Decimal("-1")])
    def test_fixed_needs_positive_quantity(self, quantity):
        with pytest.raises(ValueError, match="per_task_quantity"):
            scaled_quantity(DeductionEntry(uuid4(), per_task_quantity=quantity))

    @pytest.mark.parametrize("plant_count", [None, 0, -2])
    def test_per_plant_needs_plant_count(self, plant_count):
        entry = DeductionEntry(
            uuid4(), per_plant_quantity=Decimal("1"), scaling_mode=ScalingMode.PER_PLANT
        )

        with pytest.raises(ValueError, match="plant count"):
            scaled_quantity(entry, plant_count=plant_count)

    def test_per_plant_needs_per_plant_quantity(self):
        entry = DeductionEntry(
            uuid4(), per_task_quantity=Decimal("1"), scaling_mode=ScalingMode.PER_PLANT
        )

        with pytest.raises(ValueError, match="per_plant_quantity"):
            scaled_quantity(entry, plant_count=4)

    def test_unknown_mode(self):
        with pytest.raises(ValueError):
            scaled_quantity(
                DeductionEntry(uuid4(), per_task_quantity=Decimal("1"), scaling_mode="ec_based")
            )


class TestResolveQuantities:
    def test_mixed_modes(self):
        nutrient, seed = uuid4(), uuid4()
        resolved = resolve_quantities(
            [
                DeductionEntry(nutrient, per_task_quantity=Decimal("1.5")),
                DeductionEntry(
                    seed, per_plant_quantity=Decimal("2"), scaling_mode=ScalingMode.PER_PLANT
                ),
            ],
            plant_count=10,
        )

        assert resolved == {nutrient: Decimal("1.5"), seed: Decimal("20")}

    def test_repeated_item_is_merged(self):
        item = uuid4()
        resolved = resolve_quantities(
            [
                DeductionEntry(item, per_task_quantity=Decimal("1")),
                DeductionEntry(
                    item, per_plant_quantity=Decimal("0.5"), scaling_mode=ScalingMode.PER_PLANT
                ),
            ],
            plant_count=4,
        )

        assert resolved == {item: Decimal("3.0")}

    def test_empty_map_rejected(self):
        with pytest.raises(ValueError, match="at least one entry"):
            resolve_quantities([], plant_count=None)


class TestRecoveryOptions:
    def test_order_and_quantities(self):
        options = recovery_options(Decimal("10"), Decimal("4"))

        assert [o.action for o in options] == [
            RecoveryAction.PARTIAL,
            RecoveryAction.SKIP,
            RecoveryAction.ADJUST,
        ]
        assert options[0].quantity == Decimal("4")
        assert options[1].quantity is None
        assert options[2].quantity == Decimal("6")

    def test_descriptions_use_plain_numbers(self):
        partial, _, adjust = recovery_options(Decimal("2.500"), Decimal("1.000"))

        assert partial.description == "Use the available 1 and record a shortage of 1.5"
        assert adjust.description == "Receive at least 1.5 more, then retry"

    def test_negative_availability_treated_as_none(self):
        partial, _, adjust = recovery_options(Decimal("3"), Decimal("-1"))

        assert partial.quantity == Decimal("0")
        assert adjust.quantity == Decimal("3")
