"""
Tests for the ledger folds behind stock projection.

Stock is never stored; it is Σ quantity_delta, and valuation is
Σ quantity_delta × frozen cost, rounded once.
"""

from datetime import UTC, datetime
from decimal import Decimal
from uuid import uuid4

from inventory_kernel.domain.dtos import MovementRecord, MovementType
from inventory_kernel.domain.ledger_fold import fold_movements, on_hand_quantity, valuation_minor

NOW = datetime(2024, 1, 1, tzinfo=UTC)
ITEM = uuid4()


def movement(movement_type, delta, batch_id=None, cost=None, seq=1):
    return MovementRecord(
        id=uuid4(),
        item_id=ITEM,
        batch_id=batch_id,
        movement_type=movement_type,
        quantity_delta=Decimal(delta),
        cost_per_unit_minor=cost,
        reason="test",
        task_id=None,
        external_key=None,
        override_reason=None,
        operation_id=uuid4(),
        seq=seq,
        created_at=NOW,
    )


class TestLedgerFold:
    def test_receipt_then_consumption(self):
        batch_id = uuid4()
        movements = [
            movement(MovementType.RECEIPT, "10", batch_id, 1000, seq=1),
            movement(MovementType.CONSUMPTION, "-4", batch_id, 1000, seq=2),
        ]

        totals = fold_movements(movements)

        assert totals.on_hand == Decimal("6")
        assert totals.valuation_minor == 6000
        assert totals.batch_remaining == {batch_id: Decimal("6")}
        assert totals.movement_count == 2

    def test_adjustments_are_valued_at_batch_cost(self):
        batch_id = uuid4()
        movements = [
            movement(MovementType.RECEIPT, "10", batch_id, 500, seq=1),
            movement(MovementType.ADJUSTMENT, "-1", batch_id, 500, seq=2),
        ]

        totals = fold_movements(movements)

        assert totals.on_hand == Decimal("9")
        assert totals.valuation_minor == 4500
        assert totals.batch_remaining[batch_id] == Decimal("9")

    def test_write_off_leaves_no_value(self):
        batch_id = uuid4()
        movements = [
            movement(MovementType.RECEIPT, "10", batch_id, 100, seq=1),
            movement(MovementType.ADJUSTMENT, "-10", batch_id, 100, seq=2),
        ]

        totals = fold_movements(movements)

        assert totals.on_hand == Decimal("0")
        assert totals.valuation_minor == 0

    def test_valuation_uses_each_movements_own_cost(self):
        a, b = uuid4(), uuid4()
        movements = [
            movement(MovementType.RECEIPT, "5", a, 1000, seq=1),
            movement(MovementType.RECEIPT, "5", b, 1200, seq=2),
            movement(MovementType.CONSUMPTION, "-5", a, 1000, seq=3),
        ]

        assert valuation_minor(movements) == 6000

    def test_integer_precision(self):
        movements = [movement(MovementType.RECEIPT, "5", uuid4(), 1099)]

        assert valuation_minor(movements) == 5495

    def test_fractional_value_rounded_once(self):
        batch_id = uuid4()
        movements = [
            movement(MovementType.RECEIPT, "0.3", batch_id, 5, seq=1),
            movement(MovementType.RECEIPT, "0.3", uuid4(), 5, seq=2),
        ]

        # 1.5 + 1.5 = 3.0; rounding each line first would give 4
        assert valuation_minor(movements) == 3

    def test_simple_item_movements(self):
        movements = [
            movement(MovementType.RECEIPT, "3"),
            movement(MovementType.CONSUMPTION, "-1"),
        ]

        totals = fold_movements(movements)

        assert on_hand_quantity(movements) == Decimal("2")
        assert totals.valuation_minor == 0
        assert totals.batch_remaining == {}

    def test_empty_ledger(self):
        totals = fold_movements([])

        assert totals.on_hand == Decimal("0")
        assert totals.valuation_minor == 0
        assert totals.movement_count == 0
