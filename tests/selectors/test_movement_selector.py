"""Tests for MovementSelector history and reporting queries."""

from datetime import timedelta
from decimal import Decimal

from inventory_kernel.domain.dtos import MovementDraft, MovementType, TrackingMode


def simple_draft(item, movement_type, delta, **kwargs):
    return MovementDraft(
        item_id=item.id,
        movement_type=movement_type,
        quantity_delta=Decimal(delta),
        reason="test",
        **kwargs,
    )


class TestMovementsForItem:
    def test_newest_first_with_type_filter(self, movement_selector, ledger, make_item):
        item = make_item(tracking_mode=TrackingMode.SIMPLE)
        ledger.append([simple_draft(item, MovementType.RECEIPT, "5")])
        ledger.append([simple_draft(item, MovementType.CONSUMPTION, "-1")])
        ledger.append([simple_draft(item, MovementType.CONSUMPTION, "-2")])

        history = movement_selector.movements_for_item(item.id)
        consumptions = movement_selector.movements_for_item(
            item.id, movement_type=MovementType.CONSUMPTION
        )

        assert [m.seq for m in history] == [3, 2, 1]
        assert [m.quantity_delta for m in consumptions] == [Decimal("-2"), Decimal("-1")]

    def test_time_window_and_paging(
        self, movement_selector, ledger, make_item, deterministic_clock
    ):
        item = make_item(tracking_mode=TrackingMode.SIMPLE)
        start = deterministic_clock.now()
        for _ in range(3):
            ledger.append([simple_draft(item, MovementType.RECEIPT, "1")])
            deterministic_clock.advance(60)

        window = movement_selector.movements_for_item(
            item.id, start=start + timedelta(seconds=30)
        )
        page = movement_selector.movements_for_item(item.id, limit=1, offset=1)

        assert [m.seq for m in window] == [3, 2]
        assert [m.seq for m in page] == [2]


class TestTaskAndKeyLookups:
    def test_movements_for_task_across_items(self, movement_selector, ledger, make_item):
        first = make_item(tracking_mode=TrackingMode.SIMPLE)
        second = make_item(tracking_mode=TrackingMode.SIMPLE)
        ledger.append([simple_draft(first, MovementType.RECEIPT, "5")])
        ledger.append([simple_draft(second, MovementType.RECEIPT, "5")])
        ledger.append(
            [
                simple_draft(first, MovementType.CONSUMPTION, "-1", task_id="t-1"),
                simple_draft(second, MovementType.CONSUMPTION, "-1", task_id="t-1"),
            ]
        )

        found = movement_selector.movements_for_task("t-1")

        assert {m.item_id for m in found} == {first.id, second.id}
        assert len({m.operation_id for m in found}) == 1

    def test_by_external_key(self, movement_selector, ledger, make_item):
        item = make_item(tracking_mode=TrackingMode.SIMPLE)
        appended = ledger.append(
            [simple_draft(item, MovementType.RECEIPT, "1", external_key="k:0")]
        )

        assert movement_selector.by_external_key("k:0") == appended.movements[0]
        assert movement_selector.by_external_key("missing") is None


class TestConsumptions:
    def test_only_consumptions_for_requested_items(
        self, movement_selector, ledger, make_item
    ):
        wanted = make_item(tracking_mode=TrackingMode.SIMPLE)
        other = make_item(tracking_mode=TrackingMode.SIMPLE)
        for item in (wanted, other):
            ledger.append([simple_draft(item, MovementType.RECEIPT, "5")])
            ledger.append([simple_draft(item, MovementType.CONSUMPTION, "-1")])

        found = movement_selector.consumptions(item_ids=[wanted.id])

        assert [(m.item_id, m.movement_type) for m in found] == [
            (wanted.id, MovementType.CONSUMPTION)
        ]
