"""Tests for consumption cost aggregation."""

from dataclasses import replace
from datetime import UTC, date, datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from inventory_engines.cost_summary import (
    Bucket,
    period_label,
    period_start,
    summarize_by,
    summarize_consumption,
    summarize_series,
)
from inventory_kernel.domain.dtos import MovementRecord, MovementType

NOW = datetime(2024, 1, 1, tzinfo=UTC)


def consumption(item_id, quantity, cost, task_id=None, seq=1):
    return MovementRecord(
        id=uuid4(),
        item_id=item_id,
        batch_id=uuid4() if cost is not None else None,
        movement_type=MovementType.CONSUMPTION,
        quantity_delta=-Decimal(quantity),
        cost_per_unit_minor=cost,
        reason="feed",
        task_id=task_id,
        external_key=None,
        override_reason=None,
        operation_id=uuid4(),
        seq=seq,
        created_at=NOW,
    )


class TestSummarizeConsumption:
    def test_totals(self):
        item = uuid4()
        summary = summarize_consumption(
            [consumption(item, 5, 1000), consumption(item, 7, 1500)]
        )

        assert summary.total_quantity == Decimal("12")
        assert summary.total_cost_minor == 15500
        assert summary.movement_count == 2
        assert summary.average_cost_per_unit_minor == 1292  # 15500 / 12 = 1291.67

    def test_integer_precision(self):
        summary = summarize_consumption([consumption(uuid4(), 5, 1099)])

        assert summary.total_cost_minor == 5495

    def test_fractional_cost_rounds_half_up_once(self):
        item = uuid4()
        summary = summarize_consumption(
            [consumption(item, "0.5", 1), consumption(item, "0.5", 2)]
        )

        assert summary.total_cost_minor_exact == Decimal("1.5")
        assert summary.total_cost_minor == 2

    def test_uncosted_movements_count_quantity_only(self):
        summary = summarize_consumption([consumption(uuid4(), 3, None)])

        assert summary.total_quantity == Decimal("3")
        assert summary.total_cost_minor == 0
        assert summary.average_cost_per_unit_minor == 0

    def test_empty(self):
        summary = summarize_consumption([])

        assert summary.movement_count == 0
        assert summary.average_cost_per_unit_minor == 0


class TestSummarizeBy:
    def test_groups_by_key(self):
        a, b = uuid4(), uuid4()
        grouped = summarize_by(
            [consumption(a, 1, 100), consumption(b, 2, 50), consumption(a, 3, 100)],
            lambda m: m.item_id,
        )

        assert grouped[a].total_quantity == Decimal("4")
        assert grouped[a].total_cost_minor == 400
        assert grouped[b].total_cost_minor == 100


def at(movement, moment):
    return replace(movement, created_at=moment)


class TestPeriods:
    @pytest.mark.parametrize(
        ("moment", "expected"),
        [
            (datetime(2024, 1, 1, tzinfo=UTC), date(2024, 1, 1)),
            (datetime(2024, 1, 7, 23, 59, tzinfo=UTC), date(2024, 1, 1)),
            (datetime(2024, 1, 8, tzinfo=UTC), date(2024, 1, 8)),
            (datetime(2024, 3, 1, tzinfo=UTC), date(2024, 2, 26)),
        ],
    )
    def test_week_starts_monday(self, moment, expected):
        assert period_start(moment, Bucket.WEEK) == expected

    def test_month_start(self):
        assert period_start(datetime(2024, 2, 29, 18, tzinfo=UTC), Bucket.MONTH) == date(
            2024, 2, 1
        )

    def test_offset_times_are_bucketed_in_utc(self):
        # Monday 01:00 at UTC+02:00 is still Sunday in UTC
        moment = datetime(2024, 1, 8, 1, tzinfo=timezone(timedelta(hours=2)))

        assert period_start(moment, Bucket.WEEK) == date(2024, 1, 1)

    def test_labels(self):
        assert period_label(date(2024, 1, 1), Bucket.WEEK) == "W1"
        assert period_label(date(2024, 12, 30), Bucket.WEEK) == "W1"
        assert period_label(date(2024, 3, 1), Bucket.MONTH) == "Mar"
        assert period_label(date(2024, 3, 1), "month") == "Mar"


class TestSummarizeSeries:
    def test_groups_then_buckets_in_order(self):
        a, b = uuid4(), uuid4()
        movements = [
            at(consumption(a, 1, 100), datetime(2024, 1, 15, tzinfo=UTC)),
            at(consumption(a, 2, 100), datetime(2024, 1, 2, tzinfo=UTC)),
            at(consumption(a, 3, 100), datetime(2024, 1, 3, tzinfo=UTC)),
            at(consumption(b, 1, 50), datetime(2024, 1, 16, tzinfo=UTC)),
        ]

        series = summarize_series(movements, lambda m: m.item_id, bucket=Bucket.WEEK)

        assert list(series[a]) == [date(2024, 1, 1), date(2024, 1, 15)]
        assert series[a][date(2024, 1, 1)].total_quantity == Decimal("5")
        assert series[a][date(2024, 1, 1)].movement_count == 2
        assert series[a][date(2024, 1, 15)].total_cost_minor == 100
        assert list(series[b]) == [date(2024, 1, 15)]

    def test_monthly(self):
        item = uuid4()
        movements = [
            at(consumption(item, 1, 100), datetime(2024, 2, 10, tzinfo=UTC)),
            at(consumption(item, 1, 300), datetime(2024, 1, 31, tzinfo=UTC)),
        ]

        series = summarize_series(movements, lambda m: "all", bucket=Bucket.MONTH)

        assert [(start, s.total_cost_minor) for start, s in series["all"].items()] == [
            (date(2024, 1, 1), 300),
            (date(2024, 2, 1), 100),
        ]

    def test_empty(self):
        assert summarize_series([], lambda m: m.item_id, bucket=Bucket.WEEK) == {}
