"""Tests for clocks and idempotency key helpers."""

from datetime import UTC, date, datetime
from decimal import Decimal
from uuid import uuid4

from inventory_kernel.domain.clock import DeterministicClock
from inventory_kernel.utils.idempotency import (
    deduction_idempotency_key,
    movement_external_key,
    task_idempotency_key,
)


class TestDeterministicClock:
    def test_default_time(self):
        clock = DeterministicClock()

        assert clock.now() == datetime(2024, 1, 1, 12, tzinfo=UTC)
        assert clock.today() == date(2024, 1, 1)

    def test_advance_days_changes_today(self):
        clock = DeterministicClock()
        clock.advance_days(31)

        assert clock.today() == date(2024, 2, 1)


class TestIdempotencyKeys:
    def test_movement_key(self):
        assert movement_external_key("req:42", 3) == "req:42:3"

    def test_task_key_is_stable_across_representations(self):
        item = uuid4()

        assert task_idempotency_key("t1", item, Decimal("5")) == task_idempotency_key(
            "t1", item, Decimal("5.000000000")
        )

    def test_task_key_differs_by_quantity(self):
        item = uuid4()

        assert task_idempotency_key("t1", item, Decimal("5")) != task_idempotency_key(
            "t1", item, Decimal("6")
        )

    def test_deduction_key_ignores_line_order(self):
        a, b = uuid4(), uuid4()

        forward = deduction_idempotency_key("t1", [(a, Decimal("2")), (b, Decimal("3"))])
        backward = deduction_idempotency_key("t1", [(b, Decimal("3.0")), (a, Decimal("2"))])

        assert forward == backward
        assert forward.startswith("deduction:t1:")

    def test_deduction_key_differs_by_quantity(self):
        a = uuid4()

        assert deduction_idempotency_key("t1", [(a, Decimal("2"))]) != (
            deduction_idempotency_key("t1", [(a, Decimal("4"))])
        )
