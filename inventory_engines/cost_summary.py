"""
Consumption cost aggregation -- pure folds over consumption movements.

Responsibility:
    Summarize what was consumed and what it cost, per item, per category
    or per triggering task.  Inputs are consumption MovementRecords; each
    contributes |quantity_delta| and |quantity_delta| × cost snapshot.

Invariants enforced:
    - Exact Decimal sums of quantity × integer cost; a single rounding step
      when an integer is requested (total_cost_minor, average).
    - Movements without a cost snapshot (simple items) count toward
      quantity and movement_count with zero cost.
    - Time buckets start on the ISO week's Monday or the month's first day,
      taken from the movement's UTC timestamp.
"""

from __future__ import annotations

from collections.abc import Callable, Hashable, Iterable
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from decimal import Decimal
from enum import Enum

from inventory_engines.tracer import traced_engine
from inventory_kernel.db.types import round_minor
from inventory_kernel.domain.dtos import MovementRecord

ZERO = Decimal("0")


@dataclass(frozen=True)
class CostSummary:
    """Consumed quantity and cost for one grouping key."""

    total_quantity: Decimal
    total_cost_minor_exact: Decimal
    movement_count: int

    @property
    def total_cost_minor(self) -> int:
        return round_minor(self.total_cost_minor_exact)

    @property
    def average_cost_per_unit_minor(self) -> int:
        if self.total_quantity == ZERO:
            return 0
        return round_minor(self.total_cost_minor_exact / self.total_quantity)


EMPTY_SUMMARY = CostSummary(ZERO, ZERO, 0)


def summarize_consumption(movements: Iterable[MovementRecord]) -> CostSummary:
    quantity = ZERO
    cost = ZERO
    count = 0
    for movement in movements:
        consumed = abs(movement.quantity_delta)
        quantity += consumed
        cost += consumed * (movement.cost_per_unit_minor or 0)
        count += 1
    return CostSummary(quantity, cost, count)


@traced_engine("cost_summary", "1.0")
def summarize_by(
    movements: Iterable[MovementRecord],
    key: Callable[[MovementRecord], Hashable],
) -> dict[Hashable, CostSummary]:
    """Group movements by ``key`` and summarize each group."""
    groups: dict[Hashable, list[MovementRecord]] = {}
    for movement in movements:
        groups.setdefault(key(movement), []).append(movement)
    return {k: summarize_consumption(group) for k, group in groups.items()}


class Bucket(str, Enum):
    WEEK = "week"
    MONTH = "month"


def period_start(moment: datetime, bucket: Bucket) -> date:
    """First day of the week (Monday) or month containing ``moment``."""
    if moment.tzinfo is not None:
        moment = moment.astimezone(UTC)
    day = moment.date()
    if Bucket(bucket) == Bucket.WEEK:
        return day - timedelta(days=day.weekday())
    return day.replace(day=1)


def period_label(start: date, bucket: Bucket) -> str:
    """``W<iso week>`` for weeks, abbreviated month name for months."""
    if Bucket(bucket) == Bucket.WEEK:
        return f"W{start.isocalendar().week}"
    return start.strftime("%b")


@traced_engine("cost_series", "1.0", fingerprint_fields=("bucket",))
def summarize_series(
    movements: Iterable[MovementRecord],
    group: Callable[[MovementRecord], Hashable],
    *,
    bucket: Bucket,
) -> dict[Hashable, dict[date, CostSummary]]:
    """Summaries per group and period start, periods in ascending order."""
    grouped: dict[Hashable, dict[date, list[MovementRecord]]] = {}
    for movement in movements:
        start = period_start(movement.created_at, bucket)
        grouped.setdefault(group(movement), {}).setdefault(start, []).append(movement)
    return {
        key: {start: summarize_consumption(periods[start]) for start in sorted(periods)}
        for key, periods in grouped.items()
    }
