"""
CostAnalysisService -- what consumption cost, by item, category and task.

Reads consumption movements (whose cost snapshots were frozen at
allocation time) and aggregates them with inventory_engines.cost_summary,
either as totals or as a weekly or monthly series per category.
Read-only; never revalues history at current batch costs.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from inventory_engines.cost_summary import (
    EMPTY_SUMMARY,
    Bucket,
    period_label,
    summarize_by,
    summarize_consumption,
    summarize_series,
)
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import MovementType
from inventory_kernel.exceptions import ValidationError
from inventory_kernel.logging_config import get_logger
from inventory_kernel.selectors.movement_selector import MovementSelector
from inventory_kernel.services.item_catalog import ItemCatalog

logger = get_logger("services.cost_analysis")


@dataclass(frozen=True)
class ItemCostSummary:
    item_id: UUID
    item_name: str
    category: str
    total_quantity: Decimal
    total_cost_minor: int
    average_cost_per_unit_minor: int
    movement_count: int


@dataclass(frozen=True)
class CategoryCostSummary:
    category: str
    total_quantity: Decimal
    total_cost_minor: int
    movement_count: int
    item_count: int


@dataclass(frozen=True)
class CostDataPoint:
    """Consumption of one category within one week or month."""

    period_start: date
    label: str
    total_quantity: Decimal
    total_cost_minor: int
    movement_count: int


@dataclass(frozen=True)
class CategoryCostSeries:
    category: str
    points: tuple[CostDataPoint, ...]


@dataclass(frozen=True)
class TaskItemCost:
    item_id: UUID
    item_name: str
    quantity: Decimal
    cost_minor: int


@dataclass(frozen=True)
class TaskCostSummary:
    task_id: str
    total_cost_minor: int
    movement_count: int
    items: tuple[TaskItemCost, ...]


class CostAnalysisService:
    """Consumption cost reporting."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        catalog: ItemCatalog | None = None,
        selector: MovementSelector | None = None,
    ):
        self.session = session
        self.clock = clock or SystemClock()
        self.catalog = catalog or ItemCatalog(session, self.clock)
        self.selector = selector or MovementSelector(session)

    def item_cost_summary(
        self,
        item_id: UUID,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> ItemCostSummary:
        """Consumed quantity and cost of one item in [start, end]."""
        _check_range(start, end)
        item = self.catalog.get_item(item_id, include_deleted=True)
        summary = summarize_consumption(
            self.selector.consumptions(start=start, end=end, item_ids=[item.id])
        )
        return ItemCostSummary(
            item_id=item.id,
            item_name=item.name,
            category=item.category,
            total_quantity=summary.total_quantity,
            total_cost_minor=summary.total_cost_minor,
            average_cost_per_unit_minor=summary.average_cost_per_unit_minor,
            movement_count=summary.movement_count,
        )

    def category_cost_summaries(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[CategoryCostSummary]:
        """
        Consumption cost per category, sorted by category name.

        Deleted items still count; their history is part of what was spent.
        """
        _check_range(start, end)
        items = {
            item.id: item for item in self.catalog.list_items(include_deleted=True)
        }
        movements = self.selector.consumptions(start=start, end=end)
        by_category = summarize_by(movements, lambda m: items[m.item_id].category)
        summaries = []
        for category in sorted(by_category):
            summary = by_category[category]
            summaries.append(
                CategoryCostSummary(
                    category=category,
                    total_quantity=summary.total_quantity,
                    total_cost_minor=summary.total_cost_minor,
                    movement_count=summary.movement_count,
                    item_count=len(
                        {m.item_id for m in movements if items[m.item_id].category == category}
                    ),
                )
            )
        logger.info(
            "category_cost_summaries_computed",
            extra={"category_count": len(summaries), "movement_count": len(movements)},
        )
        return summaries

    def cost_time_series(
        self,
        bucket: Bucket | str,
        start: datetime,
        end: datetime,
    ) -> list[CategoryCostSeries]:
        """
        Consumption cost per category bucketed by week or month.

        Only periods with consumption appear.  Categories are sorted by name
        and each series runs oldest period first.
        """
        try:
            bucket = Bucket(bucket)
        except ValueError as exc:
            raise ValidationError(
                "bucket", f"must be one of {[b.value for b in Bucket]}"
            ) from exc
        if start is None or end is None:
            raise ValidationError("start", "a cost series needs both start and end")
        _check_range(start, end)

        items = {
            item.id: item for item in self.catalog.list_items(include_deleted=True)
        }
        movements = self.selector.consumptions(start=start, end=end)
        series = summarize_series(
            movements, lambda m: items[m.item_id].category, bucket=bucket
        )
        result = [
            CategoryCostSeries(
                category=category,
                points=tuple(
                    CostDataPoint(
                        period_start=period,
                        label=period_label(period, bucket),
                        total_quantity=summary.total_quantity,
                        total_cost_minor=summary.total_cost_minor,
                        movement_count=summary.movement_count,
                    )
                    for period, summary in series[category].items()
                ),
            )
            for category in sorted(series)
        ]
        logger.info(
            "cost_time_series_computed",
            extra={
                "bucket": bucket.value,
                "category_count": len(result),
                "movement_count": len(movements),
            },
        )
        return result

    def task_cost_summary(self, task_id: str) -> TaskCostSummary:
        """What a task consumed, item by item."""
        movements = [
            m
            for m in self.selector.movements_for_task(task_id)
            if m.movement_type == MovementType.CONSUMPTION
        ]
        by_item = summarize_by(movements, lambda m: m.item_id) if movements else {}
        lines = []
        for item_id, summary in by_item.items():
            item = self.catalog.get_item(item_id, include_deleted=True)
            lines.append(
                TaskItemCost(
                    item_id=item_id,
                    item_name=item.name,
                    quantity=summary.total_quantity,
                    cost_minor=summary.total_cost_minor,
                )
            )
        lines.sort(key=lambda line: (line.item_name, str(line.item_id)))
        total = summarize_consumption(movements) if movements else EMPTY_SUMMARY
        return TaskCostSummary(
            task_id=task_id,
            total_cost_minor=total.total_cost_minor,
            movement_count=total.movement_count,
            items=tuple(lines),
        )


def _check_range(start: datetime | None, end: datetime | None) -> None:
    if start is not None and end is not None and start > end:
        raise ValidationError("start", "must not be after end")
