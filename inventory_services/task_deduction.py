"""
TaskDeductionService -- consume several items for one task, all or nothing.

Responsibility:
    Resolve a task's deduction map to per-item quantities, plan every
    item's FEFO consumption, and append all resulting movements as one
    ledger operation.  A retried task (same idempotency key, or same task
    and quantities) returns the original result.

Architecture position:
    Services -- orchestration over inventory_engines.deduction and the
    AllocationEngine's per-item drafting.  Runs inside the caller's
    transaction; InventoryService supplies it and holds the in-process
    locks of every item in sorted id order.

Invariants enforced:
    - Atomic across items: either every item is consumed or nothing is
      written.
    - Item rows are locked in ascending id order, so two deductions over
      overlapping items cannot deadlock.
    - Every short item is reported, not just the first one found.

Failure modes:
    - ValidationError: empty or malformed deduction map.
    - DeductionShortfallError: at least one item cannot be covered; carries
      per-item shortages with recovery options.
    - IdempotencyConflictError: the key was used for a different deduction.
"""

from __future__ import annotations

import time
from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from inventory_engines.deduction import (
    DeductionEntry,
    RecoveryOption,
    recovery_options,
    resolve_quantities,
)
from inventory_kernel.domain import validation
from inventory_kernel.domain.dtos import MovementDraft, MovementRecord, MovementType
from inventory_kernel.exceptions import (
    DeductionShortfallError,
    ExpiredBatchBlockedError,
    IdempotencyConflictError,
    InsufficientStockError,
    ValidationError,
)
from inventory_kernel.logging_config import LogContext, get_logger
from inventory_kernel.utils.idempotency import (
    MAX_KEY_LENGTH,
    deduction_idempotency_key,
    movement_external_key,
)
from inventory_services.allocation_engine import (
    AllocationEngine,
    AllocationResult,
    with_external_keys,
)

logger = get_logger("services.task_deduction")

ZERO = Decimal("0")


@dataclass(frozen=True)
class ItemShortage:
    """One item a deduction could not cover."""

    item_id: UUID
    item_name: str
    unit_of_measure: str
    required: Decimal
    available: Decimal
    expired_available: Decimal
    blocked_by_expiry: bool
    recovery_options: tuple[RecoveryOption, ...]

    @property
    def shortfall(self) -> Decimal:
        return self.required - self.available


@dataclass(frozen=True)
class DeductionResult:
    """Outcome of a task deduction; ``items`` follow ascending item id."""

    task_id: str | None
    operation_id: UUID
    idempotency_key: str | None
    items: tuple[AllocationResult, ...]
    is_replay: bool = False

    @property
    def total_cost_minor(self) -> Decimal:
        return sum((item.total_cost_minor for item in self.items), ZERO)


def resolve_deduction(
    entries: Iterable[DeductionEntry],
    plant_count: int | None = None,
) -> dict[UUID, Decimal]:
    """Per-item quantities of a deduction map, as validated Decimals."""
    try:
        resolved = resolve_quantities(list(entries), plant_count=plant_count)
    except ValueError as exc:
        raise ValidationError("entries", str(exc)) from exc
    return {
        item_id: validation.positive_quantity("quantity", quantity)
        for item_id, quantity in resolved.items()
    }


class TaskDeductionService:
    """Multi-item consumption for a task."""

    def __init__(self, session: Session, allocation: AllocationEngine):
        self.session = session
        self.allocation = allocation
        self.catalog = allocation.catalog
        self.ledger = allocation.ledger

    def deduct(
        self,
        entries: Iterable[DeductionEntry],
        reason: str = "task deduction",
        task_id: str | None = None,
        plant_count: int | None = None,
        allow_expired: bool = False,
        override_reason: str | None = None,
        idempotency_key: str | None = None,
    ) -> DeductionResult:
        reason = validation.required_text("reason", reason)
        task_id = validation.optional_text("task_id", task_id, max_length=100)
        override_reason = validation.optional_text(
            "override_reason", override_reason, max_length=2000
        )
        if allow_expired and override_reason is None:
            raise ValidationError(
                "override_reason", "is required when allow_expired is set"
            )
        entries = list(entries)
        quantities = resolve_deduction(entries, plant_count)
        if idempotency_key is None and task_id is not None:
            idempotency_key = deduction_idempotency_key(task_id, quantities.items())
        idempotency_key = validation.optional_text(
            "idempotency_key", idempotency_key, max_length=MAX_KEY_LENGTH
        )
        labels: dict[UUID, str] = {}
        for entry in entries:
            if entry.label and entry.item_id not in labels:
                labels[entry.item_id] = entry.label

        t0 = time.monotonic()
        with LogContext.bind(idempotency_key=idempotency_key, task_id=task_id):
            logger.info(
                "deduction_started",
                extra={"item_count": len(quantities), "plant_count": plant_count},
            )
            replay = self._replay(task_id, quantities, idempotency_key)
            if replay is not None:
                return replay

            item_ids = sorted(quantities, key=str)
            items = [self.catalog.lock_item(item_id) for item_id in item_ids]

            replay = self._replay(task_id, quantities, idempotency_key)
            if replay is not None:
                return replay

            drafts: list[MovementDraft] = []
            lot_numbers: dict[UUID, str] = {}
            shortages: list[ItemShortage] = []
            for item in items:
                required = quantities[item.id]
                line_reason = (
                    f"{reason}: {labels[item.id]}" if item.id in labels else reason
                )
                try:
                    drafted = self.allocation.draft_consumption(
                        item,
                        required,
                        line_reason,
                        allow_expired=allow_expired,
                        override_reason=override_reason,
                        task_id=task_id,
                    )
                except InsufficientStockError as exc:
                    shortages.append(
                        _shortage(item, required, exc.available, exc.expired_available, False)
                    )
                    continue
                except ExpiredBatchBlockedError as exc:
                    expired = exc.expired_available or ZERO
                    available = self.allocation.projector.on_hand_quantity(item.id) - expired
                    shortages.append(_shortage(item, required, available, expired, True))
                    continue
                drafts.extend(drafted.drafts)
                lot_numbers.update(drafted.lot_numbers)

            if shortages:
                logger.warning(
                    "deduction_short",
                    extra={
                        "short_items": [
                            {"item_id": str(s.item_id), "shortfall": s.shortfall}
                            for s in shortages
                        ],
                    },
                )
                raise DeductionShortfallError(task_id, shortages)

            appended = self.ledger.append(with_external_keys(drafts, idempotency_key))
            if appended.is_duplicate:
                return self._verified_replay(
                    task_id, quantities, idempotency_key, appended.movements
                )

            result = _result(
                task_id, idempotency_key, appended.movements, lot_numbers, is_replay=False
            )
            logger.info(
                "deduction_completed",
                extra={
                    "operation_id": str(result.operation_id),
                    "item_count": len(result.items),
                    "total_cost_minor": result.total_cost_minor,
                    "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                },
            )
            return result

    def _replay(
        self,
        task_id: str | None,
        quantities: dict[UUID, Decimal],
        idempotency_key: str | None,
    ) -> DeductionResult | None:
        if idempotency_key is None:
            return None
        first = self.ledger.find_by_external_key(movement_external_key(idempotency_key, 0))
        if first is None:
            return None
        movements = self.ledger.movements_for_operation(first.operation_id)
        return self._verified_replay(task_id, quantities, idempotency_key, movements)

    def _verified_replay(
        self,
        task_id: str | None,
        quantities: dict[UUID, Decimal],
        idempotency_key: str | None,
        movements: tuple[MovementRecord, ...],
    ) -> DeductionResult:
        recorded: dict[UUID, Decimal] = {}
        for m in movements:
            recorded[m.item_id] = recorded.get(m.item_id, ZERO) - m.quantity_delta
        if (
            any(m.movement_type != MovementType.CONSUMPTION for m in movements)
            or recorded != quantities
        ):
            raise IdempotencyConflictError(
                idempotency_key or "",
                "key is already recorded for a different deduction",
            )
        logger.info(
            "deduction_replayed",
            extra={"operation_id": str(movements[0].operation_id)},
        )
        return _result(
            task_id,
            idempotency_key,
            movements,
            self.allocation.lot_numbers_for(movements),
            is_replay=True,
        )


def _shortage(item, required, available, expired_available, blocked) -> ItemShortage:
    available = max(available, ZERO)
    return ItemShortage(
        item_id=item.id,
        item_name=item.name,
        unit_of_measure=item.unit_of_measure,
        required=required,
        available=available,
        expired_available=expired_available,
        blocked_by_expiry=blocked,
        recovery_options=recovery_options(required, available),
    )


def _result(
    task_id: str | None,
    idempotency_key: str | None,
    movements: tuple[MovementRecord, ...],
    lot_numbers: dict[UUID, str],
    is_replay: bool,
) -> DeductionResult:
    by_item: dict[UUID, list[MovementRecord]] = {}
    for m in movements:
        by_item.setdefault(m.item_id, []).append(m)
    items = tuple(
        AllocationResult.from_movements(
            item_id, tuple(by_item[item_id]), lot_numbers, is_replay=is_replay
        )
        for item_id in sorted(by_item, key=str)
    )
    return DeductionResult(
        task_id=task_id,
        operation_id=movements[0].operation_id,
        idempotency_key=idempotency_key,
        items=items,
        is_replay=is_replay,
    )
