"""
AllocationEngine -- turn a consumption request into ledger movements.

Responsibility:
    Resolve which batches satisfy a consumption (FEFO, greedy split),
    enforce the expiry policy, copy each batch's unit cost onto its
    movement, and append everything atomically.  Replays of an idempotency
    key return the originally committed result.

Architecture position:
    Services -- orchestration over the pure FEFO engine
    (inventory_engines.allocation) and the kernel services.  Runs inside
    the caller's transaction; InventoryService supplies the transaction and
    the per-item lock.

Invariants enforced:
    - All-or-nothing: a request that cannot be fully satisfied writes
      nothing and raises.
    - Expired batches are excluded unless allow_expired is set with a
      non-empty override_reason.  With the override every batch is walked
      in FEFO order, and lines drawn from expired batches record the reason.
    - Each consumption movement carries its batch's cost_per_unit_minor as
      it was at allocation time.
    - Batch decrements happen in the same SAVEPOINT as the ledger append.
    - Simple items: one movement, no batch, no cost; on-hand must cover it.

Failure modes:
    - InvalidQuantityError / ValidationError: bad quantity or empty reason.
    - ItemNotFoundError: unknown or deleted item.
    - InsufficientStockError: usable stock < requested (carries shortfall).
    - ExpiredBatchBlockedError: only expired stock could cover the request,
      or an override lacks its reason.
    - IdempotencyConflictError: the key was used for a different request.
"""

from __future__ import annotations

import time
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from inventory_engines.allocation import (
    AllocationPlan,
    available_quantity,
    partition_expired,
    plan_allocation,
)
from inventory_kernel.domain import validation
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import (
    ItemInfo,
    MovementDraft,
    MovementRecord,
    MovementType,
    TrackingMode,
)
from inventory_kernel.exceptions import (
    ExpiredBatchBlockedError,
    IdempotencyConflictError,
    InsufficientStockError,
)
from inventory_kernel.logging_config import LogContext, get_logger
from inventory_kernel.selectors.stock_projector import StockProjector
from inventory_kernel.services.batch_store import BatchStore
from inventory_kernel.services.item_catalog import ItemCatalog
from inventory_kernel.services.movement_ledger import MovementLedger
from inventory_kernel.utils.idempotency import (
    MAX_KEY_LENGTH,
    movement_external_key,
    task_idempotency_key,
)

logger = get_logger("services.allocation")

ZERO = Decimal("0")


@dataclass(frozen=True)
class ConsumedLine:
    """One committed consumption movement, seen from the request's side."""

    movement_id: UUID
    batch_id: UUID | None
    lot_number: str | None
    quantity: Decimal
    cost_per_unit_minor: int | None

    @property
    def line_cost_minor(self) -> Decimal:
        if self.cost_per_unit_minor is None:
            return ZERO
        return self.quantity * self.cost_per_unit_minor


@dataclass(frozen=True)
class AllocationResult:
    """
    Outcome of a consume request.

    ``total_cost_minor`` is exact (Decimal); it is an integer whenever the
    consumed quantities are whole units.
    """

    item_id: UUID
    operation_id: UUID
    requested: Decimal
    lines: tuple[ConsumedLine, ...]
    is_replay: bool = False

    @property
    def total_quantity(self) -> Decimal:
        return sum((line.quantity for line in self.lines), ZERO)

    @property
    def total_cost_minor(self) -> Decimal:
        return sum((line.line_cost_minor for line in self.lines), ZERO)

    @classmethod
    def from_movements(
        cls,
        item_id: UUID,
        movements: tuple[MovementRecord, ...],
        lot_numbers: dict[UUID, str],
        is_replay: bool = False,
    ) -> AllocationResult:
        lines = tuple(
            ConsumedLine(
                movement_id=m.id,
                batch_id=m.batch_id,
                lot_number=lot_numbers.get(m.batch_id) if m.batch_id else None,
                quantity=-m.quantity_delta,
                cost_per_unit_minor=m.cost_per_unit_minor,
            )
            for m in movements
        )
        return cls(
            item_id=item_id,
            operation_id=movements[0].operation_id,
            requested=sum((line.quantity for line in lines), ZERO),
            lines=lines,
            is_replay=is_replay,
        )


@dataclass(frozen=True)
class ConsumptionDrafts:
    """Planned consumption movements for one item, not yet keyed or written."""

    drafts: tuple[MovementDraft, ...]
    lot_numbers: dict[UUID, str]


def with_external_keys(
    drafts: Sequence[MovementDraft],
    idempotency_key: str | None,
    start: int = 0,
) -> list[MovementDraft]:
    """Give each draft ``<idempotency_key>:<index>``, counting from ``start``."""
    if idempotency_key is None:
        return list(drafts)
    return [
        replace(draft, external_key=movement_external_key(idempotency_key, start + index))
        for index, draft in enumerate(drafts)
    ]


class AllocationEngine:
    """
    Consumption orchestration.

    Contract:
        Runs inside the caller's transaction and never commits.  The caller
        must hold the per-item write lock for ``item_id``.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        catalog: ItemCatalog | None = None,
        batch_store: BatchStore | None = None,
        ledger: MovementLedger | None = None,
        projector: StockProjector | None = None,
    ):
        self.session = session
        self.clock = clock or SystemClock()
        self.catalog = catalog or ItemCatalog(session, self.clock)
        self.batch_store = batch_store or BatchStore(session, self.clock, self.catalog)
        self.ledger = ledger or MovementLedger(session, self.clock, self.batch_store)
        self.projector = projector or StockProjector(session)

    def consume(
        self,
        item_id: UUID,
        requested_quantity: Decimal,
        reason: str,
        allow_expired: bool = False,
        override_reason: str | None = None,
        idempotency_key: str | None = None,
        task_id: str | None = None,
    ) -> AllocationResult:
        """
        Consume ``requested_quantity`` of an item.

        When ``idempotency_key`` is omitted but ``task_id`` is given, a key
        is derived from (task_id, item_id, quantity) so a retried task
        cannot deduct twice.
        """
        requested = validation.positive_quantity("requested_quantity", requested_quantity)
        reason = validation.required_text("reason", reason)
        task_id = validation.optional_text("task_id", task_id, max_length=100)
        override_reason = validation.optional_text(
            "override_reason", override_reason, max_length=2000
        )
        if idempotency_key is None and task_id is not None:
            idempotency_key = task_idempotency_key(task_id, item_id, requested)
        idempotency_key = validation.optional_text(
            "idempotency_key", idempotency_key, max_length=MAX_KEY_LENGTH
        )
        if allow_expired and override_reason is None:
            raise ExpiredBatchBlockedError(
                str(item_id), "override_reason is required when allow_expired is set"
            )

        t0 = time.monotonic()
        with LogContext.bind(
            item_id=item_id, idempotency_key=idempotency_key, task_id=task_id
        ):
            logger.info(
                "consume_started",
                extra={
                    "requested": requested,
                    "allow_expired": allow_expired,
                },
            )

            replay = self._replay(item_id, requested, idempotency_key)
            if replay is not None:
                return replay

            item = self.catalog.lock_item(item_id)

            # A concurrent request with the same key may have committed
            # while this one waited for the lock.
            replay = self._replay(item_id, requested, idempotency_key)
            if replay is not None:
                return replay

            drafted = self.draft_consumption(
                item,
                requested,
                reason,
                allow_expired=allow_expired,
                override_reason=override_reason,
                task_id=task_id,
            )
            drafts = with_external_keys(drafted.drafts, idempotency_key)

            appended = self.ledger.append(drafts)
            if appended.is_duplicate:
                return self._verified_replay(
                    item_id, requested, idempotency_key, appended.movements
                )

            result = AllocationResult.from_movements(
                item.id, appended.movements, drafted.lot_numbers
            )
            logger.info(
                "consume_completed",
                extra={
                    "operation_id": str(result.operation_id),
                    "line_count": len(result.lines),
                    "total_quantity": result.total_quantity,
                    "total_cost_minor": result.total_cost_minor,
                    "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                },
            )
            return result

    def draft_consumption(
        self,
        item: ItemInfo,
        requested: Decimal,
        reason: str,
        allow_expired: bool = False,
        override_reason: str | None = None,
        task_id: str | None = None,
    ) -> ConsumptionDrafts:
        """
        Plan one item's consumption as unkeyed drafts, writing nothing.

        The caller must hold the item's lock.  Raises InsufficientStockError
        or ExpiredBatchBlockedError exactly as ``consume`` does.
        """
        if item.tracking_mode == TrackingMode.SIMPLE:
            return ConsumptionDrafts(
                drafts=(self._simple_draft(item, requested, reason, task_id),),
                lot_numbers={},
            )

        plan, expired_ids = self._plan_batched(item, requested, allow_expired)
        drafts = tuple(
            MovementDraft(
                item_id=item.id,
                movement_type=MovementType.CONSUMPTION,
                quantity_delta=-line.quantity,
                reason=reason,
                batch_id=line.batch_id,
                cost_per_unit_minor=line.cost_per_unit_minor,
                task_id=task_id,
                override_reason=(
                    override_reason if line.batch_id in expired_ids else None
                ),
            )
            for line in plan.lines
        )
        return ConsumptionDrafts(
            drafts=drafts,
            lot_numbers={line.batch_id: line.lot_number for line in plan.lines},
        )

    def lot_numbers_for(self, movements: Iterable[MovementRecord]) -> dict[UUID, str]:
        return {
            m.batch_id: self.batch_store.get_batch(m.batch_id).lot_number
            for m in movements
            if m.batch_id is not None
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _simple_draft(
        self,
        item: ItemInfo,
        requested: Decimal,
        reason: str,
        task_id: str | None,
    ) -> MovementDraft:
        on_hand = self.projector.on_hand_quantity(item.id)
        if on_hand < requested:
            logger.warning(
                "insufficient_stock",
                extra={"requested": requested, "available": on_hand},
            )
            raise InsufficientStockError(str(item.id), requested, max(on_hand, ZERO))
        return MovementDraft(
            item_id=item.id,
            movement_type=MovementType.CONSUMPTION,
            quantity_delta=-requested,
            reason=reason,
            task_id=task_id,
        )

    def _plan_batched(
        self,
        item: ItemInfo,
        requested: Decimal,
        allow_expired: bool,
    ) -> tuple[AllocationPlan, set[UUID]]:
        batches = self.batch_store.list_available_batches(
            item.id, include_expired=True, lock=True
        )
        usable, expired = partition_expired(batches, self.clock.today())
        candidates = batches if allow_expired else usable
        plan = plan_allocation(candidates=candidates, requested=requested)

        logger.info(
            "allocation_planned",
            extra={
                "candidate_count": len(candidates),
                "expired_count": len(expired),
                "lines": [
                    {"lot_number": line.lot_number, "quantity": line.quantity}
                    for line in plan.lines
                ],
                "remaining": plan.remaining,
            },
        )

        if not plan.is_complete:
            expired_quantity = available_quantity(expired)
            if not allow_expired and plan.allocated + expired_quantity >= requested:
                logger.warning(
                    "expired_batch_blocked",
                    extra={
                        "requested": requested,
                        "available": plan.allocated,
                        "expired_available": expired_quantity,
                    },
                )
                raise ExpiredBatchBlockedError(
                    str(item.id),
                    "only expired stock can satisfy the request; "
                    "set allow_expired with an override_reason",
                    expired_available=expired_quantity,
                )
            logger.warning(
                "insufficient_stock",
                extra={
                    "requested": requested,
                    "available": plan.allocated,
                    "expired_available": expired_quantity,
                },
            )
            raise InsufficientStockError(
                str(item.id),
                requested,
                plan.allocated,
                expired_available=ZERO if allow_expired else expired_quantity,
            )

        return plan, {batch.id for batch in expired}

    def _replay(
        self,
        item_id: UUID,
        requested: Decimal,
        idempotency_key: str | None,
    ) -> AllocationResult | None:
        if idempotency_key is None:
            return None
        first = self.ledger.find_by_external_key(movement_external_key(idempotency_key, 0))
        if first is None:
            return None
        movements = self.ledger.movements_for_operation(first.operation_id)
        return self._verified_replay(item_id, requested, idempotency_key, movements)

    def _verified_replay(
        self,
        item_id: UUID,
        requested: Decimal,
        idempotency_key: str | None,
        movements: tuple[MovementRecord, ...],
    ) -> AllocationResult:
        recorded = sum((-m.quantity_delta for m in movements), ZERO)
        if (
            any(m.item_id != item_id for m in movements)
            or any(m.movement_type != MovementType.CONSUMPTION for m in movements)
            or recorded != requested
        ):
            raise IdempotencyConflictError(
                idempotency_key or "",
                f"recorded consumption of {recorded} differs from request "
                f"for {requested} of item {item_id}",
            )
        logger.info(
            "consume_replayed",
            extra={"operation_id": str(movements[0].operation_id)},
        )
        return AllocationResult.from_movements(
            item_id, movements, self.lot_numbers_for(movements), is_replay=True
        )
