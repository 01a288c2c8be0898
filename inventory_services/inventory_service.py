"""
InventoryService -- the transactional entry point for every inventory operation.

Responsibility:
    Owns the transaction boundary: each public call opens a session from the
    injected factory, wires the kernel services and the allocation engine
    onto it, commits on success and rolls back on any error.  Stock-changing
    calls also hold a process-local per-item lock for the whole transaction.

Architecture position:
    Services -- outermost domain layer; the HTTP API calls only this class.

Invariants enforced:
    - One transaction per call; nothing is partially committed.
    - Writers to the same item are serialized twice over: the in-process
      per-item lock, and ``SELECT ... FOR UPDATE`` on the item row (which
      also covers multiple processes on PostgreSQL).
    - Replays (same idempotency key) return the original result and write
      nothing.

Failure modes:
    - Every InventoryKernelError propagates unchanged.
    - Database connectivity failures surface as StorageUnavailableError.
"""

from __future__ import annotations

import threading
import weakref
from collections.abc import Generator, Iterable
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from inventory_engines.deduction import DeductionEntry
from inventory_kernel.db.engine import session_scope
from inventory_kernel.domain import validation
from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.domain.dtos import (
    BatchInfo,
    ItemInfo,
    ItemSpec,
    MovementDraft,
    MovementRecord,
    MovementType,
    StockLevel,
    TrackingMode,
)
from inventory_kernel.exceptions import (
    ConstraintViolationError,
    IdempotencyConflictError,
    StorageUnavailableError,
    TrackingModeError,
    ValidationError,
)
from inventory_kernel.logging_config import LogContext, get_logger
from inventory_kernel.selectors.movement_selector import MovementSelector
from inventory_kernel.selectors.stock_projector import StockProjector
from inventory_kernel.services.batch_store import BatchStore
from inventory_kernel.services.item_catalog import ItemCatalog
from inventory_kernel.services.movement_ledger import MovementLedger
from inventory_kernel.utils.idempotency import MAX_KEY_LENGTH, movement_external_key
from inventory_services.allocation_engine import AllocationEngine, AllocationResult
from inventory_services.cost_analysis import (
    CategoryCostSeries,
    CategoryCostSummary,
    CostAnalysisService,
    ItemCostSummary,
    TaskCostSummary,
)
from inventory_services.reorder_monitor import ReorderCandidate, ReorderMonitor
from inventory_services.task_deduction import (
    DeductionResult,
    TaskDeductionService,
    resolve_deduction,
)

logger = get_logger("services.inventory")


@dataclass(frozen=True)
class ReceiptResult:
    """
    Outcome of a receive call.

    ``movement`` is None only for a zero-quantity batched receipt, which
    registers the lot without moving stock.
    """

    item_id: UUID
    batch: BatchInfo | None
    movement: MovementRecord | None
    is_replay: bool = False


@dataclass(frozen=True)
class AdjustmentResult:
    item_id: UUID
    movement: MovementRecord
    is_replay: bool = False


class _ItemLock:
    """Weak-referenceable holder of one item's lock."""

    __slots__ = ("lock", "__weakref__")

    def __init__(self) -> None:
        self.lock = threading.Lock()


class ItemLockRegistry:
    """
    One ``threading.Lock`` per item id, created on first use.

    Entries are weakly held: a lock disappears once no caller holds or waits
    on it, so the registry only ever contains items in flight.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: weakref.WeakValueDictionary[UUID, _ItemLock] = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, item_id: UUID) -> _ItemLock:
        with self._guard:
            entry = self._locks.get(item_id)
            if entry is None:
                entry = _ItemLock()
                self._locks[item_id] = entry
            return entry

    def __len__(self) -> int:
        return len(self._locks)

    @contextmanager
    def hold(self, item_id: UUID) -> Generator[None, None, None]:
        entry = self._lock_for(item_id)
        with entry.lock:
            yield

    @contextmanager
    def hold_many(self, item_ids: Iterable[UUID]) -> Generator[None, None, None]:
        """Hold several item locks, acquired in ascending id order."""
        with ExitStack() as stack:
            for item_id in sorted(set(item_ids), key=str):
                stack.enter_context(self.hold(item_id))
            yield


@dataclass
class _Services:
    """Kernel services and engines bound to one session."""

    session: Session
    catalog: ItemCatalog
    batches: BatchStore
    ledger: MovementLedger
    projector: StockProjector
    movements: MovementSelector
    allocation: AllocationEngine
    deductions: TaskDeductionService
    reorder: ReorderMonitor
    costs: CostAnalysisService


class InventoryService:
    """
    Inventory facade.

    Args:
        session_factory: Produces one Session per call.
        clock: Time source; SystemClock unless injected (tests).
        categories: Allowed item categories; catalog defaults otherwise.
        lock_registry: Share one registry between facades that must
            serialize against each other in the same process.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        categories: Iterable[str] | None = None,
        lock_registry: ItemLockRegistry | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._categories = tuple(categories) if categories is not None else None
        self._locks = lock_registry or ItemLockRegistry()

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    def create_item(self, spec: ItemSpec) -> ItemInfo:
        with self._transaction("create_item") as svc:
            return svc.catalog.create_item(spec)

    def get_item(self, item_id: UUID) -> ItemInfo:
        with self._transaction("get_item") as svc:
            return svc.catalog.get_item(item_id)

    def list_items(
        self,
        category: str | None = None,
        tracking_mode: TrackingMode | None = None,
    ) -> list[ItemInfo]:
        with self._transaction("list_items") as svc:
            return svc.catalog.list_items(category=category, tracking_mode=tracking_mode)

    def update_thresholds(
        self,
        item_id: UUID,
        min_stock: Decimal | None = None,
        reorder_multiple: Decimal | None = None,
    ) -> ItemInfo:
        with self._locks.hold(item_id), self._transaction("update_thresholds") as svc:
            return svc.catalog.update_thresholds(
                item_id, min_stock=min_stock, reorder_multiple=reorder_multiple
            )

    def soft_delete_item(self, item_id: UUID) -> None:
        with self._locks.hold(item_id), self._transaction("soft_delete_item") as svc:
            svc.catalog.soft_delete(item_id)

    # ------------------------------------------------------------------
    # Stock movements
    # ------------------------------------------------------------------

    def receive(
        self,
        item_id: UUID,
        quantity: Decimal,
        reason: str = "receipt",
        lot_number: str | None = None,
        cost_per_unit_minor: int | None = None,
        expires_on: date | None = None,
        received_at: datetime | None = None,
        idempotency_key: str | None = None,
    ) -> ReceiptResult:
        """
        Record incoming stock.

        Batched items need ``lot_number`` and ``cost_per_unit_minor`` and
        get a new batch; simple items take neither and get one receipt
        movement with no cost.
        """
        idempotency_key = validation.optional_text(
            "idempotency_key", idempotency_key, max_length=MAX_KEY_LENGTH
        )
        with LogContext.bind(item_id=item_id, idempotency_key=idempotency_key):
            with self._locks.hold(item_id), self._transaction("receive") as svc:
                item = svc.catalog.lock_item(item_id)
                replay = self._receipt_replay(svc, item_id, quantity, idempotency_key)
                if replay is not None:
                    return replay

                external_key = (
                    movement_external_key(idempotency_key, 0) if idempotency_key else None
                )
                if item.tracking_mode == TrackingMode.BATCHED:
                    return self._receive_batched(
                        svc, item, quantity, reason, lot_number, cost_per_unit_minor,
                        expires_on, received_at, external_key, idempotency_key,
                    )

                if lot_number is not None or expires_on is not None:
                    raise TrackingModeError(str(item_id), item.tracking_mode.value, "receive_lot")
                if cost_per_unit_minor is not None:
                    raise ValidationError(
                        "cost_per_unit_minor", "is not recorded for simple items"
                    )
                qty = validation.positive_quantity("quantity", quantity)
                appended = svc.ledger.append(
                    [
                        MovementDraft(
                            item_id=item.id,
                            movement_type=MovementType.RECEIPT,
                            quantity_delta=qty,
                            reason=reason,
                            external_key=external_key,
                        )
                    ]
                )
                if appended.is_duplicate:
                    return self._verified_receipt(
                        svc, item_id, qty, idempotency_key, appended.movements[0]
                    )
                return ReceiptResult(
                    item_id=item.id, batch=None, movement=appended.movements[0]
                )

    def consume(
        self,
        item_id: UUID,
        quantity: Decimal,
        reason: str,
        allow_expired: bool = False,
        override_reason: str | None = None,
        idempotency_key: str | None = None,
        task_id: str | None = None,
    ) -> AllocationResult:
        """Consume stock FEFO across batches; see AllocationEngine.consume."""
        with self._locks.hold(item_id), self._transaction("consume") as svc:
            return svc.allocation.consume(
                item_id,
                quantity,
                reason,
                allow_expired=allow_expired,
                override_reason=override_reason,
                idempotency_key=idempotency_key,
                task_id=task_id,
            )

    def deduct_for_task(
        self,
        entries: Iterable[DeductionEntry],
        reason: str = "task deduction",
        task_id: str | None = None,
        plant_count: int | None = None,
        allow_expired: bool = False,
        override_reason: str | None = None,
        idempotency_key: str | None = None,
    ) -> DeductionResult:
        """
        Consume every item of a task's deduction map in one transaction.

        Per-plant entries are scaled by ``plant_count``.  If any item falls
        short, DeductionShortfallError lists every short item with its
        recovery options and nothing is written.
        """
        entries = list(entries)
        item_ids = resolve_deduction(entries, plant_count)
        with self._locks.hold_many(item_ids), self._transaction("deduct_for_task") as svc:
            return svc.deductions.deduct(
                entries,
                reason=reason,
                task_id=task_id,
                plant_count=plant_count,
                allow_expired=allow_expired,
                override_reason=override_reason,
                idempotency_key=idempotency_key,
            )

    def adjust(
        self,
        item_id: UUID,
        quantity_delta: Decimal,
        reason: str,
        batch_id: UUID | None = None,
        idempotency_key: str | None = None,
    ) -> AdjustmentResult:
        """
        Correct stock by a signed delta.

        Batched items must name the batch being corrected; the movement
        carries that batch's cost so valuation follows the correction.
        Simple items must not name a batch.  Neither a batch nor a simple
        item's on-hand may go negative.
        """
        delta = validation.nonzero_quantity("quantity_delta", quantity_delta)
        reason = validation.required_text("reason", reason)
        idempotency_key = validation.optional_text(
            "idempotency_key", idempotency_key, max_length=MAX_KEY_LENGTH
        )
        with LogContext.bind(item_id=item_id, idempotency_key=idempotency_key):
            with self._locks.hold(item_id), self._transaction("adjust") as svc:
                item = svc.catalog.lock_item(item_id)

                if idempotency_key is not None:
                    existing = svc.ledger.find_by_external_key(
                        movement_external_key(idempotency_key, 0)
                    )
                    if existing is not None:
                        return self._verified_adjustment(
                            item_id, delta, batch_id, idempotency_key, existing
                        )

                cost_per_unit_minor = None
                if item.tracking_mode == TrackingMode.BATCHED:
                    if batch_id is None:
                        raise ValidationError(
                            "batch_id", "is required to adjust a batched item"
                        )
                    batch = svc.batches.get_batch(batch_id, item_id=item.id)
                    cost_per_unit_minor = batch.cost_per_unit_minor
                else:
                    if batch_id is not None:
                        raise TrackingModeError(
                            str(item_id), item.tracking_mode.value, "adjust_batch"
                        )
                    on_hand = svc.projector.on_hand_quantity(item.id)
                    if on_hand + delta < 0:
                        raise ConstraintViolationError(
                            "on_hand_non_negative",
                            f"Item {item_id} holds {on_hand}; cannot apply {delta}",
                        )

                appended = svc.ledger.append(
                    [
                        MovementDraft(
                            item_id=item.id,
                            movement_type=MovementType.ADJUSTMENT,
                            quantity_delta=delta,
                            reason=reason,
                            batch_id=batch_id,
                            cost_per_unit_minor=cost_per_unit_minor,
                            external_key=(
                                movement_external_key(idempotency_key, 0)
                                if idempotency_key
                                else None
                            ),
                        )
                    ]
                )
                movement = appended.movements[0]
                if appended.is_duplicate:
                    return self._verified_adjustment(
                        item_id, delta, batch_id, idempotency_key, movement
                    )
                logger.info(
                    "stock_adjusted",
                    extra={
                        "movement_id": str(movement.id),
                        "quantity_delta": delta,
                        "batch_id": str(batch_id) if batch_id else None,
                    },
                )
                return AdjustmentResult(item_id=item.id, movement=movement)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def stock(self, item_id: UUID) -> StockLevel:
        """On-hand, valuation and batch remaining, derived from the ledger."""
        with self._transaction("stock") as svc:
            item = svc.catalog.get_item(item_id)
            return svc.projector.stock_level(item.id)

    def reorder_candidates(self, category: str | None = None) -> list[ReorderCandidate]:
        with self._transaction("reorder_candidates") as svc:
            return svc.reorder.reorder_candidates(category=category)

    def needs_reorder(self, item_id: UUID) -> bool:
        with self._transaction("needs_reorder") as svc:
            return svc.reorder.needs_reorder(item_id)

    def movements(
        self,
        item_id: UUID,
        movement_type: MovementType | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[MovementRecord]:
        """Movement history of a live item, newest first."""
        with self._transaction("movements") as svc:
            item = svc.catalog.get_item(item_id)
            return svc.movements.movements_for_item(
                item.id, movement_type=movement_type, limit=limit, offset=offset
            )

    def movements_for_task(self, task_id: str) -> list[MovementRecord]:
        with self._transaction("movements_for_task") as svc:
            return svc.movements.movements_for_task(task_id)

    def item_cost_summary(
        self,
        item_id: UUID,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> ItemCostSummary:
        with self._transaction("item_cost_summary") as svc:
            return svc.costs.item_cost_summary(item_id, start=start, end=end)

    def category_cost_summaries(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[CategoryCostSummary]:
        with self._transaction("category_cost_summaries") as svc:
            return svc.costs.category_cost_summaries(start=start, end=end)

    def cost_time_series(
        self,
        bucket: str,
        start: datetime,
        end: datetime,
    ) -> list[CategoryCostSeries]:
        with self._transaction("cost_time_series") as svc:
            return svc.costs.cost_time_series(bucket, start=start, end=end)

    def task_cost_summary(self, task_id: str) -> TaskCostSummary:
        with self._transaction("task_cost_summary") as svc:
            return svc.costs.task_cost_summary(task_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @contextmanager
    def _transaction(self, operation: str) -> Generator[_Services, None, None]:
        try:
            with session_scope(self._session_factory) as session:
                yield self._wire(session)
        except OperationalError as exc:
            raise StorageUnavailableError(operation, str(exc.orig)) from exc
        except DBAPIError as exc:
            if exc.connection_invalidated:
                raise StorageUnavailableError(operation, str(exc.orig)) from exc
            raise

    def _wire(self, session: Session) -> _Services:
        clock = self._clock
        catalog = ItemCatalog(session, clock, categories=self._categories)
        batches = BatchStore(session, clock, catalog)
        ledger = MovementLedger(session, clock, batches)
        projector = StockProjector(session)
        movements = MovementSelector(session)
        allocation = AllocationEngine(session, clock, catalog, batches, ledger, projector)
        return _Services(
            session=session,
            catalog=catalog,
            batches=batches,
            ledger=ledger,
            projector=projector,
            movements=movements,
            allocation=allocation,
            deductions=TaskDeductionService(session, allocation),
            reorder=ReorderMonitor(session, clock, catalog, projector),
            costs=CostAnalysisService(session, clock, catalog, movements),
        )

    def _receive_batched(
        self,
        svc: _Services,
        item: ItemInfo,
        quantity: Decimal,
        reason: str,
        lot_number: str | None,
        cost_per_unit_minor: int | None,
        expires_on: date | None,
        received_at: datetime | None,
        external_key: str | None,
        idempotency_key: str | None,
    ) -> ReceiptResult:
        if lot_number is None:
            raise ValidationError("lot_number", "is required for batched items")
        if cost_per_unit_minor is None:
            raise ValidationError("cost_per_unit_minor", "is required for batched items")
        qty = validation.non_negative_quantity("quantity", quantity)
        reason = validation.required_text("reason", reason)

        if qty == 0 and idempotency_key is not None:
            # No movement records the key, so the lot itself is the receipt.
            replay = self._empty_lot_replay(
                svc, item, lot_number, cost_per_unit_minor, expires_on
            )
            if replay is not None:
                return replay

        savepoint = svc.session.begin_nested()
        try:
            batch = svc.batches.receive_batch(
                item.id,
                lot_number,
                qty,
                cost_per_unit_minor,
                received_at=received_at,
                expires_on=expires_on,
            )
            movement = None
            if qty > 0:
                # The batch was created holding qty; the ledger must not add it again.
                appended = svc.ledger.append(
                    [
                        MovementDraft(
                            item_id=item.id,
                            movement_type=MovementType.RECEIPT,
                            quantity_delta=qty,
                            reason=reason,
                            batch_id=batch.id,
                            cost_per_unit_minor=batch.cost_per_unit_minor,
                            external_key=external_key,
                        )
                    ],
                    apply_batch_deltas=False,
                )
                if appended.is_duplicate:
                    savepoint.rollback()
                    return self._verified_receipt(
                        svc, item.id, qty, idempotency_key, appended.movements[0]
                    )
                movement = appended.movements[0]
        except Exception:
            if savepoint.is_active:
                savepoint.rollback()
            raise
        savepoint.commit()
        return ReceiptResult(item_id=item.id, batch=batch, movement=movement)

    def _receipt_replay(
        self,
        svc: _Services,
        item_id: UUID,
        quantity: Decimal,
        idempotency_key: str | None,
    ) -> ReceiptResult | None:
        if idempotency_key is None:
            return None
        existing = svc.ledger.find_by_external_key(movement_external_key(idempotency_key, 0))
        if existing is None:
            return None
        return self._verified_receipt(
            svc,
            item_id,
            validation.quantity("quantity", quantity),
            idempotency_key,
            existing,
        )

    @staticmethod
    def _empty_lot_replay(
        svc: _Services,
        item: ItemInfo,
        lot_number: str,
        cost_per_unit_minor: int,
        expires_on: date | None,
    ) -> ReceiptResult | None:
        batch = svc.batches.find_by_lot(
            item.id, validation.required_text("lot_number", lot_number, max_length=100)
        )
        if (
            batch is None
            or batch.quantity != 0
            or batch.cost_per_unit_minor != cost_per_unit_minor
            or batch.expires_on != expires_on
        ):
            return None
        logger.info("receipt_replayed", extra={"batch_id": str(batch.id)})
        return ReceiptResult(item_id=item.id, batch=batch, movement=None, is_replay=True)

    @staticmethod
    def _verified_receipt(
        svc: _Services,
        item_id: UUID,
        quantity: Decimal,
        idempotency_key: str | None,
        movement: MovementRecord,
    ) -> ReceiptResult:
        if (
            movement.item_id != item_id
            or movement.movement_type != MovementType.RECEIPT
            or movement.quantity_delta != quantity
        ):
            raise IdempotencyConflictError(
                idempotency_key or "",
                f"recorded receipt of {movement.quantity_delta} differs from request "
                f"for {quantity} of item {item_id}",
            )
        batch = (
            svc.batches.get_batch(movement.batch_id)
            if movement.batch_id is not None
            else None
        )
        logger.info("receipt_replayed", extra={"movement_id": str(movement.id)})
        return ReceiptResult(item_id=item_id, batch=batch, movement=movement, is_replay=True)

    @staticmethod
    def _verified_adjustment(
        item_id: UUID,
        delta: Decimal,
        batch_id: UUID | None,
        idempotency_key: str | None,
        movement: MovementRecord,
    ) -> AdjustmentResult:
        if (
            movement.item_id != item_id
            or movement.movement_type != MovementType.ADJUSTMENT
            or movement.quantity_delta != delta
            or movement.batch_id != batch_id
        ):
            raise IdempotencyConflictError(
                idempotency_key or "",
                "key is already recorded for a different adjustment",
            )
        logger.info("adjustment_replayed", extra={"movement_id": str(movement.id)})
        return AdjustmentResult(item_id=item_id, movement=movement, is_replay=True)
