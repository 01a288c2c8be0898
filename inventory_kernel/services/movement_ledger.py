"""
MovementLedger -- append-only, atomic, idempotent movement history.

Responsibility:
    Validates movement drafts and appends them as one unit.  Every draft in
    one ``append`` call shares an operation_id and receives the next
    per-item sequence number.  Batch quantities are moved in the same
    SAVEPOINT, so a batch never disagrees with its movements.

Architecture position:
    Kernel > Services.  The only writer of inventory_movements.  There is no
    update or delete API; corrections are new adjustment movements.

Invariants enforced:
    - Sign: receipt > 0, consumption < 0, adjustment != 0.
    - Cost snapshots are non-negative integers; every movement against a
      batch carries one, movements without a batch do not.
    - Atomicity: all drafts commit or none do (SAVEPOINT).
    - Idempotency: if any draft's external_key is already recorded, the
      originally committed movements of that operation are returned and
      nothing is written.  Detected up front and, under a concurrent race,
      via the unique constraint.

Failure modes:
    - InvalidQuantityError / ValidationError: a draft is malformed.  Raised
      before any write.
    - IdempotencyConflictError: a recorded key belongs to another item.
    - ConstraintViolationError: a batch would go negative, or a
      non-idempotency constraint failed.

Audit relevance:
    The ledger is the source of truth for stock and valuation.  Each append
    logs ``ledger_appended`` (or ``ledger_append_idempotent``) with the
    operation_id and movement count.
"""

import time
from collections.abc import Sequence
from dataclasses import dataclass
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from inventory_kernel.domain import validation
from inventory_kernel.domain.clock import Clock
from inventory_kernel.domain.dtos import MovementDraft, MovementRecord, MovementType
from inventory_kernel.exceptions import (
    ConstraintViolationError,
    IdempotencyConflictError,
    InvalidQuantityError,
    ValidationError,
)
from inventory_kernel.logging_config import get_logger
from inventory_kernel.models.movement import InventoryMovement
from inventory_kernel.services.base import BaseService
from inventory_kernel.services.batch_store import BatchStore
from inventory_kernel.services.sequence_service import (
    SequenceService,
    movement_sequence_name,
)
from inventory_kernel.utils.idempotency import MAX_KEY_LENGTH

logger = get_logger("services.movement_ledger")


@dataclass(frozen=True)
class AppendResult:
    """Outcome of MovementLedger.append."""

    movements: tuple[MovementRecord, ...]
    is_duplicate: bool = False

    @property
    def operation_id(self) -> UUID | None:
        return self.movements[0].operation_id if self.movements else None


class MovementLedger(BaseService[InventoryMovement]):
    """Append-only ledger writer."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        batch_store: BatchStore | None = None,
    ):
        super().__init__(session, clock)
        self.batch_store = batch_store or BatchStore(session, self.clock)
        self._sequences = SequenceService(session)

    def append(
        self,
        drafts: Sequence[MovementDraft],
        apply_batch_deltas: bool = True,
    ) -> AppendResult:
        """
        Append ``drafts`` atomically.

        Args:
            drafts: Movements to record, in order.
            apply_batch_deltas: Move each referenced batch's stored quantity
                by the draft's delta.  False only when the caller created
                the batch already holding the quantity (receipt of a new lot).

        Returns:
            AppendResult; ``is_duplicate`` is True when an external_key was
            already recorded and the original movements are returned.
        """
        if not drafts:
            raise ValidationError("drafts", "at least one movement is required")
        normalized = [self._validate(d) for d in drafts]
        keys = [d.external_key for d in normalized if d.external_key is not None]
        if len(keys) != len(set(keys)):
            raise ValidationError("external_key", "must be unique within one append")

        t0 = time.monotonic()

        if keys:
            existing = self._existing_operation(keys, normalized)
            if existing is not None:
                return existing

        operation_id = uuid4()
        try:
            with self.session.begin_nested():
                rows = self._insert(normalized, operation_id, apply_batch_deltas)
        except IntegrityError as exc:
            # Savepoint rolled back; a concurrent writer may have won the key
            if keys:
                existing = self._existing_operation(keys, normalized)
                if existing is not None:
                    return existing
            raise ConstraintViolationError(
                "movement_integrity", f"Movement append rejected: {exc.orig}"
            ) from exc

        records = tuple(row.to_dto() for row in rows)
        logger.info(
            "ledger_appended",
            extra={
                "operation_id": str(operation_id),
                "movement_count": len(records),
                "item_ids": sorted({str(r.item_id) for r in records}),
                "duration_ms": round((time.monotonic() - t0) * 1000, 2),
            },
        )
        return AppendResult(movements=records)

    def find_by_external_key(self, external_key: str) -> MovementRecord | None:
        row = self.session.execute(
            select(InventoryMovement).where(InventoryMovement.external_key == external_key)
        ).scalar_one_or_none()
        return row.to_dto() if row is not None else None

    def movements_for_operation(self, operation_id: UUID) -> tuple[MovementRecord, ...]:
        """All movements written by one append call, in write order."""
        rows = self.session.scalars(
            select(InventoryMovement)
            .where(InventoryMovement.operation_id == operation_id)
            .order_by(InventoryMovement.item_id, InventoryMovement.seq)
        )
        return tuple(row.to_dto() for row in rows)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _insert(
        self,
        drafts: list[MovementDraft],
        operation_id: UUID,
        apply_batch_deltas: bool,
    ) -> list[InventoryMovement]:
        now = self.clock.now()
        rows = []
        for draft in drafts:
            seq = self._sequences.next_value(movement_sequence_name(draft.item_id))
            row = InventoryMovement(
                item_id=draft.item_id,
                batch_id=draft.batch_id,
                movement_type=draft.movement_type.value,
                quantity_delta=draft.quantity_delta,
                cost_per_unit_minor=draft.cost_per_unit_minor,
                reason=draft.reason,
                task_id=draft.task_id,
                external_key=draft.external_key,
                override_reason=draft.override_reason,
                operation_id=operation_id,
                seq=seq,
                created_at=now,
            )
            self.session.add(row)
            rows.append(row)
            if apply_batch_deltas and draft.batch_id is not None:
                self.batch_store.apply_delta(draft.batch_id, draft.quantity_delta)
        self.session.flush()
        return rows

    def _existing_operation(
        self,
        keys: list[str],
        drafts: list[MovementDraft],
    ) -> AppendResult | None:
        found = self.session.execute(
            select(InventoryMovement.operation_id, InventoryMovement.item_id)
            .where(InventoryMovement.external_key.in_(keys))
        ).all()
        if not found:
            return None

        operation_ids = {row.operation_id for row in found}
        recorded_items = {row.item_id for row in found}
        requested_items = {d.item_id for d in drafts}
        if len(operation_ids) != 1 or not recorded_items <= requested_items:
            raise IdempotencyConflictError(
                keys[0], "key is already recorded for a different request"
            )

        movements = self.movements_for_operation(operation_ids.pop())
        logger.info(
            "ledger_append_idempotent",
            extra={
                "operation_id": str(movements[0].operation_id),
                "movement_count": len(movements),
                "external_keys": keys,
            },
        )
        return AppendResult(movements=movements, is_duplicate=True)

    @staticmethod
    def _validate(draft: MovementDraft) -> MovementDraft:
        try:
            movement_type = MovementType(draft.movement_type)
        except ValueError as exc:
            raise ValidationError(
                "movement_type", f"must be one of {[t.value for t in MovementType]}"
            ) from exc

        delta = validation.nonzero_quantity("quantity_delta", draft.quantity_delta)
        if movement_type == MovementType.RECEIPT and delta <= 0:
            raise InvalidQuantityError("quantity_delta", delta, "receipts must be positive")
        if movement_type == MovementType.CONSUMPTION and delta >= 0:
            raise InvalidQuantityError(
                "quantity_delta", delta, "consumptions must be negative"
            )

        cost = draft.cost_per_unit_minor
        if cost is not None:
            validation.minor_units("cost_per_unit_minor", cost)
        if draft.batch_id is not None:
            if cost is None:
                raise ValidationError(
                    "cost_per_unit_minor", "is required for batch movements"
                )
        elif cost is not None:
            raise ValidationError(
                "cost_per_unit_minor", "is only recorded for batch movements"
            )

        reason = validation.required_text("reason", draft.reason)
        external_key = validation.optional_text(
            "external_key", draft.external_key, max_length=MAX_KEY_LENGTH + 20
        )
        override_reason = validation.optional_text(
            "override_reason", draft.override_reason, max_length=2000
        )
        task_id = validation.optional_text("task_id", draft.task_id, max_length=100)

        return MovementDraft(
            item_id=draft.item_id,
            movement_type=movement_type,
            quantity_delta=delta,
            reason=reason,
            batch_id=draft.batch_id,
            cost_per_unit_minor=cost,
            task_id=task_id,
            external_key=external_key,
            override_reason=override_reason,
        )
