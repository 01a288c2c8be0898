"""
ORM-Level Immutability Enforcement (Layer 1 of 2).

===============================================================================
WHY THIS EXISTS
===============================================================================

The movement ledger is the single source of truth for stock and valuation.
If a movement could be edited, every on-hand figure and every cost report
derived from it would silently change.  Corrections are therefore made by
appending adjustment movements, never by rewriting history.

  Layer 1: THIS FILE (ORM event listeners)
    - Catches modifications through Python/SQLAlchemy code
    - Fires BEFORE the SQL is sent to the database

  Layer 2: db/triggers.py (PostgreSQL triggers)
    - Catches raw SQL, bulk UPDATE statements, direct psql access

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity             | Rule
-------------------|------------------------------------------------------
InventoryMovement  | No UPDATE, no DELETE, ever
InventoryBatch     | cost_per_unit_minor, item_id, lot_number frozen;
                   | never deleted (quantity/updated_at may change)
InventoryItem      | Never hard-deleted (soft delete via deleted_at);
                   | tracking_mode frozen

===============================================================================
USAGE
===============================================================================

    from inventory_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # Called once at startup

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import event, inspect

from inventory_kernel.exceptions import ImmutabilityViolationError
from inventory_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

BATCH_FROZEN_FIELDS = frozenset({"cost_per_unit_minor", "item_id", "lot_number"})
ITEM_FROZEN_FIELDS = frozenset({"tracking_mode"})


def _block(entity_type: str, target, operation: str, reason: str) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _changed_fields(target) -> set[str]:
    state = inspect(target)
    return {
        attr.key
        for attr in state.attrs
        if attr.history.has_changes()
    }


def _check_movement_immutability(mapper, connection, target):
    """Prevent any update to InventoryMovement records."""
    _block(
        "InventoryMovement",
        target,
        "UPDATE",
        "Movements are append-only; record an adjustment instead",
    )


def _check_movement_delete(mapper, connection, target):
    """Prevent deletion of InventoryMovement records."""
    _block(
        "InventoryMovement",
        target,
        "DELETE",
        "Movements are append-only and cannot be deleted",
    )


def _check_batch_immutability(mapper, connection, target):
    """Batch cost and identity are frozen; only quantity may move."""
    frozen = _changed_fields(target) & BATCH_FROZEN_FIELDS
    if frozen:
        _block(
            "InventoryBatch",
            target,
            "UPDATE",
            f"Frozen fields cannot change: {', '.join(sorted(frozen))}",
        )


def _check_batch_delete(mapper, connection, target):
    _block("InventoryBatch", target, "DELETE", "Batches cannot be deleted")


def _check_item_immutability(mapper, connection, target):
    frozen = _changed_fields(target) & ITEM_FROZEN_FIELDS
    if frozen:
        _block(
            "InventoryItem",
            target,
            "UPDATE",
            f"Frozen fields cannot change: {', '.join(sorted(frozen))}",
        )


def _check_item_delete(mapper, connection, target):
    _block(
        "InventoryItem",
        target,
        "DELETE",
        "Items are soft-deleted; set deleted_at instead",
    )


def _listeners():
    from inventory_kernel.models.batch import InventoryBatch
    from inventory_kernel.models.item import InventoryItem
    from inventory_kernel.models.movement import InventoryMovement

    return [
        (InventoryMovement, "before_update", _check_movement_immutability),
        (InventoryMovement, "before_delete", _check_movement_delete),
        (InventoryBatch, "before_update", _check_batch_immutability),
        (InventoryBatch, "before_delete", _check_batch_delete),
        (InventoryItem, "before_update", _check_item_immutability),
        (InventoryItem, "before_delete", _check_item_delete),
    ]


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Safe to call more than once.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests where you need to intentionally
    violate immutability rules to verify detection.
    """
    for target, event_name, listener_fn in _listeners():
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)
