"""
Typed Exception Hierarchy for the Inventory Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Stock operations fail for a small number of well-understood reasons, and the
callers (HTTP layer, task automation, sync workers) react differently to each:
a shortfall is shown to the grower, a retryable storage error is retried, an
immutability violation is a bug. Callers must never parse message strings.

Every exception here:
  1. Is a TYPED class (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Carries structured DATA as attributes (shortfall, ids, ...)

Example:
    try:
        result = inventory.consume(item_id, Decimal("12"), reason="feed")
    except InsufficientStockError as e:
        notify(f"Short by {e.shortfall} {unit}")
        api_response(code=e.code, shortfall=str(e.shortfall))

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    InventoryKernelError (base)
    |
    +-- ValidationError
    |   +-- InvalidQuantityError
    |   +-- TrackingModeError
    |
    +-- ConstraintViolationError
    |
    +-- NotFoundError
    |   +-- ItemNotFoundError
    |   +-- BatchNotFoundError
    |
    +-- AllocationError
    |   +-- InsufficientStockError
    |   +-- ExpiredBatchBlockedError
    |   +-- DeductionShortfallError
    |
    +-- IdempotencyConflictError
    |
    +-- ImmutabilityViolationError
    |
    +-- RetryableError
        +-- StorageUnavailableError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                  | When Raised
-------------|-----------------------|---------------------------------------------
Validation   | VALIDATION_ERROR      | Malformed input field (name, reason, ...)
             | INVALID_QUANTITY      | Zero/negative/non-integer quantity or cost
             | TRACKING_MODE         | Batch operation on a simple item, or v.v.
-------------|-----------------------|---------------------------------------------
Constraint   | CONSTRAINT_VIOLATION  | Duplicate lot, SKU, barcode; negative batch
-------------|-----------------------|---------------------------------------------
Not found    | ITEM_NOT_FOUND        | Unknown or soft-deleted item
             | BATCH_NOT_FOUND       | Unknown batch, or batch of another item
-------------|-----------------------|---------------------------------------------
Allocation   | INSUFFICIENT_STOCK    | Available stock < requested (carries shortfall)
             | EXPIRED_BATCH_BLOCKED | Only expired stock could satisfy the request,
             |                       | or an override lacks a reason
             | DEDUCTION_SHORTFALL   | A task deduction has items it cannot cover;
             |                       | carries per-item shortages and recovery options
-------------|-----------------------|---------------------------------------------
Idempotency  | IDEMPOTENCY_CONFLICT  | Same key replayed with a different request
-------------|-----------------------|---------------------------------------------
Immutability | IMMUTABILITY_VIOLATION| Update/delete of a movement, batch cost, ...
-------------|-----------------------|---------------------------------------------
Retryable    | STORAGE_UNAVAILABLE   | Database unreachable/locked; safe to retry
             |                       | with the same idempotency key

===============================================================================
HANDLING PATTERNS
===============================================================================

1. DUPLICATE IDEMPOTENCY KEYS ARE NOT ERRORS. A retried consume returns the
   originally committed AllocationResult with ``is_replay=True``.

2. RETRYABLE ERRORS:

    except RetryableError:
        backoff()
        inventory.consume(..., idempotency_key=same_key)

3. AllocationError subclasses guarantee that nothing was written.
"""

from decimal import Decimal


class InventoryKernelError(Exception):
    """
    Base exception for all inventory kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "INVENTORY_KERNEL_ERROR"


# Validation


class ValidationError(InventoryKernelError):
    """A request field is malformed."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(f"Invalid {field}: {message}")


class InvalidQuantityError(ValidationError):
    """Quantity or cost outside its allowed domain."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, field: str, value: object, message: str):
        self.value = str(value)
        super().__init__(field, f"{message} (got {value})")


class TrackingModeError(ValidationError):
    """Operation does not match the item's tracking mode."""

    code: str = "TRACKING_MODE"

    def __init__(self, item_id: str, tracking_mode: str, operation: str):
        self.item_id = item_id
        self.tracking_mode = tracking_mode
        self.operation = operation
        super().__init__(
            "tracking_mode",
            f"{operation} is not allowed for {tracking_mode} item {item_id}",
        )


# Constraints


class ConstraintViolationError(InventoryKernelError):
    """A uniqueness or non-negativity constraint would be violated."""

    code: str = "CONSTRAINT_VIOLATION"

    def __init__(self, constraint: str, message: str):
        self.constraint = constraint
        super().__init__(message)


# Not found


class NotFoundError(InventoryKernelError):
    """Base exception for lookups of missing entities."""

    code: str = "NOT_FOUND"


class ItemNotFoundError(NotFoundError):
    """Item does not exist or has been soft-deleted."""

    code: str = "ITEM_NOT_FOUND"

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Item not found: {item_id}")


class BatchNotFoundError(NotFoundError):
    """Batch does not exist (or does not belong to the given item)."""

    code: str = "BATCH_NOT_FOUND"

    def __init__(self, batch_id: str, item_id: str | None = None):
        self.batch_id = batch_id
        self.item_id = item_id
        if item_id is None:
            super().__init__(f"Batch not found: {batch_id}")
        else:
            super().__init__(f"Batch {batch_id} not found for item {item_id}")


# Allocation


class AllocationError(InventoryKernelError):
    """Base exception for consume requests that cannot be satisfied."""

    code: str = "ALLOCATION_ERROR"


class InsufficientStockError(AllocationError):
    """
    Available stock does not cover the requested quantity.

    No movements were written. ``shortfall`` is requested - available.
    ``expired_available`` is the quantity sitting in expired batches that
    was not considered.
    """

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        item_id: str,
        requested: Decimal,
        available: Decimal,
        expired_available: Decimal = Decimal("0"),
    ):
        self.item_id = item_id
        self.requested = requested
        self.available = available
        self.shortfall = requested - available
        self.expired_available = expired_available
        super().__init__(
            f"Insufficient stock for item {item_id}: requested "
            f"{format(requested.normalize(), 'f')}, available "
            f"{format(available.normalize(), 'f')}, shortfall "
            f"{format(self.shortfall.normalize(), 'f')}"
        )


class ExpiredBatchBlockedError(AllocationError):
    """Only expired stock could satisfy the request, or the override is unjustified."""

    code: str = "EXPIRED_BATCH_BLOCKED"

    def __init__(self, item_id: str, reason: str, expired_available: Decimal | None = None):
        self.item_id = item_id
        self.reason = reason
        self.expired_available = expired_available
        super().__init__(f"Expired stock blocked for item {item_id}: {reason}")


class DeductionShortfallError(AllocationError):
    """
    A multi-item task deduction cannot cover one or more items.

    Nothing was written for any item.  ``shortages`` holds one entry per
    short item with ``item_id``, ``required``, ``available`` and the
    recovery options offered to the caller.
    """

    code: str = "DEDUCTION_SHORTFALL"

    def __init__(self, task_id: str | None, shortages):
        self.task_id = task_id
        self.shortages = tuple(shortages)
        items = ", ".join(str(s.item_id) for s in self.shortages)
        super().__init__(
            f"Deduction for task {task_id} is short on {len(self.shortages)} "
            f"item(s): {items}"
        )


# Idempotency


class IdempotencyConflictError(InventoryKernelError):
    """
    Idempotency key already recorded for a different request.

    This is a protocol violation - a key names exactly one request.
    """

    code: str = "IDEMPOTENCY_CONFLICT"

    def __init__(self, idempotency_key: str, message: str):
        self.idempotency_key = idempotency_key
        super().__init__(f"Idempotency key {idempotency_key!r} conflicts: {message}")


# Immutability


class ImmutabilityViolationError(InventoryKernelError):
    """Attempted modification of an append-only or frozen record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )


# Retryable


class RetryableError(InventoryKernelError):
    """Transient failure; the caller may retry with the same idempotency key."""

    code: str = "RETRYABLE"


class StorageUnavailableError(RetryableError):
    """The database could not complete the operation (connection loss, lock timeout)."""

    code: str = "STORAGE_UNAVAILABLE"

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Storage unavailable during {operation}: {detail}")
