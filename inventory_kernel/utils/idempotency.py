"""
Idempotency key utilities.

A caller-supplied idempotency key names one logical request.  A request may
write several movements (one per consumed batch), so each movement's
external_key is derived from the request key and the movement's position.
"""

import hashlib
import json
from collections.abc import Iterable
from decimal import Decimal
from uuid import UUID

MAX_KEY_LENGTH = 200


def _digest(payload: object) -> str:
    encoded = json.dumps(payload, sort_keys=True).encode()
    return hashlib.sha256(encoded).hexdigest()[:16]


def _quantity_text(quantity: Decimal) -> str:
    return format(Decimal(quantity).normalize(), "f")


def task_idempotency_key(task_id: str, item_id: UUID | str, quantity: Decimal) -> str:
    """
    Deterministic key for a consumption triggered by a task.

    The same task consuming the same quantity of the same item always maps
    to the same key, so a retried task cannot deduct stock twice.
    """
    digest = _digest(
        {
            "task_id": str(task_id),
            "item_id": str(item_id),
            "quantity": _quantity_text(quantity),
        }
    )
    return f"task:{task_id}:{digest}"


def deduction_idempotency_key(
    task_id: str,
    quantities: Iterable[tuple[UUID | str, Decimal]],
) -> str:
    """
    Deterministic key for a multi-item task deduction.

    ``quantities`` are the resolved (item_id, quantity) pairs; their order
    does not affect the key.
    """
    lines = sorted((str(item_id), _quantity_text(qty)) for item_id, qty in quantities)
    digest = _digest({"task_id": str(task_id), "lines": lines})
    return f"deduction:{task_id}:{digest}"


def movement_external_key(idempotency_key: str, index: int) -> str:
    """External key of the ``index``-th movement written for a request."""
    return f"{idempotency_key}:{index}"
