"""Utility modules for the inventory kernel."""

from inventory_kernel.utils.idempotency import (
    deduction_idempotency_key,
    movement_external_key,
    task_idempotency_key,
)

__all__ = [
    "deduction_idempotency_key",
    "movement_external_key",
    "task_idempotency_key",
]
