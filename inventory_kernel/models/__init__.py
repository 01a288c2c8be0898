"""ORM models for the inventory kernel."""

from inventory_kernel.models.batch import InventoryBatch
from inventory_kernel.models.item import InventoryItem
from inventory_kernel.models.movement import InventoryMovement
from inventory_kernel.models.sequence import SequenceCounter

__all__ = [
    "InventoryBatch",
    "InventoryItem",
    "InventoryMovement",
    "SequenceCounter",
]
