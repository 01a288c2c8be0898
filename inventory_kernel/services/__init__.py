"""Services for the inventory kernel (write side)."""

from inventory_kernel.services.batch_store import BatchStore
from inventory_kernel.services.item_catalog import DEFAULT_CATEGORIES, ItemCatalog
from inventory_kernel.services.movement_ledger import AppendResult, MovementLedger
from inventory_kernel.services.sequence_service import SequenceService

__all__ = [
    "AppendResult",
    "BatchStore",
    "DEFAULT_CATEGORIES",
    "ItemCatalog",
    "MovementLedger",
    "SequenceService",
]
