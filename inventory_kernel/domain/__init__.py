"""
Pure domain layer.

Immutable DTOs and the clock abstraction, with NO dependencies on the ORM,
the database, or I/O.
"""

from inventory_kernel.domain.clock import (
    Clock,
    DeterministicClock,
    SystemClock,
)
from inventory_kernel.domain.dtos import (
    BatchInfo,
    BatchStock,
    ItemInfo,
    ItemSpec,
    MovementDraft,
    MovementRecord,
    MovementType,
    StockLevel,
    TrackingMode,
)

__all__ = [
    "BatchInfo",
    "BatchStock",
    "Clock",
    "DeterministicClock",
    "ItemInfo",
    "ItemSpec",
    "MovementDraft",
    "MovementRecord",
    "MovementType",
    "StockLevel",
    "SystemClock",
    "TrackingMode",
]
