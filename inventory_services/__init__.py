"""
inventory_services -- Package init and public API.

Responsibility:
    Stateful orchestration that composes the pure engines
    (inventory_engines/) with database sessions and the kernel services.
    InventoryService is the transactional entry point used by the API.

Architecture position:
    Services -- stateful orchestration over engines + kernel.

    Dependency direction (enforced by tests/architecture/test_layer_boundaries.py):
        inventory_services/ -> inventory_engines/  (allowed)
        inventory_services/ -> inventory_kernel/   (allowed)
        inventory_engines/  -> inventory_services/ (FORBIDDEN)
        inventory_kernel/   -> inventory_services/ (FORBIDDEN)
"""

from inventory_services.allocation_engine import (
    AllocationEngine,
    AllocationResult,
    ConsumedLine,
)
from inventory_services.cost_analysis import (
    CategoryCostSeries,
    CategoryCostSummary,
    CostDataPoint,
    CostAnalysisService,
    ItemCostSummary,
    TaskCostSummary,
    TaskItemCost,
)
from inventory_services.inventory_service import (
    AdjustmentResult,
    InventoryService,
    ItemLockRegistry,
    ReceiptResult,
)
from inventory_services.reorder_monitor import ReorderCandidate, ReorderMonitor
from inventory_services.task_deduction import (
    DeductionResult,
    ItemShortage,
    TaskDeductionService,
)

__all__ = [
    "AdjustmentResult",
    "AllocationEngine",
    "AllocationResult",
    "CategoryCostSeries",
    "CategoryCostSummary",
    "ConsumedLine",
    "CostAnalysisService",
    "CostDataPoint",
    "DeductionResult",
    "InventoryService",
    "ItemCostSummary",
    "ItemLockRegistry",
    "ItemShortage",
    "ReceiptResult",
    "ReorderCandidate",
    "ReorderMonitor",
    "TaskCostSummary",
    "TaskDeductionService",
    "TaskItemCost",
]
