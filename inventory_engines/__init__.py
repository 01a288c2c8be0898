"""
Module: inventory_engines
Responsibility:
    Pure calculation engines for the inventory system: FEFO allocation
    planning, task deduction quantities, reorder arithmetic and consumption
    cost aggregation.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May import inventory_kernel.domain, inventory_kernel.db.types and the
    kernel logger.  MUST NOT import inventory_services or inventory_api.

Invariants enforced:
    - Purity: engines never read the clock; dates are passed in.
    - Decimal-only arithmetic for quantities; integer minor units for cost.
    - Determinism: identical inputs always produce identical outputs.
"""

from inventory_engines.allocation import (
    AllocationLine,
    AllocationPlan,
    available_quantity,
    partition_expired,
    plan_allocation,
)
from inventory_engines.cost_summary import (
    EMPTY_SUMMARY,
    Bucket,
    CostSummary,
    period_label,
    period_start,
    summarize_by,
    summarize_consumption,
    summarize_series,
)
from inventory_engines.deduction import (
    DeductionEntry,
    RecoveryAction,
    RecoveryOption,
    ScalingMode,
    recovery_options,
    resolve_quantities,
    scaled_quantity,
)
from inventory_engines.reorder import needs_reorder, suggested_reorder_quantity

__all__ = [
    "AllocationLine",
    "AllocationPlan",
    "Bucket",
    "CostSummary",
    "DeductionEntry",
    "EMPTY_SUMMARY",
    "RecoveryAction",
    "RecoveryOption",
    "ScalingMode",
    "available_quantity",
    "needs_reorder",
    "partition_expired",
    "period_label",
    "period_start",
    "plan_allocation",
    "recovery_options",
    "resolve_quantities",
    "scaled_quantity",
    "suggested_reorder_quantity",
    "summarize_by",
    "summarize_consumption",
    "summarize_series",
]
