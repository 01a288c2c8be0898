"""Selectors for the inventory kernel (read side)."""

from inventory_kernel.selectors.movement_selector import MovementSelector
from inventory_kernel.selectors.stock_projector import StockProjector

__all__ = [
    "MovementSelector",
    "StockProjector",
]
