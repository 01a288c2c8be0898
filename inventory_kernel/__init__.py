"""
Inventory Kernel

An append-only consumable inventory ledger with:
- Lot-tracked batches with expiry dates and frozen unit costs
- Idempotent, atomic movement appends
- Stock and valuation derived from the ledger, never stored
- Per-item serialized writes
"""

__version__ = "0.1.0"
