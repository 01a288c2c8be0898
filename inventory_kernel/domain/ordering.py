"""
FEFO ordering -- the one definition of "which batch goes first".

First-expired, first-out: ascending expires_on, batches without an expiry
last; ties broken by the older received_at, then lot_number, then id, so
the order is total and identical on every call.
"""

from datetime import date
from typing import Iterable

from inventory_kernel.domain.dtos import BatchInfo

# Sorts after every real expiry date
_NO_EXPIRY = date.max


def fefo_key(batch: BatchInfo) -> tuple:
    """Sort key implementing FEFO with deterministic tie-breaks."""
    return (
        batch.expires_on is None,
        batch.expires_on or _NO_EXPIRY,
        batch.received_at,
        batch.lot_number,
        str(batch.id),
    )


def sort_fefo(batches: Iterable[BatchInfo]) -> list[BatchInfo]:
    """Return batches in FEFO order."""
    return sorted(batches, key=fefo_key)
