"""
Module: inventory_kernel.db.types
Responsibility: Annotated column type aliases and numeric helpers shared by
    every model and service.  Centralizes quantity precision and the single
    sanctioned rounding function for minor currency units.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, selectors/ and engines.  MUST NOT import from any of those layers.

Invariants enforced:
    - Quantities are Decimal with 9 fractional digits (Numeric(38, 9)).
    - Costs are integer minor units (BigInteger).  No floats anywhere.
    - round_minor() is the ONLY way a fractional minor-unit amount becomes
      an integer, and it is applied once, at the end of an aggregation.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated

from sqlalchemy import BigInteger, Numeric, String

# Physical quantity (grams, millilitres, units, ...)
# 38 digits total, 9 decimal places
Quantity = Annotated[Decimal, Numeric(38, 9)]

# Cost in minor currency units (cents)
MinorUnits = Annotated[int, BigInteger]

# Monotonic sequence number for ordering
Sequence = Annotated[int, BigInteger]

# Short identifier strings
ShortCode = Annotated[str, String(50)]

# Long text for reasons and notes
LongText = Annotated[str, String(2000)]

QUANTITY_DECIMAL_PLACES = 9
_QUANTUM = Decimal(1).scaleb(-QUANTITY_DECIMAL_PLACES)


def to_quantity(value: Decimal | int | str) -> Decimal:
    """
    Coerce a value to a Decimal quantity at storage precision.

    Floats are rejected: ``Decimal(0.1)`` is not 0.1.
    """
    if isinstance(value, float):
        raise TypeError("Quantities must be Decimal, int or str, never float")
    if isinstance(value, bool):
        raise TypeError("Quantities must be Decimal, int or str, never bool")
    return Decimal(value).quantize(_QUANTUM)


def round_minor(amount: Decimal) -> int:
    """Round an exact minor-unit amount to an integer, half away from zero."""
    return int(amount.quantize(Decimal(1), rounding=ROUND_HALF_UP))
