"""
Input validation helpers shared by the kernel services.

Each helper either returns the normalized value or raises a typed
ValidationError subclass.  They run before any write.
"""

from decimal import Decimal, InvalidOperation

from inventory_kernel.db.types import to_quantity
from inventory_kernel.exceptions import InvalidQuantityError, ValidationError


def quantity(field: str, value) -> Decimal:
    """Coerce ``value`` to a finite Decimal quantity."""
    try:
        result = to_quantity(value)
    except (TypeError, ValueError, InvalidOperation) as exc:
        raise InvalidQuantityError(field, value, "must be a decimal number") from exc
    if not result.is_finite():
        raise InvalidQuantityError(field, value, "must be finite")
    return result


def positive_quantity(field: str, value) -> Decimal:
    result = quantity(field, value)
    if result <= 0:
        raise InvalidQuantityError(field, value, "must be greater than zero")
    return result


def non_negative_quantity(field: str, value) -> Decimal:
    result = quantity(field, value)
    if result < 0:
        raise InvalidQuantityError(field, value, "must not be negative")
    return result


def nonzero_quantity(field: str, value) -> Decimal:
    result = quantity(field, value)
    if result == 0:
        raise InvalidQuantityError(field, value, "must not be zero")
    return result


def minor_units(field: str, value) -> int:
    """Costs are non-negative integers in minor currency units."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidQuantityError(field, value, "must be an integer in minor units")
    if value < 0:
        raise InvalidQuantityError(field, value, "must not be negative")
    return value


def required_text(field: str, value: str | None, max_length: int = 2000) -> str:
    """Non-empty string, stripped."""
    if value is None or not str(value).strip():
        raise ValidationError(field, "is required")
    text = str(value).strip()
    if len(text) > max_length:
        raise ValidationError(field, f"must be at most {max_length} characters")
    return text


def optional_text(field: str, value: str | None, max_length: int = 255) -> str | None:
    """Empty strings are normalized to None."""
    if value is None or not str(value).strip():
        return None
    return required_text(field, value, max_length)
