"""
Fixed-Point Money Module

Decimal helpers for monetary amounts (2 fractional digits) and wealth units
(4 fractional digits). NEVER uses float for monetary values.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, getcontext
from typing import Any

from .exceptions import InvalidArgumentError

# Set global decimal context for financial precision
getcontext().prec = 28

CENTS = Decimal('0.01')
UNIT_STEP = Decimal('0.0001')
ZERO = Decimal('0')
HUNDRED = Decimal('100')


def to_decimal(value: Any, field_name: str = "amount") -> Decimal:
    """
    Convert a caller-supplied value to Decimal

    Floats go through their string form so 0.1 stays 0.1. Booleans, None
    and non-finite values are rejected.

    Raises:
        InvalidArgumentError: If the value is not a finite number
    """
    if value is None or isinstance(value, bool):
        raise InvalidArgumentError(f"{field_name} is required")

    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation:
            raise InvalidArgumentError(f"Cannot convert {value!r} to a decimal {field_name}")
    else:
        raise InvalidArgumentError(f"{field_name} must be numeric, got {type(value).__name__}")

    if not result.is_finite():
        raise InvalidArgumentError(f"{field_name} must be a finite number")
    return result


def round_money(value: Decimal, field_name: str = "amount") -> Decimal:
    """Round to cents, half-up"""
    try:
        return value.quantize(CENTS, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise InvalidArgumentError(f"{field_name} is out of range")


def round_units(value: Decimal, field_name: str = "units") -> Decimal:
    """Round to 4 fractional digits, half-up (wealth units and ratios)"""
    try:
        return value.quantize(UNIT_STEP, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise InvalidArgumentError(f"{field_name} is out of range")


def to_money(value: Any, field_name: str = "amount") -> Decimal:
    """Convert and round to cents"""
    return round_money(to_decimal(value, field_name), field_name)


def require_positive(amount: Decimal, field_name: str = "amount") -> Decimal:
    if amount <= ZERO:
        raise InvalidArgumentError(f"{field_name} must be greater than zero")
    return amount


def percent_of(part: Decimal, whole: Decimal) -> Decimal:
    """
    Percentage of part relative to whole

    The ratio is rounded half-up to 4 digits before scaling, then the result
    is rounded to cents. Defined as zero when whole is zero.
    """
    if whole == ZERO:
        return round_money(ZERO)
    ratio = (part / whole).quantize(UNIT_STEP, rounding=ROUND_HALF_UP)
    return round_money(ratio * HUNDRED)
