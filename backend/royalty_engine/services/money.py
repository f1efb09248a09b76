"""
Fixed-point arithmetic for money and royalty rates.

Every monetary value in the engine is a ``Decimal`` and every operation on
one goes through this module. Floats are rejected outright: ``0.1`` cannot be
represented exactly, and a 10% rate on $23,750.00 must always be exactly
$2,375.00.

All operations run against a private decimal context (50 significant
digits, ROUND_HALF_UP, traps on InvalidOperation/Overflow/DivisionByZero),
so results never depend on the caller's thread-local decimal context.

Rounding mode: amounts are rounded to the cent with ROUND_HALF_UP
(``0.005`` -> ``0.01``). That is the only rounding the engine performs.
"""

import logging
import re
from decimal import (
    ROUND_HALF_UP,
    Context,
    Decimal,
    DecimalException,
    DivisionByZero,
    InvalidOperation,
    Overflow,
)
from typing import Iterable, List, Union

from royalty_engine.errors import ArithmeticOverflow

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0")

# NUMERIC(15, 2)
MAX_AMOUNT = Decimal("9999999999999.99")
MAX_UNITS = 999_999_999_999

_CONTEXT = Context(
    prec=50,
    rounding=ROUND_HALF_UP,
    traps=[InvalidOperation, Overflow, DivisionByZero],
)

Numeric = Union[Decimal, int, str]


def to_decimal(value: Numeric) -> Decimal:
    """
    Convert an int, numeric string, or Decimal to a Decimal.

    Floats raise TypeError. NaN and infinities raise ArithmeticOverflow.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise TypeError(f"Monetary values must not be {type(value).__name__}: {value!r}")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip().replace(",", ""))
        except InvalidOperation:
            raise ValueError(f"Not a decimal number: {value!r}") from None
    else:
        raise TypeError(f"Unsupported numeric type: {type(value).__name__}")

    if not result.is_finite():
        raise ArithmeticOverflow(f"Non-finite value: {value!r}", value=value)
    return result


def coerce_external(value) -> Decimal:
    """
    Boundary conversion used by the pydantic models.

    JSON numbers arrive as floats; they are converted through their shortest
    repr (``str(0.1) == "0.1"``), never through ``Decimal(0.1)``. Raises
    ValueError for anything that is not a finite number so pydantic reports
    it as a validation error.
    """
    if isinstance(value, float):
        value = repr(value)
    try:
        return to_decimal(value)
    except (TypeError, ArithmeticOverflow) as exc:
        raise ValueError(str(exc)) from exc


def parse_percentage(rate_str: str) -> Decimal:
    """Parse a percentage string like '10%' or '12.5 %' to a fraction (0.10, 0.125)."""
    match = re.search(r'(\d+(?:\.\d+)?)\s*%', rate_str)
    if match:
        return _CONTEXT.divide(Decimal(match.group(1)), Decimal(100))
    raise ValueError(f"Could not parse percentage from: {rate_str}")


def _guard(operation, *args: Decimal) -> Decimal:
    try:
        return operation(*args)
    except DecimalException as exc:
        raise ArithmeticOverflow(
            f"Decimal {type(exc).__name__} in {operation.__name__}",
            value=[str(a) for a in args],
        ) from exc


def add(a: Numeric, b: Numeric) -> Decimal:
    return _guard(_CONTEXT.add, to_decimal(a), to_decimal(b))


def subtract(a: Numeric, b: Numeric) -> Decimal:
    return _guard(_CONTEXT.subtract, to_decimal(a), to_decimal(b))


def multiply(a: Numeric, b: Numeric) -> Decimal:
    return _guard(_CONTEXT.multiply, to_decimal(a), to_decimal(b))


def divide(a: Numeric, b: Numeric) -> Decimal:
    """Divide to 50 significant digits. Division by zero raises ArithmeticOverflow."""
    return _guard(_CONTEXT.divide, to_decimal(a), to_decimal(b))


def sum_amounts(values: Iterable[Numeric]) -> Decimal:
    """Sum any number of values exactly; an empty iterable sums to 0."""
    total = ZERO
    for value in values:
        total = add(total, value)
    return total


def round_cents(value: Numeric) -> Decimal:
    """Round to the cent, half-up: ``Decimal("2.345")`` -> ``Decimal("2.35")``."""
    amount = to_decimal(value)
    try:
        return amount.quantize(CENT, rounding=ROUND_HALF_UP, context=_CONTEXT)
    except DecimalException as exc:
        raise ArithmeticOverflow(f"Cannot round {amount} to cents", value=amount) from exc


def ensure_in_range(value: Numeric, label: str = "amount") -> Decimal:
    """Return value as a Decimal, or raise ArithmeticOverflow if |value| > MAX_AMOUNT."""
    amount = to_decimal(value)
    if abs(amount) > MAX_AMOUNT:
        logger.warning("%s out of fixed-point range: %s", label, amount)
        raise ArithmeticOverflow(
            f"{label} {amount} exceeds the supported range of +/-{MAX_AMOUNT}",
            value=amount,
        )
    return amount


def ensure_units_in_range(units: int, label: str = "units") -> int:
    """Unit counts share the same guarantee: never silently wrap."""
    if abs(units) > MAX_UNITS:
        raise ArithmeticOverflow(
            f"{label} {units} exceeds the supported maximum of {MAX_UNITS}",
            value=units,
        )
    return units


def apply_drift(amounts: List[Decimal], drift: Decimal) -> List[Decimal]:
    """
    Put a rounding drift onto the last amount so the list foots to its target.

    A negative drift walks backwards from the last amount and never takes
    any amount below zero.
    """
    adjusted = list(amounts)
    remaining = to_decimal(drift)
    for index in range(len(adjusted) - 1, -1, -1):
        if remaining == 0:
            break
        if remaining > 0:
            adjusted[index] = add(adjusted[index], remaining)
            remaining = ZERO
        else:
            take = min(adjusted[index], -remaining)
            adjusted[index] = subtract(adjusted[index], take)
            remaining = add(remaining, take)
    return adjusted
