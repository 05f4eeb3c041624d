"""
Module: ledger_kernel.db.types
Responsibility: Annotated type aliases and utility functions for money
    columns and money arithmetic.  Centralizes precision and rounding so that
    every model, engine and service uses identical definitions.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, selectors/ and the engines.  MUST NOT import from any of those
    layers.

Invariants enforced:
    - Cents precision.  MONEY_DECIMAL_PLACES is 2; balance comparisons are
      exact at the minor unit, never floating point.
    - No floats.  to_money() rejects float input outright: a float has
      already lost precision by the time it reaches us.
"""

from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Annotated

from sqlalchemy import Numeric, String

# Monetary amount in whole cents
Money = Annotated[Decimal, Numeric(18, 2)]

# Short identifier strings
ShortCode = Annotated[str, String(50)]

# Long text for descriptions and memos
LongText = Annotated[str, String(4000)]

MONEY_DECIMAL_PLACES = 2
CENT = Decimal("0.01")
ZERO = Decimal("0.00")

# Tolerance used where user-entered amounts are compared against a total
MONEY_TOLERANCE = Decimal("0.01")


def to_money(value: Decimal | int | str) -> Decimal:
    """
    Coerce a value to a Decimal quantized to cents.

    Raises:
        TypeError: If value is a float.
        ValueError: If value is not numeric.
    """
    if isinstance(value, float):
        raise TypeError(
            f"Money must not be constructed from float ({value!r}); use Decimal or str"
        )
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"Invalid money amount: {value!r}") from exc
    return round_money(amount)


def money_from_int(value: int, decimal_places: int = MONEY_DECIMAL_PLACES) -> Decimal:
    """
    Create a money value from integer minor units.

    Example:
        money_from_int(1050) -> Decimal("10.50")
    """
    divisor = Decimal(10) ** decimal_places
    return round_money(Decimal(value) / divisor, decimal_places)


def to_cents(value: Decimal) -> int:
    """Convert a money value to integer cents (exact after rounding)."""
    return int(round_money(value) * 100)


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = ROUND_HALF_UP,
) -> Decimal:
    """
    Round a monetary value to the given number of decimal places.

    This is the only sanctioned rounding function for money values.
    """
    quantize_str = "0." + "0" * decimal_places if decimal_places > 0 else "1"
    return value.quantize(Decimal(quantize_str), rounding=rounding)


def floor_money(value: Decimal) -> Decimal:
    """Truncate toward zero at cents (used by even splits)."""
    return round_money(value, rounding=ROUND_DOWN)


def within_tolerance(a: Decimal, b: Decimal, tolerance: Decimal = MONEY_TOLERANCE) -> bool:
    """True when |a - b| <= tolerance."""
    return abs(a - b) <= tolerance
