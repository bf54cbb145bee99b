"""
Module: splitledger_kernel.db.types
Responsibility: Annotated type aliases and rounding helpers for ledger
    column types.  Centralizes precision so that every model and engine
    uses identical definitions.

Invariants enforced:
    CRITICAL: No floats anywhere in the ledger.  Wire payload numbers are
    converted with to_decimal() before any arithmetic.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated

from sqlalchemy import Numeric, String
from sqlalchemy.orm import mapped_column

# Monetary amount with high precision
Money = Annotated[Decimal, mapped_column(Numeric(38, 9))]

# ISO 4217 currency code (e.g., "USD", "EUR", "GBP")
Currency = Annotated[str, mapped_column(String(3))]

# Entity and business identifiers
EntityId = Annotated[str, mapped_column(String(200))]

# Free text descriptions
LongText = Annotated[str, mapped_column(String(4000))]

MONEY_DECIMAL_PLACES = 2

_MONEY_QUANTUM = Decimal(1).scaleb(-MONEY_DECIMAL_PLACES)


def to_decimal(value: object) -> Decimal:
    """Convert a wire value (int, float, str, Decimal) to Decimal.

    Floats go through ``str`` so 0.1 becomes Decimal("0.1"), not its
    binary expansion.

    Raises:
        ValueError: If the value is not numeric.
    """
    if isinstance(value, bool):
        raise ValueError(f"Not a numeric amount: {value!r}")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float, str)):
        try:
            result = Decimal(str(value))
        except ArithmeticError:
            raise ValueError(f"Not a numeric amount: {value!r}") from None
        if not result.is_finite():
            raise ValueError(f"Not a finite amount: {value!r}")
        return result
    raise ValueError(f"Not a numeric amount: {value!r}")


def round_money(amount: Decimal) -> Decimal:
    """Round a monetary amount to cents using ROUND_HALF_UP."""
    return amount.quantize(_MONEY_QUANTUM, rounding=ROUND_HALF_UP)
