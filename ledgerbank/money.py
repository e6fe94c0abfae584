"""
Monetary Amount Module

Fixed-point handling for balances and transaction amounts. Values are
Decimal with two fractional digits, matching DECIMAL(15,2) columns.
NEVER uses float arithmetic for monetary values.
"""

from decimal import Decimal, InvalidOperation, getcontext
from typing import Union

from .errors import ValidationError

# Set global decimal context for financial precision
getcontext().prec = 28

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

# DECIMAL(15,2): 13 integer digits
MAX_AMOUNT = Decimal("9999999999999.99")

AmountLike = Union[Decimal, int, str, float]


def to_decimal(value: AmountLike) -> Decimal:
    """
    Convert user input to Decimal without rounding.

    Floats go through str() so 0.1 becomes Decimal('0.1'), not its binary
    expansion.
    """
    if isinstance(value, bool):
        raise ValidationError(f"Invalid amount: {value!r}")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation:
            raise ValidationError(f"Invalid amount: {value!r}")
    else:
        raise ValidationError(f"Invalid amount type: {type(value).__name__}")

    if not result.is_finite():
        raise ValidationError(f"Amount must be finite, got {value!r}")
    return result


def parse_amount(value: AmountLike) -> Decimal:
    """
    Validate a transaction amount and return it quantized to cents.

    Raises:
        ValidationError: if the amount is not positive, has more than two
            fractional digits, or does not fit DECIMAL(15,2)
    """
    amount = to_decimal(value)

    if amount <= 0:
        raise ValidationError(f"Amount must be positive, got {amount}")

    if amount != amount.quantize(CENT):
        raise ValidationError(f"Amount {amount} has more than two decimal places")

    if amount > MAX_AMOUNT:
        raise ValidationError(f"Amount {amount} exceeds maximum {MAX_AMOUNT}")

    return amount.quantize(CENT)


def from_storage(value) -> Decimal:
    """Read a stored balance or amount (TEXT in SQLite, NUMERIC in PostgreSQL)"""
    if value is None:
        return ZERO
    return Decimal(str(value)).quantize(CENT)


def to_storage(amount: Decimal) -> str:
    """Canonical string form written to storage, e.g. '50.00'"""
    return str(amount.quantize(CENT))
