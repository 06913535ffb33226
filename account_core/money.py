"""
Money Helpers

Decimal conversion and two-place rounding for account amounts.
NEVER uses float for stored monetary values.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, getcontext
from typing import Union

# Set global decimal context for financial precision
getcontext().prec = 28

CENTS = Decimal('0.01')
ZERO = Decimal('0.00')
CURRENCY_SYMBOL = "₱"

AmountLike = Union[Decimal, int, float, str]


def to_amount(value: AmountLike) -> Decimal:
    """
    Convert a value to a Decimal amount rounded to two places

    Args:
        value: Decimal, int, float or numeric string

    Returns:
        Decimal quantized to cents with ROUND_HALF_UP

    Raises:
        InvalidAmountError: If the value is not a finite number
    """
    # Imported here: exceptions formats its messages with this module
    from .exceptions import InvalidAmountError

    if isinstance(value, bool) or value is None:
        raise InvalidAmountError(f"Invalid amount: {value!r}")

    try:
        if isinstance(value, float):
            amount = Decimal(str(value))
        elif isinstance(value, str):
            amount = Decimal(value.strip())
        else:
            amount = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidAmountError(f"Invalid amount: {value!r}")

    if not amount.is_finite():
        raise InvalidAmountError(f"Invalid amount: {value!r}")

    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def quantize(amount: Decimal) -> Decimal:
    """Round an already-computed Decimal to cents"""
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def monthly_rate(annual_percent: Decimal) -> Decimal:
    """Monthly rate from an annual percentage (2.5 -> 0.025 / 12)"""
    return Decimal(annual_percent) / Decimal('100') / Decimal('12')


def format_amount(amount: AmountLike) -> str:
    """Format for display, e.g. ₱1,234.56 or -₱20.00"""
    value = Decimal(str(amount)) if isinstance(amount, float) else Decimal(amount)
    value = quantize(value)
    sign = "-" if value < 0 else ""
    return f"{sign}{CURRENCY_SYMBOL}{abs(value):,.2f}"
