"""
Currency and Amount Module

Supported ISO 4217 currency codes and exact Decimal handling for balances
and transaction amounts. NEVER uses float for monetary values: every amount
is quantized to two decimal places before it touches a balance, and
caller-supplied amounts with finer precision are rejected, never rounded.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, getcontext
from enum import Enum
from typing import Union

# Set global decimal context for financial precision
getcontext().prec = 28

AMOUNT_SCALE = 2
AMOUNT_QUANTUM = Decimal('0.1') ** AMOUNT_SCALE
ZERO = Decimal('0.00')

AmountLike = Union[Decimal, int, float, str]


class Currency(Enum):
    """ISO 4217 currency codes accepted for accounts"""
    USD = ("USD", 2)  # US Dollar
    EUR = ("EUR", 2)  # Euro
    GBP = ("GBP", 2)  # British Pound
    PLN = ("PLN", 2)  # Polish Zloty
    CHF = ("CHF", 2)  # Swiss Franc
    CAD = ("CAD", 2)  # Canadian Dollar

    def __init__(self, code: str, precision: int):
        self.code = code
        self.precision = precision

    @classmethod
    def from_code(cls, code: str) -> 'Currency':
        """Look up a currency by its code (case-insensitive)"""
        try:
            return cls[code.strip().upper()]
        except KeyError:
            raise ValueError(f"Unsupported currency: {code}")


def _to_decimal(value: AmountLike) -> Decimal:
    if isinstance(value, bool):
        raise ValueError(f"Cannot convert {value!r} to an amount")
    if isinstance(value, str):
        value = decimal_from_string(value)
    elif not isinstance(value, Decimal):
        value = Decimal(str(value))

    if not value.is_finite():
        raise ValueError(f"Amount must be finite, got {value}")
    return value


def to_amount(value: AmountLike) -> Decimal:
    """
    Convert a value to an exact two-place Decimal, rounding ROUND_HALF_UP.

    Floats are converted through their string form so that 0.1 stays 0.10
    rather than its binary expansion.

    Raises:
        ValueError: If the value is not a finite number
    """
    return _to_decimal(value).quantize(AMOUNT_QUANTUM, rounding=ROUND_HALF_UP)


def exact_amount(value: AmountLike) -> Decimal:
    """
    Convert a caller-supplied amount without rounding it.

    Raises:
        ValueError: If the value is not a finite number or has more than
            two decimal places
    """
    value = _to_decimal(value)
    quantized = value.quantize(AMOUNT_QUANTUM, rounding=ROUND_HALF_UP)
    if quantized != value:
        raise ValueError(f"Amount cannot have more than {AMOUNT_SCALE} decimal places, got {value}")
    return quantized


def format_amount(amount: Decimal) -> str:
    """Render an amount with exactly two decimal places"""
    return str(to_amount(amount))


def decimal_from_string(value: str) -> Decimal:
    """
    Parse a decimal literal such as "12.50", "-3" or "2e2"

    Raises:
        ValueError: If the string is not a valid decimal literal
    """
    if not value or not isinstance(value, str):
        raise ValueError("Value must be a non-empty string")

    try:
        return Decimal(value.strip())
    except InvalidOperation:
        raise ValueError(f"Cannot convert '{value}' to Decimal")
