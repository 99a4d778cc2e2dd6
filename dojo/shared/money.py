"""Integer-cent money helpers"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Union

from ..config import CURRENCY


def multiply_cents(amount: int, factor: Union[int, float]) -> int:
    """amount * factor rounded half-up to whole cents"""
    result = Decimal(int(amount)) * Decimal(str(factor))
    return int(result.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def percent_of(amount: int, percent: Union[int, float]) -> int:
    return multiply_cents(amount, Decimal(str(percent)) / Decimal(100))


def format_cents(amount: int, currency: str = CURRENCY) -> str:
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount) / 100:,.2f} {currency}"
