"""Minor-unit arithmetic for Stripe amounts"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Union

Number = Union[int, float, str, Decimal]


def _round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def to_minor_units(total: Number) -> int:
    """Major-unit total (e.g. 100.00) to integer minor units (e.g. 10000)"""
    # str() keeps 19.99 from turning into 19.989999...
    return _round_half_up(Decimal(str(total)) * 100)


def platform_fee(amount_minor: int, rate: Number) -> int:
    """Platform fee in minor units, rounded independently of the amount"""
    return _round_half_up(Decimal(amount_minor) * Decimal(str(rate)))
