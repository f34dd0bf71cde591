from collections.abc import Iterable
from decimal import ROUND_HALF_DOWN, ROUND_HALF_UP, Decimal
from typing import Union

ZERO = Decimal("0.00")

MoneyInput = Union[Decimal, float, int, str]


def round_money(value: MoneyInput) -> Decimal:
    """
    Round monetary value to 2 decimal places using ROUND_HALF_UP.

    Negative values round half toward zero, so a refund of -10.125 is -10.12.

    Examples:
        >>> round_money(10.125)
        Decimal('10.13')
        >>> round_money("10.115")
        Decimal('10.12')
    """
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    if value < 0:
        return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_DOWN)
    return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def sum_money(values: Iterable[MoneyInput]) -> Decimal:
    """Rounded sum of monetary values; 0.00 for an empty iterable."""
    total = ZERO
    for value in values:
        total += value if isinstance(value, Decimal) else Decimal(str(value))
    return round_money(total)
