"""
Money helpers. All amounts are Decimal; floats never enter a total.
"""
from decimal import Decimal
from typing import Iterable, Union

Number = Union[Decimal, int, float, str]

DELIVERY_FEE = Decimal("15000")
FREE_DELIVERY_THRESHOLD = Decimal("100000")


def to_money(value: Number) -> Decimal:
    if isinstance(value, float):
        # str() first so 0.1 stays 0.1
        value = str(value)
    return Decimal(value)


def line_total(unit_price: Number, quantity: int) -> Decimal:
    return to_money(unit_price) * quantity


def subtotal(lines: Iterable) -> Decimal:
    """Sum of line totals for anything exposing ``unit_price`` and ``quantity``."""
    return sum((line_total(line.unit_price, line.quantity) for line in lines), Decimal("0"))


def calculate_delivery_fee(amount: Number) -> Decimal:
    return Decimal("0") if to_money(amount) >= FREE_DELIVERY_THRESHOLD else DELIVERY_FEE


def calculate_total(amount: Number) -> Decimal:
    """Subtotal plus the delivery fee it attracts."""
    return to_money(amount) + calculate_delivery_fee(amount)


def is_free_delivery(amount: Number) -> bool:
    return to_money(amount) >= FREE_DELIVERY_THRESHOLD
