# backend/meza/services/money.py
"""
Money helpers for Meza payroll.

All currency is USD held as Decimal. Every helper returns a value already
rounded to cents (ROUND_HALF_UP), so callers can chain them without
accumulating sub-cent drift.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def D(val: Any) -> Decimal:
    if isinstance(val, Decimal):
        return val
    if val is None or isinstance(val, bool):
        return Decimal("0")
    try:
        return Decimal(str(val))
    except (InvalidOperation, ValueError, TypeError):
        return Decimal("0")


def q2(val: Any) -> Decimal:
    d = D(val)
    if not d.is_finite():
        return ZERO
    return d.quantize(CENT, rounding=ROUND_HALF_UP)


def add_money(*values: Any) -> Decimal:
    total = ZERO
    for v in values:
        total = q2(total + q2(v))
    return total


def sum_money(values: Iterable[Any]) -> Decimal:
    return add_money(*list(values))


def subtract_money(base: Any, *values: Any) -> Decimal:
    result = q2(base)
    for v in values:
        result = q2(result - q2(v))
    return result


def multiply_money(value: Any, factor: Any) -> Decimal:
    return q2(q2(value) * D(factor))


def divide_money(value: Any, divisor: Any) -> Decimal:
    """Divide and round; a zero divisor yields 0.00."""
    div = D(divisor)
    if div == 0:
        return ZERO
    return q2(q2(value) / div)


def apply_rate(value: Any, rate: Any) -> Decimal:
    return multiply_money(value, rate)


def percent_of(value: Any, pct: Any) -> Decimal:
    return q2(q2(value) * D(pct) / Decimal("100"))


def pro_rata(amount: Any, numerator: Any, denominator: Any) -> Decimal:
    den = D(denominator)
    if den == 0:
        return ZERO
    return q2(q2(amount) * D(numerator) / den)


def max_money(a: Any, b: Any) -> Decimal:
    return max(q2(a), q2(b))


def min_money(a: Any, b: Any) -> Decimal:
    return min(q2(a), q2(b))


def fmt_money(x: Any) -> str:
    return f"{q2(x):,.2f}"


__all__ = [
    "D",
    "q2",
    "ZERO",
    "add_money",
    "sum_money",
    "subtract_money",
    "multiply_money",
    "divide_money",
    "apply_rate",
    "percent_of",
    "pro_rata",
    "max_money",
    "min_money",
    "fmt_money",
]
