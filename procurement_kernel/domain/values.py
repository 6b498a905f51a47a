"""
Decimal value helpers.

Responsibility:
    Convert boundary input into ``Decimal`` and provide the small numeric
    primitives the engines share: clamping, safe ratios, positive parts and
    display formatting.

Architecture position:
    Kernel > Domain -- pure functions, zero I/O.

Invariants enforced:
    - Floats never take part in arithmetic; they are converted through
      ``str()`` at the boundary.
    - NaN and infinities are treated as absent (``None``), never as numbers.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

ZERO = Decimal("0")
ONE = Decimal("1")
HUNDRED = Decimal("100")

MISSING_DISPLAY = "—"


def to_decimal(value: Any) -> Decimal | None:
    """Coerce ``value`` to a finite Decimal, or ``None`` when absent.

    Blank strings, ``None``, booleans, NaN, infinities and unparseable text
    all map to ``None``.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        result = Decimal(str(value))
    elif isinstance(value, str):
        text = value.strip().replace(",", "")
        if not text:
            return None
        try:
            result = Decimal(text)
        except InvalidOperation:
            return None
    else:
        return None
    if not result.is_finite():
        return None
    return result


def decimal_or_zero(value: Any) -> Decimal:
    result = to_decimal(value)
    return ZERO if result is None else result


def clamp01(value: Any) -> Decimal:
    """Clamp into ``[0, 1]``; absent values become 0."""
    number = to_decimal(value)
    if number is None:
        return ZERO
    if number < ZERO:
        return ZERO
    if number > ONE:
        return ONE
    return number


def positive_part(value: Decimal) -> Decimal:
    return value if value > ZERO else ZERO


def safe_ratio(numerator: Decimal, denominator: Decimal) -> Decimal:
    """``numerator / denominator``, or 0 when the denominator is not positive."""
    if denominator <= ZERO:
        return ZERO
    return numerator / denominator


def is_positive(value: Decimal | None) -> bool:
    return value is not None and value > ZERO


def format_money(value: Decimal | None, currency: str = "PEN") -> str:
    if value is None:
        return MISSING_DISPLAY
    return f"{currency} {value:,.2f}"


def format_percent(value: Decimal | None, digits: int = 1) -> str:
    """Render a ``[0, 1]`` fraction as a percentage string."""
    if value is None:
        return MISSING_DISPLAY
    return f"{value * HUNDRED:.{digits}f}%"
