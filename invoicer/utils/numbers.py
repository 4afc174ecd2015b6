"""Number coercion and currency formatting helpers."""

from __future__ import annotations

import math
import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

_CENT = Decimal("0.01")
# "1,250" and "12,345.67"; a lone comma such as "1,5" is not a number
_GROUPED = re.compile(r"^[+-]?\d{1,3}(,\d{3})+(\.\d+)?$")


def coerce_number(value: Any) -> float:
    """Return ``value`` as a finite float, falling back to ``0.0``.

    Editor fields arrive as whatever the browser sent: numbers, numeric
    strings, strings with well-formed thousands separators, empty strings or
    garbage. Anything that cannot be read as a finite number counts as zero.
    """

    if value is None or isinstance(value, bool):
        return 0.0
    try:
        if isinstance(value, (int, float, Decimal)):
            number = float(value)
        else:
            text = str(value).strip()
            if "," in text:
                if not _GROUPED.match(text):
                    return 0.0
                text = text.replace(",", "")
            if not text:
                return 0.0
            number = float(text)
    except (TypeError, ValueError, OverflowError):
        return 0.0
    if not math.isfinite(number):
        return 0.0
    return number


def finite_or_zero(value: float) -> float:
    """Arithmetic on finite inputs can still overflow; such results count as zero."""

    return value if math.isfinite(value) else 0.0


def round_currency(value: float) -> float:
    """Round half-up to two decimal places."""

    try:
        return float(Decimal(str(value)).quantize(_CENT, rounding=ROUND_HALF_UP))
    except InvalidOperation:
        return 0.0


def format_money(value: float, symbol: str = "$") -> str:
    amount = round_currency(value)
    sign = "-" if amount < 0 else ""
    return f"{sign}{symbol}{abs(amount):,.2f}"
