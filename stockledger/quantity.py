"""Quantity parsing, clamping and display formatting."""

from __future__ import annotations

import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from stockledger.errors import InvalidQuantityInput

_NUMERIC_TEXT = re.compile(r"^\d*\.?\d*$")
_TWO_PLACES = Decimal("0.01")
ZERO = Decimal("0")
ONE = Decimal("1")


def to_quantity(value: object) -> Decimal:
    """Convert a number or numeric string to Decimal without float noise."""
    if isinstance(value, Decimal):
        return value
    if value is None or value == "":
        return ZERO
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise InvalidQuantityInput(str(value)) from exc


def is_numeric_text(text: str) -> bool:
    """Return True when text looks like digits with an optional decimal point."""
    return bool(_NUMERIC_TEXT.match(text))


def decimal_places(text: str) -> int:
    if "." not in text:
        return 0
    return len(text.split(".", 1)[1])


def parse_quantity(text: str, allow_decimal: bool = True) -> Decimal | None:
    """Parse user text into a quantity.

    Returns None for empty input. Raises InvalidQuantityInput for anything
    that is not a non-negative number, or that carries a fraction when the
    item only takes whole units.
    """
    raw = text.strip()
    if not raw:
        return None
    if not is_numeric_text(raw) or raw == ".":
        raise InvalidQuantityInput(text)
    if "." in raw and not allow_decimal:
        raise InvalidQuantityInput(text)
    value = Decimal(raw)
    if not allow_decimal and value != value.to_integral_value():
        raise InvalidQuantityInput(text)
    return value


def clamp(value: Decimal, floor: Decimal, ceiling: Decimal | None = None) -> Decimal:
    if value < floor:
        return floor
    if ceiling is not None and value > ceiling:
        return ceiling
    return value


def format_quantity(value: object) -> str:
    """Render integral quantities without decimals, others with 1 or 2 places."""
    number = to_quantity(value)
    if number == number.to_integral_value():
        return str(int(number))
    rounded = number.quantize(_TWO_PLACES, rounding=ROUND_HALF_UP)
    if rounded == rounded.to_integral_value():
        return str(int(rounded))
    text = f"{rounded:.2f}"
    if text.endswith("0"):
        text = text[:-1]
    return text


def format_money(value: object) -> str:
    return f"{to_quantity(value).quantize(_TWO_PLACES, rounding=ROUND_HALF_UP):,.2f}"
