"""Best-guess typing of raw variable values stored as text."""
from __future__ import annotations

import math
import re
from typing import Any

_NUMERIC = re.compile(
    r"^[+-]?(?:\d+\.?\d*(?:[eE][+-]?\d+)?|\.\d+(?:[eE][+-]?\d+)?|0[xX][0-9a-fA-F]+|Infinity)$"
)


def is_numeric_text(text: str) -> bool:
    """True when `text` reads as a finite-or-infinite number (blank text counts, as `Number("")` is 0)."""
    stripped = text.strip()
    if not stripped:
        return True
    return bool(_NUMERIC.match(stripped))


def to_number(text: str) -> float:
    """Numeric value of text, NaN when it is not numeric."""
    stripped = text.strip()
    if not stripped:
        return 0
    if not _NUMERIC.match(stripped):
        return math.nan
    sign = -1 if stripped.startswith("-") else 1
    body = stripped.lstrip("+-")
    if body == "Infinity":
        return sign * math.inf
    if body[:2] in ("0x", "0X"):
        if stripped[0] in "+-":
            return math.nan
        return int(body, 16)
    number = float(body) * sign
    if number.is_integer() and abs(number) < 2 ** 53:
        return int(number)
    return number


def is_leading_zero_number(text: str) -> bool:
    """Numeric text starting with a zero followed by another digit, e.g. "0123" or "00"."""
    return is_numeric_text(text) and bool(re.match(r"^0\d", text))


def parse_guessed_value_type(value: Any) -> Any:
    """
    Turn stored text into the value it most likely represents.

    "true"/"false" -> bool, "null"/"undefined" -> None, numeric text -> number.
    Text with a leading zero ("0612") stays text. Non-strings are returned unchanged.
    """
    if not isinstance(value, str):
        return value
    if is_leading_zero_number(value):
        return value
    if value == "true":
        return True
    if value == "false":
        return False
    if value in ("null", "undefined"):
        return None
    if not value.strip() or not is_numeric_text(value):
        return value
    return to_number(value)
