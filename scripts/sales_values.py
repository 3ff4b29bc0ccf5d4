"""Lenient scalar coercion for loosely typed sales-report values."""

from __future__ import annotations

import math
import numbers
import re
from datetime import date


LINE_BREAKS = re.compile(r"[\r\n]")
WHITESPACE = re.compile(r"\s")
NON_NUMERIC = re.compile(r"[^0-9.\-]")
LEADING_FLOAT = re.compile(r"^-?(?:\d+(?:\.\d*)?|\.\d+)")


def _is_number(value: object) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


def dimension_label(value: object) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def clean_string(value: object) -> str:
    if value is None:
        return ""
    return LINE_BREAKS.sub("", dimension_label(value)).strip()


def clean_date(value: object) -> str:
    if isinstance(value, date):
        # NaT is a datetime but never equals itself
        if value != value:
            return ""
        return value.strftime("%Y-%m-%d")
    return clean_string(value)


def parse_num(value: object) -> float:
    """Parse a number out of noisy text such as ``"1 234,50 ₽"``.

    Falls back to ``0.0`` for anything without a leading numeric literal.
    """
    if _is_number(value):
        number = float(value)
        return 0.0 if math.isnan(number) else number
    if not value:
        return 0.0

    text = LINE_BREAKS.sub("", str(value))
    text = WHITESPACE.sub("", text)
    text = text.replace(",", ".", 1)
    text = NON_NUMERIC.sub("", text)

    match = LEADING_FLOAT.match(text)
    if not match:
        return 0.0
    return float(match.group(0))


def is_numeric_label(label: str) -> bool:
    if "_" in label or label.strip() != label:
        return False
    try:
        number = float(label)
    except ValueError:
        return False
    return not math.isnan(number)
