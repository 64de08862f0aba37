from __future__ import annotations

import math
import numbers
import re
from decimal import Decimal
from typing import Any

from ..models.config_models import DEFAULT_STRIP_CHARS

"""Best-effort cell coercion.

Numeric cells are parsed leniently: currency glyphs, thousands separators and
(by default) percent signs are stripped, and anything that still does not parse
becomes 0. Text after a leading number (a unit such as "12 kg") is
ignored. A malformed cell must never abort a load, so nothing here raises.
"""

__all__ = [
    "coerce_numeric",
    "coerce_text",
    "is_blank",
    "parse_numeric",
]

_NUMBER_RE = re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")


def is_blank(value: Any) -> bool:
    """None, NaN and the empty string are blank; whitespace-only text is not."""
    if value is None:
        return True
    if isinstance(value, str):
        return value == ""
    if isinstance(value, float) and math.isnan(value):
        return True
    return False


def parse_numeric(raw: Any, strip_chars: str = DEFAULT_STRIP_CHARS) -> tuple[float | int, bool]:
    """Parse ``raw`` into a number.

    Returns ``(value, fallback)`` where ``fallback`` is True when a non-blank
    value could not be parsed and was replaced by 0. Numbers pass through
    unchanged (NaN/Infinity included).
    """
    if raw is None:
        return 0, False
    # bool は int のサブクラスだが数値扱いしない
    if isinstance(raw, bool):
        return 0, True
    if isinstance(raw, numbers.Integral):
        return int(raw), False
    if isinstance(raw, numbers.Real):
        return float(raw), False
    # psycopg2 の numeric 列
    if isinstance(raw, Decimal):
        return float(raw), False
    if isinstance(raw, str):
        if raw == "":
            return 0, False
        cleaned = raw.translate({ord(c): None for c in strip_chars}).strip()
        if cleaned == "":
            return 0, False
        # 先頭の数値部分だけを採用 ("12 kg" -> 12)
        m = _NUMBER_RE.match(cleaned)
        if m is None:
            return 0, True
        return float(m.group()), False
    return 0, True


def coerce_numeric(raw: Any, strip_chars: str = DEFAULT_STRIP_CHARS) -> float | int:
    """Coerce a raw cell to a number, defaulting to 0 on any failure."""
    value, _ = parse_numeric(raw, strip_chars)
    return value


def coerce_text(raw: Any) -> str:
    """Trimmed text for non-numeric fields ('' when absent).

    Integral floats render without the trailing ``.0`` pandas would add
    (``2024.0`` -> ``"2024"``).
    """
    if is_blank(raw):
        return ""
    if isinstance(raw, float) and raw.is_integer():
        return str(int(raw))
    return str(raw).strip()
