"""Normalization helpers.

Centralizes defensive parsing and placeholder handling.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any


def safe_float(value: Any) -> float | None:
    if value is None or value == "" or value == "--" or isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result) or math.isinf(result):
        return None
    return result


def safe_int(value: Any) -> int | None:
    parsed = safe_float(value)
    if parsed is None:
        return None
    return int(parsed)


def safe_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text if text else None


def gauge_value(gauges: Mapping[str, int], name: str) -> int:
    """Return a gauge for diffing; missing gauges count as 0."""
    value = gauges.get(name)
    if value is None:
        return 0
    return value


def clean_gauges(raw: Mapping[str, Any]) -> dict[str, int]:
    """Coerce gauge values to ``int``, dropping ones that cannot be parsed.

    Negative values are kept as reported.
    """
    cleaned: dict[str, int] = {}
    for name, value in raw.items():
        parsed = safe_int(value)
        if parsed is not None:
            cleaned[str(name)] = parsed
    return cleaned
