"""Normalization helpers.

Centralizes defensive parsing of device-supplied scalars and pruning of
empty containers from state patches.
"""

from __future__ import annotations

import math
from typing import Any

# Values devices publish in place of a reading when none is available.
_VALUE_PLACEHOLDERS = frozenset({"", "--", "NaN", "nan"})


def is_placeholder(value: Any) -> bool:
    """Whether a sensor value stands for "no reading" rather than bad input."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() in _VALUE_PLACEHOLDERS
    return isinstance(value, float) and math.isnan(value)


def reject_json_constant(name: str) -> Any:
    """``parse_constant`` hook: ``NaN`` and ``Infinity`` are not JSON."""
    raise ValueError(f"{name} is not valid JSON")


def safe_float(value: Any) -> float | None:
    """Parse a finite float, returning ``None`` for placeholders and garbage.

    Booleans are rejected even though ``float(True)`` would succeed.
    """
    if isinstance(value, bool) or is_placeholder(value):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(result):
        return None
    return result


def safe_str(value: Any) -> str | None:
    """Stringify scalars; ``None`` for empty values and containers."""
    if value is None or isinstance(value, (dict, list)):
        return None
    text = str(value).strip()
    return text if text else None


def is_meaningful(value: Any) -> bool:
    """Return True if the value should be included in a state patch.

    Strings are always kept, so a device can overwrite a field with
    ``""`` or ``"--"``.
    """
    if value is None:
        return False
    if value == {}:
        return False
    return bool(value != [])


def prune_patch(data: Any) -> Any:
    """Recursively drop ``None`` and empty containers from a patch structure.

    - Dicts: remove keys with non-meaningful values; recurse into nested dicts/lists.
    - Lists: prune elements and drop non-meaningful items.
    - Scalars: returned as-is.
    """
    if isinstance(data, dict):
        pruned: dict[str, Any] = {}
        for key, value in data.items():
            cleaned = prune_patch(value)
            if is_meaningful(cleaned):
                pruned[key] = cleaned
        return pruned

    if isinstance(data, list):
        items: list[Any] = []
        for item in data:
            cleaned = prune_patch(item)
            if is_meaningful(cleaned):
                items.append(cleaned)
        return items

    return data
