"""Value coercion shared by every adapter."""

from __future__ import annotations

import math
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional, Sequence, TypeVar

T = TypeVar("T")

_UNIT_MULTIPLIERS = {"k": Decimal(1_000), "m": Decimal(1_000_000), "b": Decimal(1_000_000_000)}

_NUMBER_RE = re.compile(
    r"(?P<num>[-+]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][-+]?\d+)?)\s*(?P<unit>[kKmMbB](?![A-Za-z]))?"
)


def parse_numeric(value: Any) -> Optional[float]:
    """Parse numbers like ``4.2``, ``"12%"``, ``"$2,000"`` or ``"1.2M"``.

    ``K``/``M``/``B`` suffixes scale by 1e3/1e6/1e9. Returns None when nothing
    finite can be extracted.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
        return number if math.isfinite(number) else None
    if not isinstance(value, str):
        return None

    cleaned = value.replace("$", "").replace(",", "").replace("%", "").strip()
    match = _NUMBER_RE.search(cleaned)
    if not match:
        return None
    try:
        number = Decimal(match.group("num"))
    except InvalidOperation:
        return None
    unit = match.group("unit")
    if unit:
        number *= _UNIT_MULTIPLIERS[unit.lower()]
    result = float(number)
    return result if math.isfinite(result) else None


def coerce_tvl(value: Any) -> float:
    """TVL is always a finite, non-negative float."""
    number = parse_numeric(value)
    if number is None or number < 0:
        return 0.0
    return number


def optional_str(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value
    return None


def first_present(record: Dict[str, Any], keys: Sequence[str]) -> Any:
    """First value among ``keys`` that is not None."""
    for key in keys:
        value = record.get(key)
        if value is not None:
            return value
    return None


def top_by_tvl(items: Iterable[T], limit: int = 50, key=None) -> List[T]:
    """Largest TVL first; ties keep their incoming order (sorted() is stable)."""
    key = key or (lambda item: getattr(item, "tvl_usd", 0.0))
    return sorted(items, key=lambda item: coerce_tvl(key(item)), reverse=True)[:limit]
