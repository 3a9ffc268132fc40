from __future__ import annotations

import json
import math
import re
from decimal import Decimal
from typing import Any, Iterable, List, Mapping, Optional, Union

Number = Union[int, float]

_NUMBER_RE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")
_INT_RE = re.compile(r"^[+-]?[0-9]{1,18}$")


def coerce_number(value: Any) -> Optional[Number]:
    """
    Convert ints, floats, Decimals and numeric strings into a number.

    Whole values come back as ``int`` so they bind cleanly against integer
    and numeric columns alike. Booleans, NaN/inf and anything unparseable
    return None.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, Decimal):
        value = float(value)
    if isinstance(value, str):
        text_value = value.strip()
        if _INT_RE.match(text_value):
            return int(text_value)
        if not _NUMBER_RE.match(text_value):
            return None
        value = float(text_value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return None
        if value.is_integer():
            return int(value)
        return value
    return None


def is_number(value: Any) -> bool:
    """True for real numbers only (bool excluded)."""
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def parse_positive_int(value: Any, name: str, default: int, maximum: Optional[int] = None) -> int:
    """
    Read a pagination style integer from query-string input.

    Missing or blank input gives ``default``. Strings must be plain digits
    (no decimals or exponents). Anything that is not a whole number >= 1, or
    is above ``maximum``, raises ``ValueError`` naming ``name``.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        return default
    if isinstance(value, str):
        number = int(value.strip()) if _INT_RE.match(value.strip()) else None
    else:
        number = coerce_number(value)
    if not isinstance(number, int) or number < 1:
        raise ValueError(f"{name} must be a positive integer")
    if maximum is not None and number > maximum:
        raise ValueError(f"{name} must be at most {maximum}")
    return number


def parse_id_list(raw_ids: Iterable[Any]) -> List[int]:
    """Turn ``["1", 2, " 3 "]`` into ``[1, 2, 3]``; raise ``ValueError`` on anything else."""
    ids: List[int] = []
    for raw in raw_ids:
        number = coerce_number(raw)
        if not isinstance(number, int):
            raise ValueError("Trail ids must be a number.")
        ids.append(number)
    return ids


def split_csv_ids(raw: str) -> List[str]:
    """Split a comma separated path segment such as ``"1,2, 3"``."""
    return [piece.strip() for piece in (raw or "").split(",") if piece.strip()]


def parse_json_object(raw: Optional[str]) -> Optional[dict]:
    """
    Decode a JSON object passed as a query-string parameter.

    Returns None for missing/blank input. Raises ``ValueError`` when the text
    is not valid JSON or does not decode to an object.
    """
    if raw is None or not raw.strip():
        return None
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValueError(f"filters is not valid JSON: {e.msg}") from None
    if data is None:
        return None
    if not isinstance(data, Mapping):
        raise ValueError("filters must be a JSON object")
    return dict(data)
