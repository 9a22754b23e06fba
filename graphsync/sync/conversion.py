"""
Front-matter value conversion and batch sizing.

``convert_value`` returns None when a value cannot be represented as the
mapping's declared type; callers drop the property for that document.
"""

import math
from datetime import date, datetime
from typing import Any, Optional

from graphsync.shared.config import NodePropertyType

_BATCH_TIERS = ((100, 50), (1000, 100), (5000, 250))
_MAX_BATCH_SIZE = 500


def calculate_batch_size(total: int, override: Optional[int] = None) -> int:
    """Batch size for ``total`` candidates, scaling from 50 up to 500."""
    if override:
        return max(1, int(override))
    for ceiling, size in _BATCH_TIERS:
        if total <= ceiling:
            return size
    return _MAX_BATCH_SIZE


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _parse_number(value: Any) -> Optional[float]:
    if _is_number(value):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number):
        return None
    return number


def _to_boolean(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered == "true":
            return True
        if lowered == "false":
            return False
    return None


def _to_integer(value: Any) -> Optional[int]:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    number = _parse_number(value)
    if number is None or math.isinf(number):
        return None
    return math.floor(number)


def _to_float(value: Any) -> Optional[float]:
    if _is_number(value):
        return float(value)
    return _parse_number(value)


def _parse_datetime(text: str) -> Optional[datetime]:
    text = text.strip()
    if not text:
        return None
    # fromisoformat rejects a trailing "Z" before Python 3.11
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def _to_date(value: Any) -> Optional[str]:
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, str):
        parsed = _parse_datetime(value)
        return parsed.date().isoformat() if parsed else None
    return None


def _to_datetime(value: Any) -> Optional[str]:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day).isoformat()
    if isinstance(value, str):
        parsed = _parse_datetime(value)
        return parsed.isoformat() if parsed else None
    return None


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


def _to_string(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (list, tuple)):
        return ", ".join(_stringify(v) for v in value)
    return _stringify(value)


def _to_list_string(value: Any) -> list:
    if isinstance(value, (list, tuple)):
        return [_stringify(v) for v in value]
    return [_stringify(value)]


_CONVERTERS = {
    NodePropertyType.BOOLEAN: _to_boolean,
    NodePropertyType.INTEGER: _to_integer,
    NodePropertyType.FLOAT: _to_float,
    NodePropertyType.DATE: _to_date,
    NodePropertyType.DATETIME: _to_datetime,
    NodePropertyType.STRING: _to_string,
    NodePropertyType.LIST_STRING: _to_list_string,
}


def convert_value(value: Any, property_type: NodePropertyType) -> Any:
    if value is None:
        return None
    converter = _CONVERTERS.get(NodePropertyType(property_type), _to_string)
    return converter(value)
