# litemap/core/mapping/transform.py
"""
TRANSFORM MODULE - Convert values between Python objects and SQLite storage

Rules (a registered transformer wins over all of them):
    simple-array  ["a", "b"]          <-> "a,b"
    simple-json   {"x": 1}            <-> '{"x": 1}'
    date          date / datetime     <-> ISO-8601 text
    datetime      aware datetime      <-> epoch milliseconds (INTEGER column)
    boolean       True / False        <-> 1 / 0

None is passed through untouched in both directions.
"""

import json
from datetime import date, datetime, timedelta, timezone
from typing import Any

from litemap.core.schemas import ColumnDescriptor, ColumnType


EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# TRANSFORMERS
# ============================================================================


def _transformer_from(transformer: Any, value: Any) -> Any:
    # `from` is a keyword, so accept `from_` as well as an attribute literally named "from"
    reader = getattr(transformer, "from_", None) or getattr(transformer, "from")
    return reader(value)


# ============================================================================
# DATETIME HELPERS
# ============================================================================


def datetime_to_millis(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    delta = value - EPOCH
    return (delta.days * 86_400 + delta.seconds) * 1000 + delta.microseconds // 1000


def millis_to_datetime(value: Any) -> datetime:
    return EPOCH + timedelta(milliseconds=int(value))


def parse_iso(value: str) -> Any:
    """Date-only strings become `date`, anything else `datetime`."""
    if len(value) == 10:
        return date.fromisoformat(value)
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


# ============================================================================
# PUBLIC API
# ============================================================================


def to_database(column: ColumnDescriptor, value: Any) -> Any:
    """Serialize an entity property value for storage."""
    if column.transformer is not None:
        return column.transformer.to(value)

    if value is None:
        return None

    if column.type == ColumnType.ARRAY and isinstance(value, (list, tuple)):
        return ",".join(str(item) for item in value)

    if column.type == ColumnType.JSON:
        return json.dumps(value)

    if column.type == ColumnType.DATE and isinstance(value, (date, datetime)):
        return value.isoformat()

    if column.type == ColumnType.DATETIME and isinstance(value, datetime):
        return datetime_to_millis(value)

    if column.type == ColumnType.BOOLEAN and isinstance(value, bool):
        return int(value)

    return value


def from_database(column: ColumnDescriptor, value: Any) -> Any:
    """Turn a raw column value back into the entity's property value."""
    if column.transformer is not None:
        return _transformer_from(column.transformer, value)

    if value is None:
        return None

    if column.type == ColumnType.ARRAY and isinstance(value, str):
        return [] if value == "" else value.split(",")

    if column.type == ColumnType.JSON and isinstance(value, str):
        try:
            return json.loads(value)
        except ValueError:
            return value

    if column.type == ColumnType.DATE and isinstance(value, str):
        try:
            return parse_iso(value)
        except ValueError:
            return value

    if column.type == ColumnType.DATETIME and isinstance(value, (int, float)):
        return millis_to_datetime(value)

    if column.type == ColumnType.BOOLEAN and isinstance(value, int):
        return bool(value)

    return value


def now_for(column: ColumnDescriptor) -> Any:
    """Current time, serialized the way `column` stores it."""
    return to_database(column, utc_now())
