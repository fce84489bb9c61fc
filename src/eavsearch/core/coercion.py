"""Value coercion — typed custom-field values to and from their stored string form.

Every custom-field value is stored as a string in the EAV value table. The
functions here are the single place where a ``ValueType`` decides how a value
is serialized and parsed:

  - TEXT / ENUM: the string itself
  - NUMBER: shortest decimal string that round-trips through ``float``
  - DATE: calendar date ``YYYY-MM-DD`` (time of day is discarded)

``None`` always means "unset" and passes through unchanged. Enum membership is
checked by the record aggregate, not here.
"""

from __future__ import annotations

import math
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from eavsearch.core.exceptions import InvalidValue
from eavsearch.models.field import ValueType

TypedValue = str | float | date | None


def to_storage_form(value_type: ValueType, value: Any) -> str | None:
    """Serialize a typed value to the string stored in the value table.

    Raises:
        InvalidValue: If the value cannot be represented as ``value_type``.
    """
    if value is None:
        return None
    if value_type is ValueType.NUMBER:
        return _format_number(_to_float(value))
    if value_type is ValueType.DATE:
        return _to_date(value).isoformat()
    if value_type in (ValueType.TEXT, ValueType.ENUM):
        return str(value)
    raise InvalidValue(f"Unsupported value type: {value_type!r}")


def from_storage_form(value_type: ValueType, raw: str | None) -> TypedValue:
    """Parse a stored string back into its typed value.

    Raises:
        InvalidValue: If ``raw`` is not a valid serialization for ``value_type``.
    """
    if raw is None:
        return None
    if value_type is ValueType.NUMBER:
        return _to_float(raw)
    if value_type is ValueType.DATE:
        try:
            return date.fromisoformat(raw)
        except ValueError as e:
            raise InvalidValue(f"Stored value {raw!r} is not a calendar date") from e
    if value_type in (ValueType.TEXT, ValueType.ENUM):
        return raw
    raise InvalidValue(f"Unsupported value type: {value_type!r}")


def to_document_value(value_type: ValueType, value: Any) -> str | float | None:
    """Render a value in the JSON-native form used by flattened index documents."""
    stored = to_storage_form(value_type, value)
    if stored is None:
        return None
    if value_type is ValueType.NUMBER:
        return float(stored)
    return stored


def _to_float(value: Any) -> float:
    if isinstance(value, bool):
        raise InvalidValue(f"Boolean {value!r} is not a number")
    if isinstance(value, (int, float, Decimal)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError as e:
            raise InvalidValue(f"{value!r} is not a number") from e
    else:
        raise InvalidValue(f"{type(value).__name__} value {value!r} is not a number")
    if math.isnan(number) or math.isinf(number):
        raise InvalidValue(f"{value!r} is not a finite number")
    return number


def _format_number(number: float) -> str:
    if number.is_integer() and abs(number) < 1e15:
        return str(int(number))
    return repr(number)


def _to_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return date.fromisoformat(text)
        except ValueError:
            pass
        try:
            return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
        except ValueError as e:
            raise InvalidValue(f"{value!r} is not a valid date") from e
    raise InvalidValue(f"{type(value).__name__} value {value!r} is not a date")
