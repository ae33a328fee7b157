"""Shared utility functions.

parse_date:      lenient date parsing (returns None on bad input)
parse_datetime:  lenient datetime parsing (returns None on bad input)
coerce_value:    JSON value → Python value for a given SQLAlchemy column
"""
import logging
from datetime import date, datetime

import sqlalchemy as sa

from joinery.core.exceptions import ValidationError

logger = logging.getLogger(__name__)

_TRUE = {"true", "t", "1", "yes"}
_FALSE = {"false", "f", "0", "no"}


def parse_date(value):
    """Parse a date string (ISO or DD.MM.YYYY) to a date object.

    Returns None for empty/invalid input. Supports:
    - YYYY-MM-DD (ISO format)
    - YYYY-MM-DDTHH:MM:SS (datetime ISO → .date())
    - DD.MM.YYYY (European format)
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except (ValueError, TypeError):
        pass
    try:
        return datetime.fromisoformat(str(value)).date()
    except (ValueError, TypeError):
        pass
    try:
        return datetime.strptime(str(value), "%d.%m.%Y").date()
    except (ValueError, TypeError):
        return None


def parse_datetime(value):
    """Parse an ISO datetime (a trailing ``Z`` is accepted). None on bad input."""
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except (ValueError, TypeError):
        return None


def coerce_value(column, value):
    """Convert a JSON-ish value into what ``column`` stores.

    Raises ValidationError when a non-empty value cannot be converted, so
    malformed payloads and filters are rejected before reaching the store.
    """
    if value is None:
        return None
    col_type = column.type
    try:
        python_type = col_type.python_type
    except NotImplementedError:
        return value
    if value == "" and python_type is not str:
        return None

    if isinstance(col_type, sa.DateTime):
        parsed = parse_datetime(value)
    elif isinstance(col_type, sa.Date):
        parsed = parse_date(value)
    elif isinstance(col_type, sa.Boolean):
        if isinstance(value, bool):
            return value
        lowered = str(value).strip().lower()
        parsed = True if lowered in _TRUE else False if lowered in _FALSE else None
    elif python_type is int and not isinstance(value, bool):
        try:
            return int(value)
        except (TypeError, ValueError):
            parsed = None
    elif python_type is float and not isinstance(value, bool):
        try:
            return float(value)
        except (TypeError, ValueError):
            parsed = None
    elif python_type is str:
        return value if isinstance(value, str) else str(value)
    else:
        return value

    if parsed is None:
        raise ValidationError(
            f"Invalid value for column '{column.name}'",
            details={"column": column.name, "value": str(value)[:100]},
        )
    return parsed
