# core/utils.py
from datetime import datetime

from core.errors import InvalidId, ValidationError


def parse_id(value, field: str = "id") -> int:
    """Parse a request identifier into the store's integer key."""
    if isinstance(value, bool):
        raise InvalidId(field, value)
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    raise InvalidId(field, value)


def parse_date(value, field: str = "date"):
    """Accept a datetime or an ISO-8601 string (None passes through)."""
    if value is None or isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {field}: {value!r}", code="INVALID_DATE")


def paginate(query, limit: int, offset: int = 0):
    return query.offset(max(offset or 0, 0)).limit(max(limit, 0)).all()
