"""ISO date helpers. All ranges are inclusive of both endpoints."""

from __future__ import annotations

import re
from collections.abc import Iterator
from datetime import date, timedelta

from services.api.scheduling.errors import ValidationError

_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_iso_date(value: object, field: str = "date") -> date:
    """Parse a strict YYYY-MM-DD string; raise ValidationError otherwise."""
    if not isinstance(value, str) or not _ISO_DATE_RE.match(value):
        raise ValidationError(f"{field} must be a YYYY-MM-DD date")
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise ValidationError(f"{field} is not a valid calendar date") from exc


def is_iso_date(value: object) -> bool:
    if not isinstance(value, str) or not _ISO_DATE_RE.match(value):
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def add_days(day: str, n: int) -> str:
    return (date.fromisoformat(day) + timedelta(days=n)).isoformat()


def days_inclusive(start: str, end: str) -> int:
    """Number of days in [start, end]; 0 when the range is inverted."""
    delta = (date.fromisoformat(end) - date.fromisoformat(start)).days + 1
    return max(delta, 0)


def iter_days(start: str, end: str) -> Iterator[str]:
    current = date.fromisoformat(start)
    last = date.fromisoformat(end)
    while current <= last:
        yield current.isoformat()
        current += timedelta(days=1)


def option_key(start: str, end: str) -> str:
    return f"{start}_{end}"


def split_option_key(key: object) -> tuple[str, str]:
    """Split a "<start>_<end>" option key into validated ISO dates."""
    if not isinstance(key, str) or key.count("_") != 1:
        raise ValidationError("optionKey must look like YYYY-MM-DD_YYYY-MM-DD")
    start, end = key.split("_")
    parse_iso_date(start, "optionKey start")
    parse_iso_date(end, "optionKey end")
    if start > end:
        raise ValidationError("optionKey start must be on or before its end")
    return start, end
