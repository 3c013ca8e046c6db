"""
Free-text date window parser.

Turns what a traveler types ("Feb 7-9", "early March", "last weekend of June")
into a normalized inclusive range plus a precision tag:

  exact   the text named specific days
  approx  the text named a fuzzy span (early/mid/late, a weekend, a month)

Parsers are tried from most to least specific:
  1. explicit dates   ISO range, "Feb 7-9[, 2026]", "Feb 27 to Mar 3", "Mar 5"
  2. relative month   early = 1-7, mid = 10-20, late = 21-end
  3. last week of     final seven days of the month
  4. weekend          first / second / last Saturday-Sunday of the month
  5. bare month       the whole month (exempt from the length cap)

Text that names more than one range ("Feb 7-9 or 14-16", "either", "flexible")
is rejected outright so each window stays a single idea.

Year inference: explicit year > context.trip_year > year of context.start_bound
> next occurrence of the month relative to context.today.

Deterministic: the only clock input is context.today, which callers inject.
"""

from __future__ import annotations

import calendar
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timezone

from services.api.scheduling.dates import days_inclusive
from services.api.scheduling.errors import ValidationError

DEFAULT_MAX_WINDOW_DAYS = 14

EMPTY_INPUT_MESSAGE = (
    'Please enter a date range. Examples: "Feb 7-9", "early March", '
    '"last week of June", "April"'
)
MULTI_RANGE_MESSAGE = (
    "Please suggest one date range at a time. You can add another option separately."
)
UNPARSEABLE_MESSAGE = (
    'Could not understand the date format. Try: "Feb 7-9", "early March", '
    '"last week of June", or "first weekend of April"'
)

_MONTHS: dict[str, int] = {
    "jan": 1, "january": 1,
    "feb": 2, "february": 2,
    "mar": 3, "march": 3,
    "apr": 4, "april": 4,
    "may": 5,
    "jun": 6, "june": 6,
    "jul": 7, "july": 7,
    "aug": 8, "august": 8,
    "sep": 9, "sept": 9, "september": 9,
    "oct": 10, "october": 10,
    "nov": 11, "november": 11,
    "dec": 12, "december": 12,
}

_MULTI_RANGE_PATTERNS = [
    re.compile(r"\bor\b", re.I),
    re.compile(r"\beither\b", re.I),
    re.compile(r"\banytime\b", re.I),
    re.compile(r"\bflexible\b", re.I),
    re.compile(r"\bwhenever\b", re.I),
    re.compile(r",\s*(and|&|also)", re.I),
    re.compile(r"\d+\s*[-–]\s*\d+\s*(or|,)\s*\d{1,2}\b", re.I),
]

_YEAR = r"(?:\s*,?\s*(\d{4}))?"
_ISO_RANGE_RE = re.compile(
    r"^(\d{4}-\d{2}-\d{2})\s*(?:to|–|-|through)\s*(\d{4}-\d{2}-\d{2})$", re.I
)
_SAME_MONTH_RE = re.compile(r"^([a-z]+)\s+(\d{1,2})\s*(?:–|-|to|through)\s*(\d{1,2})" + _YEAR + "$", re.I)
_CROSS_MONTH_RE = re.compile(
    r"^([a-z]+)\s+(\d{1,2})\s*(?:–|-|to|through)\s*([a-z]+)\s+(\d{1,2})" + _YEAR + "$", re.I
)
_SINGLE_DAY_RE = re.compile(r"^([a-z]+)\s+(\d{1,2})" + _YEAR + "$", re.I)
_RELATIVE_RE = re.compile(r"^(early|mid|late)\s+([a-z]+)" + _YEAR + "$", re.I)
_LAST_WEEK_RE = re.compile(r"^(?:the\s+)?last\s+week\s+(?:of\s+)?([a-z]+)" + _YEAR + "$", re.I)
_WEEKEND_RE = re.compile(
    r"^(?:the\s+)?(first|1st|last|second|2nd)\s+weekend\s+(?:of\s+)?([a-z]+)" + _YEAR + "$", re.I
)
_BARE_MONTH_RE = re.compile(r"^([a-z]+)" + _YEAR + "$", re.I)

_SATURDAY = 5


class WindowTextError(ValidationError):
    """Free text could not be turned into a single date range."""

    default_code = "UNPARSEABLE_WINDOW"


@dataclass(frozen=True)
class WindowContext:
    trip_year: int | None = None
    start_bound: str | None = None
    today: date = field(default_factory=lambda: datetime.now(timezone.utc).date())


@dataclass(frozen=True)
class ParsedWindow:
    start_date: str
    end_date: str
    precision: str
    is_bare_month: bool = False

    @property
    def days(self) -> int:
        return days_inclusive(self.start_date, self.end_date)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _month(name: str) -> int | None:
    return _MONTHS.get(name.lower().strip())


def _last_day(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def _iso(year: int, month: int, day: int) -> str:
    return date(year, month, day).isoformat()


def _target_year(month: int, ctx: WindowContext, explicit: str | None) -> int:
    if explicit:
        return int(explicit)
    if ctx.trip_year:
        return ctx.trip_year
    if ctx.start_bound and ctx.start_bound[:4].isdigit():
        return int(ctx.start_bound[:4])
    if month < ctx.today.month:
        return ctx.today.year + 1
    return ctx.today.year


def _first_saturday(year: int, month: int) -> int:
    return 1 + (_SATURDAY - date(year, month, 1).weekday()) % 7


def contains_multi_range(text: str) -> bool:
    return any(p.search(text) for p in _MULTI_RANGE_PATTERNS)


# ---------------------------------------------------------------------------
# Parsers (each returns None when the text is not its shape)
# ---------------------------------------------------------------------------

def _parse_explicit(text: str, ctx: WindowContext) -> ParsedWindow | None:
    m = _ISO_RANGE_RE.match(text)
    if m:
        try:
            start = date.fromisoformat(m.group(1)).isoformat()
            end = date.fromisoformat(m.group(2)).isoformat()
        except ValueError:
            return None
        return ParsedWindow(start, end, "exact")

    m = _SAME_MONTH_RE.match(text)
    if m:
        month = _month(m.group(1))
        if month is None:
            return None
        day1, day2 = int(m.group(2)), int(m.group(3))
        year = _target_year(month, ctx, m.group(4))
        last = _last_day(year, month)
        if not (1 <= day1 <= last and 1 <= day2 <= last) or day1 > day2:
            return None
        return ParsedWindow(_iso(year, month, day1), _iso(year, month, day2), "exact")

    m = _CROSS_MONTH_RE.match(text)
    if m:
        month1, month2 = _month(m.group(1)), _month(m.group(3))
        if month1 is None or month2 is None:
            return None
        day1, day2 = int(m.group(2)), int(m.group(4))
        year1 = _target_year(month1, ctx, m.group(5))
        # Dec 28 to Jan 3 rolls into the next year
        year2 = year1 + 1 if month2 < month1 else year1
        if not (1 <= day1 <= _last_day(year1, month1) and 1 <= day2 <= _last_day(year2, month2)):
            return None
        return ParsedWindow(_iso(year1, month1, day1), _iso(year2, month2, day2), "exact")

    m = _SINGLE_DAY_RE.match(text)
    if m:
        month = _month(m.group(1))
        if month is None:
            return None
        day = int(m.group(2))
        year = _target_year(month, ctx, m.group(3))
        if not 1 <= day <= _last_day(year, month):
            return None
        iso = _iso(year, month, day)
        return ParsedWindow(iso, iso, "exact")

    return None


def _parse_relative_month(text: str, ctx: WindowContext) -> ParsedWindow | None:
    m = _RELATIVE_RE.match(text)
    if not m:
        return None
    month = _month(m.group(2))
    if month is None:
        return None
    year = _target_year(month, ctx, m.group(3))
    position = m.group(1).lower()
    if position == "early":
        start_day, end_day = 1, 7
    elif position == "mid":
        start_day, end_day = 10, 20
    else:
        start_day, end_day = 21, _last_day(year, month)
    return ParsedWindow(_iso(year, month, start_day), _iso(year, month, end_day), "approx")


def _parse_last_week(text: str, ctx: WindowContext) -> ParsedWindow | None:
    m = _LAST_WEEK_RE.match(text)
    if not m:
        return None
    month = _month(m.group(1))
    if month is None:
        return None
    year = _target_year(month, ctx, m.group(2))
    last = _last_day(year, month)
    return ParsedWindow(_iso(year, month, last - 6), _iso(year, month, last), "approx")


def _parse_weekend(text: str, ctx: WindowContext) -> ParsedWindow | None:
    m = _WEEKEND_RE.match(text)
    if not m:
        return None
    month = _month(m.group(2))
    if month is None:
        return None
    year = _target_year(month, ctx, m.group(3))
    last = _last_day(year, month)
    ordinal = m.group(1).lower()

    if ordinal == "last":
        saturday = last - (date(year, month, last).weekday() - _SATURDAY) % 7
    elif ordinal in ("second", "2nd"):
        saturday = _first_saturday(year, month) + 7
        if saturday > last:
            return None
    else:
        saturday = _first_saturday(year, month)

    start = date(year, month, saturday)
    sunday = date.fromordinal(start.toordinal() + 1)
    return ParsedWindow(start.isoformat(), sunday.isoformat(), "approx")


def _parse_bare_month(text: str, ctx: WindowContext) -> ParsedWindow | None:
    m = _BARE_MONTH_RE.match(text)
    if not m:
        return None
    month = _month(m.group(1))
    if month is None:
        return None
    year = _target_year(month, ctx, m.group(2))
    return ParsedWindow(
        _iso(year, month, 1),
        _iso(year, month, _last_day(year, month)),
        "approx",
        is_bare_month=True,
    )


_PARSERS = (
    _parse_explicit,
    _parse_relative_month,
    _parse_last_week,
    _parse_weekend,
    _parse_bare_month,
)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def parse_window_text(
    text: object,
    context: WindowContext | None = None,
    max_window_days: int = DEFAULT_MAX_WINDOW_DAYS,
) -> ParsedWindow:
    """Parse free text into one inclusive range. Raises WindowTextError."""
    if not isinstance(text, str) or not text.strip():
        raise WindowTextError(EMPTY_INPUT_MESSAGE)
    trimmed = text.strip()
    ctx = context or WindowContext()

    if contains_multi_range(trimmed):
        raise WindowTextError(MULTI_RANGE_MESSAGE, code="MULTI_RANGE_WINDOW")

    result = None
    for parser in _PARSERS:
        try:
            result = parser(trimmed, ctx)
        except ValueError:
            # Out-of-range year such as "0000"
            result = None
        if result is not None:
            break
    if result is None:
        raise WindowTextError(UNPARSEABLE_MESSAGE)

    days = result.days
    if days < 1:
        raise WindowTextError("End date must be on or after start date.")
    if not result.is_bare_month and days > max_window_days:
        raise WindowTextError(
            f"That's {days} days, which is longer than the {max_window_days}-day limit. "
            "Try a shorter range.",
            code="WINDOW_TOO_LONG",
        )
    return result


def check_window_bounds(
    start: str, end: str, bound_start: str | None, bound_end: str | None
) -> None:
    """Raise ValidationError when [start, end] leaves the trip's planning bounds."""
    if not bound_start or not bound_end:
        return
    if start < bound_start:
        raise ValidationError(
            f"Start date {start} is before the trip's earliest date {bound_start}",
            code="WINDOW_OUT_OF_BOUNDS",
        )
    if end > bound_end:
        raise ValidationError(
            f"End date {end} is after the trip's latest date {bound_end}",
            code="WINDOW_OUT_OF_BOUNDS",
        )
