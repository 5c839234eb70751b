"""
Date normalization for the planning engine.

Every visit and contract date is stored as ``DD-Mon-YYYY`` text
(``01-Jul-2025``). Legacy and imported records also carry ``DD-MM-YYYY``
and full timestamps, so all parsing funnels through :func:`parse_date`;
nothing else in the code base detects date formats.

Weeks follow the regional Saturday to Friday layout. Week 1 of a week-year
is the week holding the year's first Tuesday (the middle day of a Saturday
week, the same majority rule ISO-8601 applies with Thursday), so every
calendar day belongs to exactly one ``(week_number, week_year)`` pair.
"""

import logging
import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from functools import lru_cache
from typing import Any, Union

from dateutil import parser as date_parser
from dateutil import tz
from dateutil.relativedelta import relativedelta

from app.config import settings
from app.exceptions import DateParseError, InvalidWeekError

logger = logging.getLogger(__name__)

MONTH_ABBREVIATIONS = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)
_MONTH_LOOKUP = {name.lower(): index for index, name in enumerate(MONTH_ABBREVIATIONS, start=1)}

DAY_LABELS = ("Saturday", "Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday")

# Strings produced by broken upstream serializers; never worth a generic parse
SENTINEL_VALUES = frozenset({"Invalid Date", "NaN"})

AVERAGE_DAYS_PER_MONTH = 30.44

# Python weekday() of the first and anchor days of a planning week
_WEEK_FIRST_WEEKDAY = 5  # Saturday
_ANCHOR_WEEKDAY = 1  # Tuesday
_ANCHOR_OFFSET = 3

_NAMED_MONTH_PATTERN = re.compile(r"^(\d{1,2})-([A-Za-z]{3})-(\d{4})$")
_NUMERIC_MONTH_PATTERN = re.compile(r"^(\d{1,2})-(\d{1,2})-(\d{4})$")
_YEAR_PATTERN = re.compile(r"\d{4}")

# Missing components in generic parses fall back to these, never to "now"
_GENERIC_PARSE_DEFAULT = datetime(1900, 1, 1)


@dataclass(frozen=True)
class ParseFailure:
    """Typed result for an unrecognized date. Falsy, so ``if parsed:`` works."""

    text: Any
    reason: str

    def __bool__(self) -> bool:
        return False


ParseResult = Union[date, ParseFailure]


@lru_cache()
def business_timezone():
    zone = tz.gettz(settings.BUSINESS_TIMEZONE)
    if zone is None:
        raise ValueError(f"Unknown BUSINESS_TIMEZONE {settings.BUSINESS_TIMEZONE!r}")
    return zone


def _from_datetime(value: datetime) -> date:
    if value.tzinfo is not None:
        value = value.astimezone(business_timezone())
    return value.date()


def _build(day: int, month: int, year: int, text: str) -> ParseResult:
    try:
        return date(year, month, day)
    except ValueError as e:
        return ParseFailure(text, str(e))


def parse_date(text: Any) -> ParseResult:
    """Parse any supported date shape. Never raises."""
    if isinstance(text, datetime):
        return _from_datetime(text)
    if isinstance(text, date):
        return text
    if not isinstance(text, str):
        return ParseFailure(text, f"unsupported type {type(text).__name__}")

    value = text.strip()
    if not value:
        return ParseFailure(text, "empty")
    if value in SENTINEL_VALUES:
        return ParseFailure(text, "sentinel value")

    match = _NAMED_MONTH_PATTERN.match(value)
    if match:
        day, month_name, year = match.groups()
        month = _MONTH_LOOKUP.get(month_name.lower())
        if month is None:
            return ParseFailure(text, f"unknown month {month_name!r}")
        return _build(int(day), month, int(year), text)

    match = _NUMERIC_MONTH_PATTERN.match(value)
    if match:
        day, month, year = (int(part) for part in match.groups())
        if not 1 <= month <= 12:
            return ParseFailure(text, f"month {month} out of range")
        return _build(day, month, year, text)

    # Generic parse only when the year is explicit
    if not _YEAR_PATTERN.search(value):
        return ParseFailure(text, "no four-digit year")
    try:
        parsed = date_parser.isoparse(value)
    except ValueError:
        # dayfirst would misread ISO strings, so it only applies to non-ISO text
        try:
            parsed = date_parser.parse(value, dayfirst=True, default=_GENERIC_PARSE_DEFAULT)
        except (ValueError, OverflowError) as e:
            return ParseFailure(text, str(e))
    return _from_datetime(parsed)


def parse_date_strict(text: Any) -> date:
    """Parse or raise :class:`DateParseError`."""
    result = parse_date(text)
    if isinstance(result, ParseFailure):
        raise DateParseError(result.text, result.reason)
    return result


def format_date(value: date) -> str:
    """Render canonical ``DD-Mon-YYYY``."""
    return f"{value.day:02d}-{MONTH_ABBREVIATIONS[value.month - 1]}-{value.year:04d}"


def normalize_date(text: Any) -> str | None:
    """Canonical text for ``text`` or None when it does not parse."""
    result = parse_date(text)
    if isinstance(result, ParseFailure):
        return None
    return format_date(result)


@dataclass
class ParseFailureLog:
    """
    Collects parse failures over one scan and emits a single warning.

    Usage:
        failures = ParseFailureLog("weekly grid")
        for visit in visits:
            parsed = parse_date(visit["scheduled_date"])
            if not parsed:
                failures.record(visit["id"], parsed)
        failures.flush()
    """

    scope: str
    sample_size: int = 3
    failures: list[tuple[Any, ParseFailure]] = field(default_factory=list)

    def record(self, record_id: Any, failure: ParseFailure) -> None:
        self.failures.append((record_id, failure))

    def __len__(self) -> int:
        return len(self.failures)

    def flush(self) -> int:
        count = len(self.failures)
        if count:
            sample = ", ".join(
                f"{record_id}={failure.text!r}" for record_id, failure in self.failures[: self.sample_size]
            )
            logger.warning(f"{self.scope}: skipped {count} record(s) with unparsable dates ({sample})")
        self.failures = []
        return count


# Calendar arithmetic

def add_days(value: date, days: int) -> date:
    return value + timedelta(days=days)


def add_months(value: date, months: int) -> date:
    """Calendar month addition, clamped to the last day of short months."""
    return value + relativedelta(months=months)


def months_between(start: date, end: date) -> int:
    """Whole months covering ``start``..``end`` using the average month length."""
    return math.ceil((end - start).days / AVERAGE_DAYS_PER_MONTH)


def today() -> date:
    return datetime.now(business_timezone()).date()


def today_text() -> str:
    return format_date(today())


# Week scheme

def day_index(value: date) -> int:
    """Position inside the planning week, 0 = Saturday .. 6 = Friday."""
    return (value.weekday() - _WEEK_FIRST_WEEKDAY) % 7


def day_label(value: date) -> str:
    return DAY_LABELS[day_index(value)]


def _week_saturday(value: date) -> date:
    return value - timedelta(days=day_index(value))


def _first_week_start(year: int) -> date:
    january_first = date(year, 1, 1)
    first_tuesday = january_first + timedelta(days=(_ANCHOR_WEEKDAY - january_first.weekday()) % 7)
    return first_tuesday - timedelta(days=_ANCHOR_OFFSET)


def week_of(value: date) -> tuple[int, int]:
    """Return ``(week_number, week_year)`` for a calendar date."""
    start = _week_saturday(value)
    year = (start + timedelta(days=_ANCHOR_OFFSET)).year
    return (start - _first_week_start(year)).days // 7 + 1, year


def week_number(value: date) -> int:
    return week_of(value)[0]


def week_year(value: date) -> int:
    return week_of(value)[1]


def weeks_in_year(year: int) -> int:
    return (_first_week_start(year + 1) - _first_week_start(year)).days // 7


def week_start_date(week: int, year: int) -> date:
    total = weeks_in_year(year)
    if not 1 <= week <= total:
        raise InvalidWeekError(week, year, total)
    return _first_week_start(year) + timedelta(weeks=week - 1)


def week_end_date(week: int, year: int) -> date:
    return week_start_date(week, year) + timedelta(days=6)


def week_start(week: int, year: int) -> str:
    return format_date(week_start_date(week, year))


def week_end(week: int, year: int) -> str:
    return format_date(week_end_date(week, year))


def shift_week(week: int, year: int, delta: int) -> tuple[int, int]:
    """Move ``delta`` weeks forward or back, rolling over week-years."""
    return week_of(week_start_date(week, year) + timedelta(weeks=delta))
