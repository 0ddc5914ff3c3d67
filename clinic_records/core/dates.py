"""
Date derivation for request records.

End dates follow the inclusive convention used on the request forms: a
seven day request starting on the 2nd ends on the 8th. All functions are
pure and return ``None`` ("unset") instead of raising on bad input, so
callers treat a missing result as a validation failure.
"""

from datetime import date, datetime, timedelta
from enum import IntEnum
from typing import Any, Iterable


class Weekday(IntEnum):
    """Weekdays numbered like :meth:`datetime.date.weekday`."""

    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6

    @classmethod
    def parse(cls, value: str) -> "Weekday":
        """Parse a weekday name or three-letter abbreviation (case-insensitive)."""
        token = value.strip().upper()
        for day in cls:
            if day.name == token or day.name[:3] == token:
                return day
        raise ValueError(f"Unknown weekday: {value!r}")


# Blood tests are drawn on Tuesdays and Fridays
TEST_WEEKDAYS = frozenset({Weekday.TUESDAY, Weekday.FRIDAY})


def parse_date(value: Any) -> date | None:
    """
    Coerce a draft value to a date.

    Accepts ``date``/``datetime`` objects and ISO ``YYYY-MM-DD`` strings
    (a trailing time component is ignored). Anything else yields ``None``.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            return None
    return None


def parse_duration(value: Any) -> int | None:
    """Coerce a draft value to a whole number of days, or ``None``."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return int(text)
        except ValueError:
            return None
    return None


def compute_end_date(start_date: Any, duration_days: Any) -> date | None:
    """
    Compute the inclusive end date of a request.

    Args:
        start_date: First day of the request (date or ISO string)
        duration_days: Number of days covered, at least 1

    Returns:
        ``start_date + (duration_days - 1)`` days, or ``None`` when the start
        date is not a valid date or the duration is below 1
    """
    start = parse_date(start_date)
    duration = parse_duration(duration_days)
    if start is None or duration is None or duration < 1:
        return None
    try:
        return start + timedelta(days=duration - 1)
    except OverflowError:
        return None


def _weekday_numbers(values: Iterable[Any]) -> set[int] | None:
    """Weekday numbers from ints or names; None if any entry is not a weekday."""
    numbers: set[int] = set()
    for value in values:
        try:
            if isinstance(value, str) and not value.strip().isdigit():
                day = Weekday.parse(value)
            else:
                day = Weekday(int(value))
        except (TypeError, ValueError):
            return None
        numbers.add(int(day))
    return numbers


def next_allowed_date(today: Any, allowed_weekdays: Iterable[int | str]) -> date | None:
    """
    Find the earliest date on or after ``today`` that falls on an allowed weekday.

    ``today`` itself is eligible: if it already falls on an allowed weekday
    it is returned unchanged.

    Args:
        today: Reference date (date or ISO string)
        allowed_weekdays: Weekday numbers (Monday = 0) or names that are acceptable

    Returns:
        The matching date, or ``None`` for an invalid reference date, an
        unrecognised weekday or an empty weekday set
    """
    reference = parse_date(today)
    allowed = _weekday_numbers(allowed_weekdays)
    if reference is None or not allowed:
        return None

    for offset in range(7):
        candidate = reference + timedelta(days=offset)
        if candidate.weekday() in allowed:
            return candidate
    return None


def next_test_date(today: Any) -> date | None:
    """Next Tuesday or Friday on or after ``today``."""
    return next_allowed_date(today, TEST_WEEKDAYS)


def format_date(value: date | None) -> str:
    """Render a derived date the way draft fields store it (ISO or empty)."""
    return value.isoformat() if value is not None else ""
