"""Local calendar helpers.

Days are handled as timezone-naive ``date`` objects and serialized as
``YYYY-MM-DD`` keys built from the year/month/day components. Instants are
never truncated to get a day.
"""

from __future__ import annotations

import calendar
import re
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from projectflow.exceptions import ValidationError

_DAY_RE = re.compile(r"([0-9]{4})-([0-9]{2})-([0-9]{2})")


def now_local(tz: ZoneInfo | None = None) -> datetime:
    """Current wall-clock time in *tz* (system local time when None)."""
    if tz is None:
        return datetime.now().astimezone()
    return datetime.now(tz)


def local_today(tz: ZoneInfo | None = None) -> date:
    return now_local(tz).date()


def timestamp(tz: ZoneInfo | None = None) -> str:
    """ISO-8601 timestamp with offset, used for createdAt/completedDate."""
    return now_local(tz).isoformat(timespec="seconds")


def day_key(d: date) -> str:
    return f"{d.year:04d}-{d.month:02d}-{d.day:02d}"


def is_day_key(value: object) -> bool:
    if not isinstance(value, str):
        return False
    try:
        parse_day(value)
    except ValidationError:
        return False
    return True


def parse_day(value: str) -> date:
    """Parse a strict ``YYYY-MM-DD`` key. Raises ValidationError."""
    m = _DAY_RE.fullmatch(value) if isinstance(value, str) else None
    if not m:
        raise ValidationError(f"Invalid day: {value!r} (expected YYYY-MM-DD)")
    try:
        return date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
    except ValueError as e:
        raise ValidationError(f"Invalid day: {value!r} ({e})") from e


def coerce_day(value: date | str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return parse_day(value)


def shift_day(d: date, days: int) -> date:
    return d + timedelta(days=days)


def date_window(start: date, length: int) -> list[date]:
    """Every day in ``[start, start + length)`` in chronological order."""
    return [start + timedelta(days=i) for i in range(max(0, length))]


def trailing_start(today: date, length: int) -> date:
    """First day of a window of *length* days that ends on *today*."""
    return today - timedelta(days=max(1, length) - 1)


def days_in_year(year: int) -> int:
    return 366 if calendar.isleap(year) else 365


def month_days(year: int, month: int) -> list[date]:
    _, count = calendar.monthrange(year, month)
    return [date(year, month, day) for day in range(1, count + 1)]


def sunday_offset(d: date) -> int:
    """Column of *d* in a Sunday-first week (Sunday=0 ... Saturday=6)."""
    return (d.weekday() + 1) % 7


def add_months(year: int, month: int, delta: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1
