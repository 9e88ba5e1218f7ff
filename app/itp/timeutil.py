"""
ITP Tracker — Date helpers

Day boundaries, days-remaining arithmetic and the retention cutoff.
"""
import calendar
import math
from datetime import date, datetime, time, timedelta
from typing import Union

DateLike = Union[date, datetime]

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S.%f"
SECONDS_PER_DAY = 86400


def _as_datetime(value: DateLike) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.min)


def start_of_day(value: DateLike) -> datetime:
    """00:00:00.000000 of the given day."""
    return datetime.combine(_as_datetime(value).date(), time.min)


def end_of_day(value: DateLike) -> datetime:
    """23:59:59.999999 of the given day."""
    return datetime.combine(_as_datetime(value).date(), time.max)


def days_remaining(expiration: DateLike, now: datetime) -> int:
    """Whole days until expiration, rounded up.

    Zero or negative means the inspection has already expired.
    """
    delta = _as_datetime(expiration) - now
    return math.ceil(delta.total_seconds() / SECONDS_PER_DAY)


def months_before(value: datetime, months: int) -> datetime:
    """Same wall-clock time `months` calendar months earlier.

    The day is clamped to the target month's length (Aug 31 -> Feb 28).
    """
    month_index = value.year * 12 + (value.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def format_date(value: DateLike) -> str:
    """DD.MM.YYYY, as printed in reminder messages."""
    return _as_datetime(value).strftime("%d.%m.%Y")


def to_db(value: DateLike) -> str:
    return _as_datetime(value).strftime(TIMESTAMP_FORMAT)


def from_db(value: str) -> datetime:
    if "." in value:
        return datetime.strptime(value, TIMESTAMP_FORMAT)
    # Tolerate rows written without the fractional part
    return datetime.strptime(value, "%Y-%m-%d %H:%M:%S")


def add_days(value: DateLike, days: int) -> datetime:
    return _as_datetime(value) + timedelta(days=days)
