"""
Date helpers for month keys and timezone handling
"""

import re
from calendar import monthrange
from datetime import date, datetime, timezone
from typing import Tuple

from spendlog.core.exceptions import ValidationFailedError

MONTH_PATTERN = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")

def utcnow() -> datetime:
    """Naive UTC now, matching how timestamps are stored"""
    return datetime.now(timezone.utc).replace(tzinfo=None)

def to_naive_utc(value: datetime) -> datetime:
    """
    Convert a timezone-aware datetime to naive UTC for storage
    """
    if value is not None and value.tzinfo:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value

def validate_month(month: str) -> str:
    """Reject anything that is not a YYYY-MM month key"""
    if not month or not MONTH_PATTERN.match(month):
        raise ValidationFailedError("Invalid month format. Use YYYY-MM.")
    return month

def month_key(day: date) -> str:
    return f"{day.year:04d}-{day.month:02d}"

def month_bounds(month: str) -> Tuple[date, date]:
    """First and last day of a YYYY-MM month"""
    validate_month(month)
    year, mon = (int(part) for part in month.split("-"))
    return date(year, mon, 1), date(year, mon, monthrange(year, mon)[1])

def previous_month(month: str) -> str:
    validate_month(month)
    year, mon = (int(part) for part in month.split("-"))
    if mon == 1:
        return f"{year - 1:04d}-12"
    return f"{year:04d}-{mon - 1:02d}"
