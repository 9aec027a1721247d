"""
Date utilities for rent accounting
Month arithmetic for anniversary-day billing cycles
"""

from datetime import date, datetime
from dateutil.relativedelta import relativedelta
from typing import Optional, Union

DateLike = Union[date, datetime, str]


def month_start(d: date) -> date:
    """First calendar day of the month containing d"""
    return d.replace(day=1)


def eomonth(d: date, months: int = 0) -> date:
    """
    Calculate end of month
    Args:
        d: Starting date
        months: Number of months to add/subtract
    Returns:
        Last day of the month, adjusted by months
    """
    return month_start(d) + relativedelta(months=months + 1, days=-1)


def edate(d: date, months: int) -> date:
    """
    Add months to a date, keeping the day of month where it exists

    A day that does not exist in the target month is clamped to that month's
    last day (Jan 31 + 1 month -> Feb 28/29). Always step from the original
    date: repeatedly adding one month to a clamped result would lose the day.

    Args:
        d: Starting date
        months: Number of months to add (can be negative)
    Returns:
        Date with months added
    """
    return d + relativedelta(months=months)


def parse_date(value: Optional[DateLike]) -> Optional[date]:
    """
    Parse an ISO date string; dates pass through, datetimes are truncated

    A string is either YYYY-MM-DD or a full ISO datetime; anything else
    raises ValueError.
    """
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if len(text) == 10:
            return datetime.strptime(text, '%Y-%m-%d').date()
        return datetime.fromisoformat(text).date()
    raise TypeError(f"Cannot interpret {value!r} as a date")


def to_date(value: Optional[DateLike], default: Optional[date] = None) -> date:
    """Like parse_date, falling back to default (or today) for missing values"""
    parsed = parse_date(value)
    if parsed is None:
        return default or date.today()
    return parsed
