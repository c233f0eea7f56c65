"""Date manipulation utilities"""

from datetime import date, datetime, time, timedelta
from typing import List, Tuple
from zoneinfo import ZoneInfo

from sda_billing.domain.models import Frequency


def days_between(start: date, end: date) -> int:
    """Whole calendar days from start to end"""
    return (end - start).days


def advance_run_date(current: date, frequency: Frequency) -> date:
    """Next billing date after `current` (date-only arithmetic)"""
    return current + timedelta(days=frequency.interval_days)


def generate_billing_dates(first: date, until: date, frequency: Frequency) -> List[date]:
    """Billing dates from `first` stepping by frequency while <= `until`"""
    dates: List[date] = []
    current = first
    while current <= until:
        dates.append(current)
        current = advance_run_date(current, frequency)
    return dates


def count_billing_dates(first: date, until: date, frequency: Frequency) -> int:
    """Number of dates generate_billing_dates would return, without a cap"""
    if first > until:
        return 0
    return days_between(first, until) // frequency.interval_days + 1


def day_window(day: date, tz: ZoneInfo | None = None) -> Tuple[datetime, datetime]:
    """First and last instant of a calendar day"""
    return (
        datetime.combine(day, time.min, tzinfo=tz),
        datetime.combine(day, time.max, tzinfo=tz),
    )

