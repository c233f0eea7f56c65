"""Unit tests for billing schedule helpers"""

from datetime import date, time
from zoneinfo import ZoneInfo

import pytest

from sda_billing.domain.models import Frequency
from sda_billing.utils.date_utils import (
    advance_run_date,
    count_billing_dates,
    day_window,
    generate_billing_dates,
)


@pytest.mark.parametrize(
    "frequency, expected",
    [
        (Frequency.DAILY, date(2024, 3, 1)),
        (Frequency.WEEKLY, date(2024, 3, 7)),
        (Frequency.FORTNIGHTLY, date(2024, 3, 14)),
    ],
)
def test_advance_run_date_crosses_leap_day(frequency, expected):
    assert advance_run_date(date(2024, 2, 29), frequency) == expected


def test_generate_billing_dates_weekly():
    dates = generate_billing_dates(date(2024, 3, 1), date(2024, 3, 22), Frequency.WEEKLY)

    assert dates == [date(2024, 3, 1), date(2024, 3, 8), date(2024, 3, 15), date(2024, 3, 22)]


def test_generate_billing_dates_single_day():
    assert generate_billing_dates(date(2024, 3, 15), date(2024, 3, 15), Frequency.FORTNIGHTLY) == [date(2024, 3, 15)]


def test_count_matches_generated_dates():
    first, until = date(2024, 1, 3), date(2024, 6, 30)
    for frequency in Frequency:
        assert count_billing_dates(first, until, frequency) == len(generate_billing_dates(first, until, frequency))


def test_count_is_zero_when_first_after_until():
    assert count_billing_dates(date(2024, 3, 2), date(2024, 3, 1), Frequency.DAILY) == 0


def test_day_window_spans_whole_day():
    tz = ZoneInfo("Australia/Sydney")
    start, end = day_window(date(2024, 3, 15), tz)

    assert start.time() == time.min
    assert end.time() == time.max
    assert start.tzinfo is tz
    assert start.date() == end.date() == date(2024, 3, 15)
