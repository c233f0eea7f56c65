"""Contract rate calculation - daily support item cost and per-period drawdown amounts"""

from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from sda_billing.domain.models import Frequency, RateCalculation
from sda_billing.utils.date_utils import days_between

CENT = Decimal("0.01")
ZERO = Decimal("0")


def to_money(value: Decimal) -> Decimal:
    """Round to currency precision (half-up, like the invoices)"""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _invalid(errors: list[str]) -> RateCalculation:
    return RateCalculation(
        daily_rate=ZERO,
        weekly_rate=ZERO,
        fortnightly_rate=ZERO,
        total_days=0,
        is_valid=False,
        errors=errors,
    )


def calculate_contract_rates(
    amount: Decimal,
    start_date: Optional[date],
    end_date: Optional[date],
    frequency: Frequency | str | None = None,
) -> RateCalculation:
    """
    Spread a contract amount evenly over its duration.

    Rules:
    - total_days counts both the start and end date
    - daily_rate is rounded to cents; weekly and fortnightly rates are
      derived from the unrounded daily rate and rounded once
    - invalid input never raises: is_valid=False with one message per problem

    `frequency` does not change the rates; it is accepted so callers can pass
    the contract configuration through unchanged.

    Example:
        $1000 over 2024-01-01..2024-12-31 (366 days)
        daily 2.73, weekly 19.13, fortnightly 38.25
    """
    errors: list[str] = []

    if amount is None or Decimal(amount) <= ZERO:
        errors.append("Contract amount must be greater than 0")
    if start_date is None:
        errors.append("Contract start date is required")
    if end_date is None:
        errors.append("Contract end date is required for automatic calculation")
    if errors:
        return _invalid(errors)

    if start_date >= end_date:
        return _invalid(["End date must be after start date"])

    total_days = days_between(start_date, end_date) + 1
    if total_days <= 0:
        return _invalid(["Contract duration must be at least 1 day"])

    raw_daily = Decimal(amount) / Decimal(total_days)

    return RateCalculation(
        daily_rate=to_money(raw_daily),
        weekly_rate=to_money(raw_daily * 7),
        fortnightly_rate=to_money(raw_daily * 14),
        total_days=total_days,
        is_valid=True,
    )


def get_transaction_amount(frequency: Frequency | str, daily_rate: Optional[Decimal]) -> Decimal:
    """
    Amount billed per run: the stored daily rate times the period length.

    This is the authoritative drawdown amount. It multiplies the already
    rounded daily cost, so weekly is exactly 7x and fortnightly exactly 14x.
    """
    if daily_rate is None:
        return ZERO
    return Decimal(daily_rate) * Frequency.parse(frequency).interval_days
