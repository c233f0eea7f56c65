"""Projection of upcoming automated runs (read-only)"""

from datetime import date, timedelta
from typing import Dict, List

from sda_billing.domain.exceptions import InvalidFrequencyError
from sda_billing.domain.models import FundingContract, UpcomingRun
from sda_billing.domain.rates import get_transaction_amount
from sda_billing.utils.date_utils import advance_run_date, generate_billing_dates


def preview_upcoming_runs(contracts: List[FundingContract], start: date, days: int = 3) -> Dict[date, List[UpcomingRun]]:
    """
    Runs each contract would have in [start, start + days).

    A daily contract appears once per day, weekly and fortnightly ones only
    on their scheduled dates. Balances are projected run by run, so a
    contract that runs out mid-window shows has_sufficient_balance=False.
    Overdue contracts are not projected; those are catch-up material.
    """
    window_end = start + timedelta(days=days - 1)
    runs_by_day: Dict[date, List[UpcomingRun]] = {start + timedelta(days=i): [] for i in range(days)}

    for contract in contracts:
        if contract.next_run_date is None or contract.next_run_date < start:
            continue
        try:
            frequency = contract.frequency
        except InvalidFrequencyError:
            continue

        amount = get_transaction_amount(frequency, contract.daily_support_item_cost)
        balance = contract.current_balance
        for run_date in generate_billing_dates(contract.next_run_date, window_end, frequency):
            runs_by_day[run_date].append(
                UpcomingRun(
                    scheduled_run_date=run_date,
                    contract_id=contract.id,
                    resident_id=contract.resident_id,
                    resident_name=contract.resident.full_name,
                    house_name=contract.house.display_name if contract.house else None,
                    contract_type=contract.contract_type,
                    frequency=frequency.value,
                    transaction_amount=amount,
                    current_balance=balance,
                    balance_after_transaction=balance - amount,
                    next_run_date_after=advance_run_date(run_date, frequency),
                    has_sufficient_balance=balance >= amount,
                )
            )
            if balance >= amount:
                balance -= amount

    return runs_by_day
