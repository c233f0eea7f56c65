"""Unit tests for upcoming run projection"""

from datetime import date, timedelta
from decimal import Decimal

from sda_billing.domain.forecast import preview_upcoming_runs


def test_daily_contract_runs_every_day_with_projected_balance(make_contract, today):
    contract = make_contract(automated_drawdown_frequency="daily", current_balance=Decimal("60.00"))

    runs = preview_upcoming_runs([contract], today, days=3)

    assert list(runs) == [today, today + timedelta(days=1), today + timedelta(days=2)]
    first, second, third = (runs[day][0] for day in runs)
    assert first.transaction_amount == Decimal("27.32")
    assert first.balance_after_transaction == Decimal("32.68")
    assert second.current_balance == Decimal("32.68")
    assert second.has_sufficient_balance
    assert third.current_balance == Decimal("5.36")
    assert not third.has_sufficient_balance


def test_weekly_contract_only_on_scheduled_date(make_contract, today):
    contract = make_contract(next_run_date=today + timedelta(days=1))

    runs = preview_upcoming_runs([contract], today, days=3)

    assert runs[today] == []
    [run] = runs[today + timedelta(days=1)]
    assert run.transaction_amount == Decimal("191.24")
    assert run.next_run_date_after == today + timedelta(days=8)
    assert run.house_name == "Harbour View"
    assert run.resident_name == "Jane Citizen"
    assert runs[today + timedelta(days=2)] == []


def test_overdue_and_misconfigured_contracts_are_not_projected(make_contract, today):
    contracts = [
        make_contract(id="overdue", next_run_date=today - timedelta(days=1)),
        make_contract(id="bad-frequency", automated_drawdown_frequency="monthly"),
        make_contract(id="no-schedule", next_run_date=None),
    ]

    runs = preview_upcoming_runs(contracts, today, days=3)

    assert all(day_runs == [] for day_runs in runs.values())


def test_window_length(make_contract):
    runs = preview_upcoming_runs([], date(2024, 3, 30), days=5)

    assert list(runs)[-1] == date(2024, 4, 3)
