"""Unit tests for enabling automation on a contract"""

from datetime import date
from decimal import Decimal

import pytest

from sda_billing.domain.exceptions import ContractNotFoundError, InvalidFrequencyError
from sda_billing.services.contract_automation import enable_contract_automation


@pytest.fixture
def manual_contract(contract_store, make_contract):
    contract_store.add(
        make_contract(
            original_amount=Decimal("1000.00"),
            auto_billing_enabled=False,
            automated_drawdown_frequency=None,
            first_run_date=None,
            next_run_date=None,
            daily_support_item_cost=None,
        )
    )
    return "contract-1"


def test_enables_automation_with_calculated_daily_cost(contract_store, manual_contract):
    rates = enable_contract_automation(contract_store, manual_contract, "weekly", date(2024, 3, 18))

    assert rates.is_valid
    assert rates.daily_rate == Decimal("2.73")

    contract = contract_store.get(manual_contract)
    assert contract.auto_billing_enabled
    assert contract.automated_drawdown_frequency == "weekly"
    assert contract.daily_support_item_cost == Decimal("2.73")
    assert contract.first_run_date == date(2024, 3, 18)
    assert contract.next_run_date == date(2024, 3, 18)


def test_first_run_before_start_writes_nothing(contract_store, manual_contract):
    rates = enable_contract_automation(contract_store, manual_contract, "daily", date(2023, 12, 31))

    assert not rates.is_valid
    assert rates.errors == ["First run date cannot be before contract start date"]
    assert not contract_store.get(manual_contract).auto_billing_enabled


def test_open_ended_contract_cannot_be_automated(contract_store, make_contract):
    contract_store.add(make_contract(end_date=None, auto_billing_enabled=False))

    rates = enable_contract_automation(contract_store, "contract-1", "weekly", date(2024, 3, 18))

    assert not rates.is_valid
    assert "Contract end date is required for automatic calculation" in rates.errors


def test_unknown_frequency_is_rejected(contract_store, manual_contract):
    with pytest.raises(InvalidFrequencyError):
        enable_contract_automation(contract_store, manual_contract, "monthly", date(2024, 3, 18))


def test_unknown_contract(contract_store):
    with pytest.raises(ContractNotFoundError):
        enable_contract_automation(contract_store, "missing", "weekly", date(2024, 3, 18))
