"""Unit tests for automated drawdown generation"""

from datetime import date, timedelta
from decimal import Decimal

import pytest

from sda_billing.domain.exceptions import (
    ContractUpdateError,
    DuplicateTransactionError,
    InsufficientBalanceError,
    InvalidTransactionAmountError,
    PersistenceError,
)
from sda_billing.domain.models import AUTOMATION_ACTOR


def test_bills_eligible_contract(generator, contract_store, transaction_store, audit_log, make_contract, today, now):
    contract_store.add(make_contract())

    result = generator.generate_for_eligible_contracts()

    assert result.success
    assert result.processed_contracts == 1
    assert result.successful_transactions == 1
    assert result.errors == []

    [txn] = result.transactions
    assert txn.id == "TXN-ORGSUN-A000001"
    assert txn.amount == Decimal("191.24")
    assert txn.unit_price == txn.amount
    assert txn.quantity == 1
    assert txn.status == "draft"
    assert txn.drawdown_status == "pending"
    assert txn.is_drawdown_transaction
    assert txn.created_by == AUTOMATION_ACTOR
    assert txn.automation_run_id == result.run_id
    assert txn.occurred_at.date() == today
    assert txn.description == "Automated weekly drawdown - SDA"
    assert txn.id in transaction_store.transactions

    stored = contract_store.get("contract-1")
    assert stored.current_balance == Decimal("4808.76")
    assert stored.next_run_date == today + timedelta(days=7)
    assert stored.last_drawdown_date == now

    [entry] = audit_log.entries
    assert entry.action == "AUTOMATED_TRANSACTION_CREATED"
    assert entry.old_value == "5000.00"
    assert entry.new_value == "4808.76"
    assert entry.details["transaction_id"] == txn.id

    assert result.summary.total_amount == Decimal("191.24")
    assert result.summary.frequency_breakdown == {"weekly": 1}


def test_one_transaction_per_resident_per_run(generator, contract_store, make_contract):
    contract_store.add(
        make_contract(id="c-1", resident_id="r-1"),
        make_contract(id="c-2", resident_id="r-1"),
        make_contract(id="c-3", resident_id="r-2"),
    )

    result = generator.generate_for_eligible_contracts()

    assert result.processed_contracts == 3
    assert result.successful_transactions == 2
    assert result.skipped_contracts == 1
    assert [t.contract_id for t in result.transactions] == ["c-1", "c-3"]
    [skipped] = result.errors
    assert skipped.contract_id == "c-2"
    assert skipped.kind == "duplicate_resident"
    assert contract_store.get("c-2").current_balance == Decimal("5000.00")


def test_failed_contract_does_not_block_residents_other_contract(generator, contract_store, make_contract):
    contract_store.add(
        make_contract(id="c-1", resident_id="r-1", current_balance=Decimal("100.00")),
        make_contract(id="c-2", resident_id="r-1"),
    )

    result = generator.generate_for_eligible_contracts()

    assert [t.contract_id for t in result.transactions] == ["c-2"]
    assert result.errors[0].kind == "insufficient_balance"


def test_second_run_same_day_is_a_no_op(generator, contract_store, transaction_store, make_contract, today):
    contract_store.add(make_contract())
    first = generator.generate_for_eligible_contracts()
    assert first.successful_transactions == 1

    # Someone resets the schedule back to today
    contract_store.contracts["contract-1"].next_run_date = today
    second = generator.generate_for_eligible_contracts()

    assert second.successful_transactions == 0
    assert second.failed_transactions == 1
    assert second.errors[0].kind == "duplicate_prevented"
    assert len(transaction_store.transactions) == 1
    assert contract_store.get("contract-1").current_balance == Decimal("4808.76")


def test_same_day_guard_is_resident_scoped(generator, contract_store, make_contract, today):
    contract_store.add(make_contract(id="c-1", resident_id="r-1"))
    generator.generate_for_eligible_contracts()

    contract_store.add(make_contract(id="c-2", resident_id="r-1"))
    result = generator.generate_for_eligible_contracts()

    assert result.successful_transactions == 0
    assert result.errors[0].contract_id == "c-2"
    assert result.errors[0].kind == "duplicate_prevented"
    assert result.errors[0].details["existing_transactions"][0]["contract_id"] == "c-1"


def test_leap_year_contract_with_low_balance_fails(generator, contract_store, make_contract):
    contract_store.add(
        make_contract(
            original_amount=Decimal("1000.00"),
            current_balance=Decimal("15.00"),
            daily_support_item_cost=Decimal("2.73"),
        )
    )

    result = generator.generate_for_eligible_contracts()

    assert result.successful_transactions == 0
    [error] = result.errors
    assert error.kind == "insufficient_balance"
    assert error.details == {"current_balance": "15.00", "transaction_amount": "19.11"}
    assert contract_store.get("contract-1").current_balance == Decimal("15.00")


def test_rollback_when_contract_update_fails(generator, contract_store, transaction_store, audit_log, make_contract):
    contract_store.add(make_contract())
    contract_store.fail_updates = True

    result = generator.generate_for_eligible_contracts()

    assert result.successful_transactions == 0
    assert result.failed_transactions == 1
    assert result.errors[0].kind == "persistence"
    assert transaction_store.transactions == {}
    assert audit_log.entries == []
    assert contract_store.get("contract-1").current_balance == Decimal("5000.00")


def test_failed_compensation_surfaces_as_persistence_error(generator, contract_store, transaction_store, make_contract):
    contract_store.add(make_contract())
    contract_store.fail_updates = True
    transaction_store.fail_deletes = True

    result = generator.generate_for_eligible_contracts()

    assert result.errors[0].kind == "persistence"
    assert result.errors[0].error == "delete failed"


def test_audit_failure_keeps_the_drawdown(generator, contract_store, audit_log, make_contract):
    contract_store.add(make_contract())
    audit_log.fail = True

    result = generator.generate_for_eligible_contracts()

    assert result.successful_transactions == 1
    assert contract_store.get("contract-1").current_balance == Decimal("4808.76")


def test_failure_in_the_middle_does_not_stop_the_run(generator, contract_store, make_contract):
    contract_store.add(
        make_contract(id="c-1", resident_id="r-1"),
        make_contract(id="c-2", resident_id="r-2", current_balance=Decimal("50.00")),
        make_contract(id="c-3", resident_id="r-3"),
    )

    result = generator.generate_for_eligible_contracts()

    assert result.success
    assert result.successful_transactions == 2
    assert result.failed_transactions == 1
    assert [t.id for t in result.transactions] == ["TXN-ORGSUN-A000001", "TXN-ORGSUN-A000002"]


def test_fetch_failure_fails_the_whole_run(generator, contract_store, monkeypatch):
    def broken(*args, **kwargs):
        raise PersistenceError("connection refused")

    monkeypatch.setattr(contract_store, "find_due", broken)

    result = generator.generate_for_eligible_contracts()

    assert not result.success
    assert result.processed_contracts == 0
    [error] = result.errors
    assert error.kind == "fetch_failed"
    assert error.contract_id == "unknown"


def test_unexpected_error_is_recorded(generator, contract_store, transaction_store, make_contract, monkeypatch):
    contract_store.add(make_contract())

    def broken(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(transaction_store, "find_automated_for_resident", broken)

    result = generator.generate_for_eligible_contracts()

    assert result.success
    assert result.errors[0].kind == "unexpected"
    assert result.errors[0].details == {"error": "boom"}


def test_contract_checks_before_insert(generator, make_contract):
    with pytest.raises(InvalidTransactionAmountError):
        generator.generate_transaction_for_contract(make_contract(daily_support_item_cost=Decimal("0")), "run")

    with pytest.raises(InsufficientBalanceError):
        generator.generate_transaction_for_contract(make_contract(current_balance=Decimal("191.23")), "run")


def test_exact_balance_can_be_drawn_to_zero(generator, contract_store, make_contract):
    contract_store.add(make_contract(current_balance=Decimal("191.24")))

    generator.generate_transaction_for_contract(contract_store.get("contract-1"), "run")

    assert contract_store.get("contract-1").current_balance == Decimal("0.00")


def test_direct_call_raises_duplicate(generator, contract_store, make_contract):
    contract_store.add(make_contract())
    contract = contract_store.get("contract-1")
    generator.generate_transaction_for_contract(contract, "run-1")

    with pytest.raises(DuplicateTransactionError):
        generator.generate_transaction_for_contract(contract, "run-2")


def test_update_failure_raises_contract_update_error(generator, contract_store, transaction_store, make_contract):
    contract_store.add(make_contract())
    contract_store.fail_updates = True

    with pytest.raises(ContractUpdateError) as exc_info:
        generator.generate_transaction_for_contract(contract_store.get("contract-1"), "run")

    assert exc_info.value.details["transaction_id"] == "TXN-ORGSUN-A000001"
    assert transaction_store.transactions == {}


def test_next_run_date_advances_from_schedule(generator, contract_store, make_contract, today):
    contract_store.add(make_contract(automated_drawdown_frequency="fortnightly"))

    generator.generate_for_eligible_contracts()

    assert contract_store.get("contract-1").next_run_date == date(2024, 3, 29)


def test_preview_has_no_side_effects(generator, contract_store, transaction_store, make_contract, today):
    contract_store.add(
        make_contract(id="c-1", resident_id="r-1"),
        make_contract(id="c-2", resident_id="r-2", automated_drawdown_frequency="daily", current_balance=Decimal("30")),
    )

    preview = generator.preview()

    assert preview.success
    assert preview.eligible_contracts == 2
    assert preview.total_amount == Decimal("218.56")
    daily = preview.transactions[1]
    assert daily.new_balance == Decimal("2.68")
    assert daily.next_run_date == today + timedelta(days=1)
    assert daily.has_sufficient_balance
    assert transaction_store.transactions == {}
    assert contract_store.get("c-1").next_run_date == today
