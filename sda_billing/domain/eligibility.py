"""Contract eligibility evaluation - decides which contracts automation may bill today"""

import logging
from datetime import date
from typing import List, Optional

from sda_billing.domain.exceptions import ContractNotFoundError
from sda_billing.domain.models import (
    ContractStatus,
    EligibilityChecks,
    EligibilityResult,
    Frequency,
    FundingContract,
)
from sda_billing.domain.ports import ContractStore

logger = logging.getLogger(__name__)


def _resident_is_active(contract: FundingContract) -> bool:
    status = contract.resident.status if contract.resident else None
    return bool(status) and status.strip().lower() == "active"


def check_status(contract: FundingContract) -> bool:
    """Contract is Active and its resident is active"""
    return contract.contract_status is ContractStatus.ACTIVE and _resident_is_active(contract)


def check_automation(contract: FundingContract) -> bool:
    """Automation enabled with a valid frequency"""
    return (
        contract.auto_billing_enabled
        and bool(contract.automated_drawdown_frequency)
        and Frequency.is_valid(contract.automated_drawdown_frequency)
    )


def check_balance(contract: FundingContract) -> bool:
    """Positive balance that covers at least one day of support"""
    if contract.current_balance <= 0:
        return False
    daily_cost = contract.daily_support_item_cost
    return not daily_cost or contract.current_balance >= daily_cost


def check_date_range(contract: FundingContract, today: date) -> bool:
    """Today falls inside the contract period"""
    if today < contract.start_date:
        return False
    return contract.end_date is None or today <= contract.end_date


def check_next_run(contract: FundingContract, today: date) -> bool:
    """Scheduled for exactly today; overdue contracts belong to catch-up"""
    return contract.next_run_date is not None and contract.next_run_date == today


def eligibility_reasons(contract: FundingContract, checks: EligibilityChecks, today: date) -> List[str]:
    """Human-readable explanation for every failed check"""
    reasons: List[str] = []

    if not checks.status_check:
        if contract.contract_status is not ContractStatus.ACTIVE:
            reasons.append(f"Contract status is '{contract.contract_status.value}', must be 'Active'")
        if not _resident_is_active(contract):
            reasons.append(f"Resident status is '{contract.resident.status}', must be 'active'")

    if not checks.automation_check:
        frequency = contract.automated_drawdown_frequency
        if not contract.auto_billing_enabled:
            reasons.append("Automation is not enabled for this contract")
        if not frequency:
            reasons.append("Automation frequency is not set")
        elif not Frequency.is_valid(frequency):
            reasons.append(f"Invalid automation frequency: '{frequency}'")

    if not checks.balance_check:
        daily_cost = contract.daily_support_item_cost
        if contract.current_balance <= 0:
            reasons.append("Contract has insufficient balance")
        elif daily_cost and contract.current_balance < daily_cost:
            reasons.append(f"Balance (${contract.current_balance}) is less than daily cost (${daily_cost})")

    if not checks.date_check:
        if today < contract.start_date:
            reasons.append(f"Contract has not started yet (starts {contract.start_date.isoformat()})")
        if contract.end_date is not None and today > contract.end_date:
            reasons.append(f"Contract has expired (ended {contract.end_date.isoformat()})")

    if not checks.next_run_check:
        next_run = contract.next_run_date
        if next_run is None:
            reasons.append("Next run date is not set")
        elif next_run < today:
            reasons.append(
                f"Next run date is in the past ({next_run.isoformat()}) - overdue, not scheduled for today"
            )
        else:
            reasons.append(f"Next run date is scheduled for the future ({next_run.isoformat()}) - not due today")

    return reasons


def evaluate_contract(contract: FundingContract, today: date) -> EligibilityResult:
    """
    Run all five checks against a contract snapshot.

    Checks are independent: every failing check contributes its reasons,
    and the result is eligible only when all of them pass. Pure function
    of (contract, today).
    """
    checks = EligibilityChecks(
        status_check=check_status(contract),
        automation_check=check_automation(contract),
        balance_check=check_balance(contract),
        date_check=check_date_range(contract, today),
        next_run_check=check_next_run(contract, today),
    )
    return EligibilityResult(
        contract_id=contract.id,
        is_eligible=checks.all_passed,
        reasons=eligibility_reasons(contract, checks, today),
        checks=checks,
        contract=contract,
    )


def not_found_result(contract_id: str) -> EligibilityResult:
    return EligibilityResult(
        contract_id=contract_id,
        is_eligible=False,
        reasons=["Contract not found"],
        checks=EligibilityChecks(False, False, False, False, False),
    )


def check_contract_eligibility(store: ContractStore, contract_id: str, today: date) -> EligibilityResult:
    """Diagnostic evaluation of a single contract by id"""
    try:
        contract = store.get(contract_id)
    except ContractNotFoundError:
        return not_found_result(contract_id)
    return evaluate_contract(contract, today)


def evaluate_due_contracts(
    store: ContractStore, today: date, organization_id: Optional[str] = None
) -> List[EligibilityResult]:
    """Evaluate every contract the store pre-selects as due today (eligible or not)"""
    return [evaluate_contract(contract, today) for contract in store.find_due(today, organization_id)]


def find_eligible_contracts(
    store: ContractStore, today: date, organization_id: Optional[str] = None
) -> List[EligibilityResult]:
    """
    Contracts automation should bill today, in store order.

    The store narrows to auto_billing_enabled AND next_run_date == today;
    all five checks still run so ineligible ones are logged with reasons.
    """
    results = evaluate_due_contracts(store, today, organization_id)
    for result in results:
        if not result.is_eligible:
            logger.info(
                "Contract not eligible",
                extra={"contract_id": result.contract_id, "reasons": result.reasons},
            )
    return [result for result in results if result.is_eligible]
