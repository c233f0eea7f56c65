"""Turning automated drawdowns on for a funding contract"""

import logging
from datetime import date

from sda_billing.domain.models import Frequency, RateCalculation
from sda_billing.domain.ports import ContractStore
from sda_billing.domain.rates import calculate_contract_rates

logger = logging.getLogger(__name__)


def enable_contract_automation(
    store: ContractStore,
    contract_id: str,
    frequency: Frequency | str,
    first_run_date: date,
) -> RateCalculation:
    """
    Calculate the contract's daily cost and switch automation on.

    Nothing is written when the rates are invalid or the first run falls
    outside the contract period; the returned calculation carries the
    reasons. Raises ContractNotFoundError / InvalidFrequencyError.
    """
    frequency = Frequency.parse(frequency)
    contract = store.get(contract_id)

    rates = calculate_contract_rates(contract.original_amount, contract.start_date, contract.end_date, frequency)
    if not rates.is_valid:
        return rates

    if first_run_date < contract.start_date:
        rates.is_valid = False
        rates.errors.append("First run date cannot be before contract start date")
    elif contract.end_date is not None and first_run_date > contract.end_date:
        rates.is_valid = False
        rates.errors.append("First run date cannot be after contract end date")
    if not rates.is_valid:
        return rates

    store.enable_automation(
        contract_id,
        frequency=frequency,
        daily_support_item_cost=rates.daily_rate,
        first_run_date=first_run_date,
        next_run_date=first_run_date,
    )
    logger.info(
        "Contract automation enabled",
        extra={
            "contract_id": contract_id,
            "frequency": frequency.value,
            "daily_rate": str(rates.daily_rate),
            "first_run_date": first_run_date.isoformat(),
        },
    )
    return rates
