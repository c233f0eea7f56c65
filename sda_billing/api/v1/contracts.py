"""/v1/contracts/{contract_id} - eligibility diagnostics, enabling automation and catch-up billing"""

import logging
from datetime import datetime
from typing import Callable

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from sda_billing.api.dependencies import get_catchup_generator, get_clock, get_contract_store, get_request_id
from sda_billing.api.v1.schemas import (
    CatchupResponse,
    CatchupValidationResponse,
    EligibilityResponse,
    EnableAutomationRequest,
    RateCalculationResponse,
)
from sda_billing.domain.eligibility import check_contract_eligibility
from sda_billing.domain.exceptions import ContractNotFoundError, InvalidFrequencyError, PersistenceError
from sda_billing.domain.models import ContractStatus, Frequency, FundingContract
from sda_billing.infrastructure.database.repositories import SqlContractStore
from sda_billing.infrastructure.database.session import get_db
from sda_billing.services.catchup import CatchupGenerator, request_from_contract, validate_catchup_generation
from sda_billing.services.contract_automation import enable_contract_automation

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/contracts")


def _load_automated_contract(store: SqlContractStore, contract_id: str) -> FundingContract:
    """Active contract with automation enabled and a usable schedule, or the matching HTTP error"""
    try:
        contract = store.get(contract_id)
    except ContractNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    if not contract.auto_billing_enabled:
        raise HTTPException(status_code=422, detail="Contract automation is not enabled")
    if contract.contract_status is not ContractStatus.ACTIVE:
        raise HTTPException(
            status_code=422,
            detail=f"Contract status is '{contract.contract_status.value}', must be 'Active'",
        )
    if contract.next_run_date is None or contract.daily_support_item_cost is None:
        raise HTTPException(status_code=422, detail="Contract automation is not configured")
    try:
        Frequency.parse(contract.automated_drawdown_frequency)
    except InvalidFrequencyError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return contract


@router.get("/{contract_id}/eligibility", response_model=EligibilityResponse)
def get_contract_eligibility(
    contract_id: str,
    store: SqlContractStore = Depends(get_contract_store),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    """
    Why a contract would or would not be billed today.

    Unknown ids are answered with a not-eligible result rather than a 404,
    so the diagnostics screen can render it the same way.
    """
    return EligibilityResponse.model_validate(check_contract_eligibility(store, contract_id, clock().date()))


@router.post("/{contract_id}/automation", response_model=RateCalculationResponse)
def enable_automation(
    contract_id: str,
    request_body: EnableAutomationRequest,
    request: Request,
    db: Session = Depends(get_db),
    store: SqlContractStore = Depends(get_contract_store),
):
    """Calculate the contract's daily cost and switch automated drawdowns on"""
    request_id = get_request_id(request)
    try:
        rates = enable_contract_automation(store, contract_id, request_body.frequency, request_body.first_run_date)
    except ContractNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidFrequencyError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except PersistenceError as e:
        db.rollback()
        logger.error(f"Enabling automation failed: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=503, detail="Database unavailable")

    if not rates.is_valid:
        raise HTTPException(status_code=422, detail=rates.errors)

    db.commit()
    return RateCalculationResponse.model_validate(rates)


@router.get("/{contract_id}/catchup/validate", response_model=CatchupValidationResponse)
def validate_catchup(
    contract_id: str,
    store: SqlContractStore = Depends(get_contract_store),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    """How many catch-up drafts the contract needs, and whether that is allowed"""
    contract = _load_automated_contract(store, contract_id)
    validation = validate_catchup_generation(
        contract.next_run_date, contract.start_date, contract.frequency, clock().date()
    )
    return CatchupValidationResponse.model_validate(validation)


@router.post("/{contract_id}/catchup", response_model=CatchupResponse)
def generate_catchup(
    contract_id: str,
    request: Request,
    db: Session = Depends(get_db),
    store: SqlContractStore = Depends(get_contract_store),
    generator: CatchupGenerator = Depends(get_catchup_generator),
):
    """
    Backfill drafts for every billing date the contract missed.

    Drafts already created stay in place when a later one fails; the
    response then has success=false with the drafts that were made.
    """
    request_id = get_request_id(request)
    contract = _load_automated_contract(store, contract_id)

    result = generator.generate_catchup(request_from_contract(contract))
    if not result.success and not result.transactions:
        db.rollback()
        logger.warning(
            f"Catch-up rejected: {result.error}",
            extra={"request_id": request_id, "contract_id": contract_id},
        )
        raise HTTPException(status_code=422, detail=result.error)

    db.commit()
    return CatchupResponse.model_validate(result)
