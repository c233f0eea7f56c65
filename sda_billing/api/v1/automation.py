"""/v1/automation - run now, previews, eligibility listing, rate calculation, run logs and the cron trigger"""

import logging
from datetime import date, datetime
from typing import Callable, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from sda_billing.api.dependencies import (
    get_clock,
    get_contract_store,
    get_notification_client,
    get_request_id,
    get_transaction_generator,
    verify_cron_secret,
)
from sda_billing.api.v1.schemas import (
    AutomationLogSchema,
    CronRunResponse,
    EligibilityResponse,
    EligibleContractsResponse,
    GenerationPreviewResponse,
    GenerationResultResponse,
    OrganizationOutcomeSchema,
    RateCalculationRequest,
    RateCalculationResponse,
    RunRequest,
    TodayLogResponse,
    UpcomingDaySchema,
    UpcomingRunSchema,
    UpcomingRunsResponse,
)
from sda_billing.domain.eligibility import evaluate_due_contracts
from sda_billing.domain.exceptions import PersistenceError
from sda_billing.domain.forecast import preview_upcoming_runs
from sda_billing.domain.rates import ZERO, calculate_contract_rates
from sda_billing.infrastructure.clients.notifier import NotificationClient
from sda_billing.infrastructure.database.repositories import (
    AutomationLogRepository,
    AutomationSettingsRepository,
    SqlContractStore,
)
from sda_billing.infrastructure.database.session import get_db
from sda_billing.services.billing_run import run_billing_for_organizations
from sda_billing.services.transaction_generator import TransactionGenerator
from sda_billing.utils.date_utils import day_window

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/automation")


@router.post("/run", response_model=GenerationResultResponse)
def run_automation(
    request_body: RunRequest,
    request: Request,
    db: Session = Depends(get_db),
    generator: TransactionGenerator = Depends(get_transaction_generator),
):
    """
    Bill an organization's due contracts now.

    Safe to repeat on the same day: residents already billed today are
    reported as duplicate_prevented instead of being billed again.
    """
    request_id = get_request_id(request)
    try:
        result = generator.generate_for_eligible_contracts(request_body.organization_id, as_of=request_body.as_of)
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"Automation run failed: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")

    return GenerationResultResponse.model_validate(result)


@router.get("/preview", response_model=GenerationPreviewResponse)
def preview_automation(
    organization_id: Optional[str] = Query(None, description="Organization identifier"),
    as_of: Optional[date] = Query(None, description="Billing date, defaults to today"),
    generator: TransactionGenerator = Depends(get_transaction_generator),
):
    """What a run would bill, without writing anything"""
    return GenerationPreviewResponse.model_validate(generator.preview(organization_id, as_of=as_of))


@router.get("/preview-upcoming", response_model=UpcomingRunsResponse)
def preview_upcoming(
    organization_id: Optional[str] = Query(None, description="Organization identifier"),
    days: int = Query(3, ge=1, le=31, description="Number of days to project"),
    store: SqlContractStore = Depends(get_contract_store),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    """Scheduled runs for the next `days` days, starting today"""
    start = clock().date()
    runs_by_day = preview_upcoming_runs(store.find_automated(organization_id), start, days)

    return UpcomingRunsResponse(
        start_date=start,
        days=[
            UpcomingDaySchema(
                run_date=run_date,
                total_amount=sum((run.transaction_amount for run in runs), ZERO),
                runs=[UpcomingRunSchema.model_validate(run) for run in runs],
            )
            for run_date, runs in sorted(runs_by_day.items())
        ],
    )


@router.get("/eligible-contracts", response_model=EligibleContractsResponse)
def list_eligible_contracts(
    organization_id: Optional[str] = Query(None, description="Organization identifier"),
    as_of: Optional[date] = Query(None, description="Billing date, defaults to today"),
    store: SqlContractStore = Depends(get_contract_store),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    """Every contract due on the date, with the outcome of all five checks"""
    today = as_of or clock().date()
    results = evaluate_due_contracts(store, today, organization_id)

    return EligibleContractsResponse(
        as_of=today,
        due_contracts=len(results),
        eligible_contracts=sum(1 for r in results if r.is_eligible),
        results=[EligibilityResponse.model_validate(r) for r in results],
    )


@router.post("/calculate-rates", response_model=RateCalculationResponse)
def calculate_rates(request_body: RateCalculationRequest):
    """
    Daily, weekly and fortnightly rates for a contract amount and period.

    Invalid input is answered with is_valid=false and the reasons, not an
    HTTP error.
    """
    rates = calculate_contract_rates(
        request_body.amount,
        request_body.start_date,
        request_body.end_date,
        request_body.frequency,
    )
    return RateCalculationResponse.model_validate(rates)


@router.get("/logs/today", response_model=TodayLogResponse)
def get_todays_log(
    request: Request,
    organization_id: str = Query(..., min_length=1, description="Organization identifier"),
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    """Whether the organization's automation already ran today, with the latest run's log"""
    request_id = get_request_id(request)
    now = clock()
    window_start, window_end = day_window(now.date(), now.tzinfo)
    try:
        logs = AutomationLogRepository(db).get_logs_by_organization(
            organization_id, limit=1, since=window_start, until=window_end
        )
    except PersistenceError as e:
        logger.error(f"Reading automation logs failed: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=503, detail="Database unavailable")

    return TodayLogResponse(
        today=now.date(),
        already_ran=bool(logs),
        last_run=AutomationLogSchema.model_validate(logs[0]) if logs else None,
    )


@router.post("/cron", response_model=CronRunResponse, dependencies=[Depends(verify_cron_secret)])
def run_scheduled_billing(
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    generator: TransactionGenerator = Depends(get_transaction_generator),
    notifier: NotificationClient = Depends(get_notification_client),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    """
    Daily trigger from the external scheduler.

    Bills every organization with automation enabled, writes one automation
    log per organization and queues the admin notifications.
    """
    report = run_billing_for_organizations(
        AutomationSettingsRepository(db),
        AutomationLogRepository(db),
        generator,
        commit=db.commit,
        rollback=db.rollback,
        clock=clock,
    )

    if report.notifications:
        background_tasks.add_task(notifier.send_many, report.notifications)

    return CronRunResponse(
        executed_at=report.executed_at,
        organizations_processed=len(report.outcomes),
        total_transactions=report.total_transactions,
        outcomes=[
            OrganizationOutcomeSchema(
                organization_id=o.organization_id,
                organization_name=o.organization_name,
                status=o.status,
                run_id=o.run_id,
                successful_transactions=o.result.successful_transactions if o.result else 0,
                failed_transactions=o.result.failed_transactions if o.result else 0,
                error=o.error,
            )
            for o in report.outcomes
        ],
    )
