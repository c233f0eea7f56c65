"""Pydantic schemas for API request/response validation"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Schema(BaseModel):
    """Base schema; responses are built straight from domain dataclasses"""

    model_config = ConfigDict(from_attributes=True)


class RunRequest(Schema):
    """Request body for POST /v1/automation/run"""

    organization_id: str = Field(..., min_length=1, description="Organization to bill")
    as_of: Optional[date] = Field(None, description="Billing date, defaults to today")


class TransactionSchema(Schema):
    """Draft transaction created by automation"""

    id: str
    contract_id: str
    resident_id: str
    amount: Decimal
    occurred_at: datetime
    description: str
    note: Optional[str] = None
    frequency: Optional[str] = None
    status: str
    drawdown_status: str
    created_by: str
    automation_run_id: Optional[str] = None


class TransactionErrorSchema(Schema):
    contract_id: str
    resident_id: str
    error: str
    kind: str
    details: Dict[str, Any] = {}


class GenerationSummarySchema(Schema):
    total_amount: Decimal
    average_amount: Decimal
    frequency_breakdown: Dict[str, int]


class GenerationResultResponse(Schema):
    """Response for POST /v1/automation/run"""

    success: bool
    run_id: str
    processed_contracts: int
    successful_transactions: int
    failed_transactions: int
    skipped_contracts: int
    transactions: List[TransactionSchema]
    errors: List[TransactionErrorSchema]
    summary: GenerationSummarySchema


class PreviewTransactionSchema(Schema):
    contract_id: str
    resident_id: str
    resident_name: str
    amount: Decimal
    frequency: str
    current_balance: Decimal
    new_balance: Decimal
    next_run_date: date
    has_sufficient_balance: bool


class GenerationPreviewResponse(Schema):
    """Response for GET /v1/automation/preview"""

    success: bool
    eligible_contracts: int
    transactions: List[PreviewTransactionSchema]
    total_amount: Decimal
    error: Optional[str] = None


class UpcomingRunSchema(Schema):
    scheduled_run_date: date
    contract_id: str
    resident_id: str
    resident_name: str
    house_name: Optional[str] = None
    contract_type: str
    frequency: str
    transaction_amount: Decimal
    current_balance: Decimal
    balance_after_transaction: Decimal
    next_run_date_after: date
    has_sufficient_balance: bool


class UpcomingDaySchema(Schema):
    run_date: date
    total_amount: Decimal
    runs: List[UpcomingRunSchema]


class UpcomingRunsResponse(Schema):
    """Response for GET /v1/automation/preview-upcoming"""

    start_date: date
    days: List[UpcomingDaySchema]


class EligibilityChecksSchema(Schema):
    status_check: bool
    automation_check: bool
    balance_check: bool
    date_check: bool
    next_run_check: bool


class EligibilityResponse(Schema):
    """Response for GET /v1/contracts/{contract_id}/eligibility"""

    contract_id: str
    is_eligible: bool
    reasons: List[str]
    checks: EligibilityChecksSchema


class EligibleContractsResponse(Schema):
    """Response for GET /v1/automation/eligible-contracts"""

    as_of: date
    due_contracts: int
    eligible_contracts: int
    results: List[EligibilityResponse]


class RateCalculationRequest(Schema):
    """Request body for POST /v1/automation/calculate-rates"""

    amount: Decimal
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    frequency: Optional[str] = None


class RateCalculationResponse(Schema):
    daily_rate: Decimal
    weekly_rate: Decimal
    fortnightly_rate: Decimal
    total_days: int
    calculation_method: str
    is_valid: bool
    errors: List[str]


class EnableAutomationRequest(Schema):
    """Request body for POST /v1/contracts/{contract_id}/automation"""

    frequency: str = Field(..., description="daily, weekly or fortnightly")
    first_run_date: date


class CatchupValidationResponse(Schema):
    """Response for GET /v1/contracts/{contract_id}/catchup/validate"""

    valid: bool
    count: int
    error: Optional[str] = None
    warning: Optional[str] = None


class CatchupTransactionSchema(Schema):
    id: str
    date: date
    amount: Decimal


class CatchupResponse(Schema):
    """Response for POST /v1/contracts/{contract_id}/catchup"""

    success: bool
    transactions_created: int
    transactions: List[CatchupTransactionSchema]
    warnings: List[str]
    error: Optional[str] = None


class OrganizationOutcomeSchema(Schema):
    organization_id: str
    organization_name: str
    status: str
    run_id: Optional[str] = None
    successful_transactions: int = 0
    failed_transactions: int = 0
    error: Optional[str] = None


class AutomationLogSchema(Schema):
    run_id: str
    organization_id: str
    run_date: datetime
    status: str
    contracts_processed: int
    contracts_successful: int
    contracts_failed: int
    contracts_skipped: int
    execution_time_ms: float
    errors: Optional[List[Dict[str, Any]]] = None
    summary: Optional[str] = None


class TodayLogResponse(Schema):
    """Response for GET /v1/automation/logs/today"""

    today: date
    already_ran: bool
    last_run: Optional[AutomationLogSchema] = None


class CronRunResponse(Schema):
    """Response for POST /v1/automation/cron"""

    executed_at: datetime
    organizations_processed: int
    total_transactions: int
    outcomes: List[OrganizationOutcomeSchema]
