"""Scheduled billing run across organizations (invoked by the daily cron trigger)"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional
from zoneinfo import ZoneInfo

from sda_billing.domain.models import AutomationSettings, GenerationResult
from sda_billing.domain.reporting import render_run_summary, run_status
from sda_billing.infrastructure.database.repositories import AutomationLogRepository, AutomationSettingsRepository
from sda_billing.services.transaction_generator import TransactionGenerator

logger = logging.getLogger(__name__)


@dataclass
class OrganizationRunOutcome:
    """What happened for one organization in a scheduled run"""

    organization_id: str
    organization_name: str
    status: str
    run_id: Optional[str] = None
    result: Optional[GenerationResult] = None
    error: Optional[str] = None
    notification: Optional[Dict[str, Any]] = None


@dataclass
class BillingRunReport:
    executed_at: datetime
    outcomes: List[OrganizationRunOutcome] = field(default_factory=list)

    @property
    def total_transactions(self) -> int:
        return sum(o.result.successful_transactions for o in self.outcomes if o.result is not None)

    @property
    def notifications(self) -> List[Dict[str, Any]]:
        return [o.notification for o in self.outcomes if o.notification]


def build_notification_payload(
    org: AutomationSettings,
    result: GenerationResult,
    status: str,
    summary: str,
    executed_at: datetime,
) -> Dict[str, Any]:
    """Webhook body for the notification service; it owns email delivery"""
    return {
        "event": "automation_run_completed",
        "organization_id": org.organization_id,
        "organization_name": org.organization_name,
        "recipients": list(org.admin_emails),
        "run_id": result.run_id,
        "status": status,
        "executed_at": executed_at.isoformat(),
        "contracts_processed": result.processed_contracts,
        "successful_transactions": result.successful_transactions,
        "failed_transactions": result.failed_transactions,
        "skipped_contracts": result.skipped_contracts,
        "total_amount": str(result.summary.total_amount),
        "summary": summary,
    }


def run_billing_for_organizations(
    settings_repo: AutomationSettingsRepository,
    log_repo: AutomationLogRepository,
    generator: TransactionGenerator,
    commit: Callable[[], None],
    rollback: Callable[[], None],
    clock: Optional[Callable[[], datetime]] = None,
) -> BillingRunReport:
    """
    Bill every organization with automation enabled.

    Each organization is committed on its own, so one organization's
    failure never rolls back another's drafts. "Today" is taken in the
    organization's timezone.
    """
    clock = clock or (lambda: datetime.now(ZoneInfo("UTC")))
    report = BillingRunReport(executed_at=clock())

    organizations = settings_repo.list_enabled()
    logger.info("Scheduled billing run started", extra={"organizations": len(organizations)})

    for org in organizations:
        report.outcomes.append(_run_organization(org, log_repo, generator, commit, rollback, clock))

    logger.info(
        "Scheduled billing run finished",
        extra={"organizations": len(organizations), "transactions_created": report.total_transactions},
    )
    return report


def _run_organization(
    org: AutomationSettings,
    log_repo: AutomationLogRepository,
    generator: TransactionGenerator,
    commit: Callable[[], None],
    rollback: Callable[[], None],
    clock: Callable[[], datetime],
) -> OrganizationRunOutcome:
    started = time.monotonic()
    executed_at = clock().astimezone(ZoneInfo(org.timezone))

    try:
        result = generator.generate_for_eligible_contracts(org.organization_id, as_of=executed_at.date())
        status = run_status(result)
        summary = render_run_summary(result, executed_at, org.organization_name)
        log_repo.create_log(
            run_id=result.run_id,
            organization_id=org.organization_id,
            run_date=executed_at,
            status=status,
            processed=result.processed_contracts,
            successful=result.successful_transactions,
            failed=result.failed_transactions,
            skipped=result.skipped_contracts,
            execution_time_ms=(time.monotonic() - started) * 1000,
            errors=[
                {"contract_id": e.contract_id, "resident_id": e.resident_id, "error": e.error, "kind": e.kind}
                for e in result.errors
            ],
            summary=summary,
        )
        commit()
    except Exception as e:
        rollback()
        logger.exception("Billing run failed for organization", extra={"organization_id": org.organization_id})
        return OrganizationRunOutcome(
            organization_id=org.organization_id,
            organization_name=org.organization_name,
            status="failed",
            error=str(e),
        )

    notification = None
    if org.admin_emails:
        notification = build_notification_payload(org, result, status, summary, executed_at)

    return OrganizationRunOutcome(
        organization_id=org.organization_id,
        organization_name=org.organization_name,
        status=status,
        run_id=result.run_id,
        result=result,
        notification=notification,
    )
