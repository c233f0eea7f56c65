"""Catch-up generation - backfills drafts for billing dates a contract missed"""

import logging
import time
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from sda_billing.config import settings
from sda_billing.domain.exceptions import PersistenceError
from sda_billing.domain.models import (
    AUTOMATION_ACTOR,
    CatchupRequest,
    CatchupResult,
    CatchupTransaction,
    CatchupValidation,
    DraftTransaction,
    Frequency,
    FundingContract,
)
from sda_billing.domain.ports import ContractStore, TransactionIdAllocator, TransactionStore
from sda_billing.domain.rates import get_transaction_amount
from sda_billing.infrastructure.observability.metrics import catchup_transactions_counter
from sda_billing.services.sequencing import insert_with_sequential_id
from sda_billing.utils.date_utils import advance_run_date, count_billing_dates, generate_billing_dates

logger = logging.getLogger(__name__)

NOTHING_TO_DO = "Next run date is not in the past. No catch-up transactions needed."


def calculate_catchup_count(next_run_date: date, frequency: Frequency, today: date) -> int:
    """How many billing dates fall between next_run_date and today (inclusive, uncapped)"""
    return count_billing_dates(next_run_date, today, Frequency.parse(frequency))


def validate_catchup_generation(
    next_run_date: date,
    start_date: date,
    frequency: Frequency,
    today: date,
    max_transactions: int | None = None,
) -> CatchupValidation:
    """
    Pure pre-check for a catch-up request.

    - next run before contract start: rejected (misconfigured contract)
    - next run today or later: allowed with a warning, nothing to generate
    - more billing dates than the cap: rejected, never truncated
    """
    limit = max_transactions or settings.catchup_max_transactions

    if next_run_date < start_date:
        return CatchupValidation(valid=False, error="Next run date cannot be before contract start date")

    if next_run_date >= today:
        return CatchupValidation(
            valid=True,
            warning="Next run date is not in the past. No catch-up transactions will be generated.",
        )

    count = calculate_catchup_count(next_run_date, frequency, today)
    if count > limit:
        return CatchupValidation(
            valid=False,
            count=count,
            error=(
                f"Too many catch-up transactions required ({count}). "
                f"Maximum is {limit}. Please adjust your next run date."
            ),
        )

    return CatchupValidation(valid=True, count=count)


def request_from_contract(contract: FundingContract, created_by: str = AUTOMATION_ACTOR) -> CatchupRequest:
    """Catch-up inputs taken from a stored contract"""
    frequency = contract.frequency
    return CatchupRequest(
        contract_id=contract.id,
        resident_id=contract.resident_id,
        organization_id=contract.organization_id,
        next_run_date=contract.next_run_date,
        frequency=frequency,
        amount=get_transaction_amount(frequency, contract.daily_support_item_cost),
        current_balance=contract.current_balance,
        start_date=contract.start_date,
        created_by=created_by,
    )


class CatchupGenerator:
    """Creates one draft per missed billing date of a contract"""

    def __init__(
        self,
        contracts: ContractStore,
        transactions: TransactionStore,
        id_allocator: TransactionIdAllocator,
        clock: Optional[Callable[[], datetime]] = None,
        max_transactions: int | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.contracts = contracts
        self.transactions = transactions
        self.id_allocator = id_allocator
        self.clock = clock or (lambda: datetime.now(ZoneInfo(settings.billing_timezone)))
        self.max_transactions = max_transactions or settings.catchup_max_transactions
        self.sleep = sleep

    def generate_catchup(self, request: CatchupRequest, today: Optional[date] = None) -> CatchupResult:
        """
        Backfill drafts from request.next_run_date through today.

        Balance is not drawn down here; drafts are only checked against the
        balance when someone posts them. A shortfall is reported as a
        warning. The first failed insert stops generation and the drafts
        already created are kept.
        """
        now = self.clock()
        today = today or now.date()
        frequency = Frequency.parse(request.frequency)

        validation = validate_catchup_generation(
            request.next_run_date, request.start_date, frequency, today, self.max_transactions
        )
        if not validation.valid:
            return CatchupResult(success=False, error=validation.error)

        if request.next_run_date >= today:
            return CatchupResult(success=True, warnings=[NOTHING_TO_DO])

        billing_dates = generate_billing_dates(request.next_run_date, today, frequency)
        result = CatchupResult(success=True)

        total_required = request.amount * len(billing_dates)
        if total_required > request.current_balance:
            result.warnings.append(
                f"Insufficient balance: Need ${total_required.quantize(Decimal('0.01'))} "
                f"but only ${request.current_balance.quantize(Decimal('0.01'))} available. "
                "Some transactions may fail when posted."
            )

        run_id = uuid.uuid4().hex
        for billing_date in billing_dates:
            try:
                transaction = insert_with_sequential_id(
                    self.id_allocator,
                    self.transactions,
                    request.organization_id,
                    lambda txn_id: self._build(request, frequency, billing_date, txn_id, run_id, now),
                    max_retries=settings.txn_id_max_retries,
                    backoff_base=settings.txn_id_backoff_base,
                    sleep=self.sleep,
                )
            except Exception as e:
                logger.exception(
                    "Catch-up insert failed",
                    extra={"contract_id": request.contract_id, "billing_date": billing_date.isoformat()},
                )
                result.success = False
                result.error = f"Failed to create transaction for {billing_date.isoformat()}: {e}"
                break
            result.transactions.append(CatchupTransaction(id=transaction.id, date=billing_date, amount=request.amount))

        result.transactions_created = len(result.transactions)
        catchup_transactions_counter.inc(result.transactions_created)

        if result.transactions:
            self._advance_next_run(request, frequency, result)

        logger.info(
            "Catch-up generation finished",
            extra={
                "contract_id": request.contract_id,
                "transactions_created": result.transactions_created,
                "catchup_success": result.success,
            },
        )
        return result

    def _build(
        self,
        request: CatchupRequest,
        frequency: Frequency,
        billing_date: date,
        txn_id: str,
        run_id: str,
        now: datetime,
    ) -> DraftTransaction:
        return DraftTransaction(
            id=txn_id,
            organization_id=request.organization_id,
            contract_id=request.contract_id,
            resident_id=request.resident_id,
            amount=request.amount,
            occurred_at=datetime.combine(billing_date, now.timetz()),
            description=f"Catch-up {frequency.value} drawdown",
            note=f"Catch-up billing for {billing_date.strftime('%d/%m/%Y')}",
            created_by=request.created_by,
            automation_run_id=run_id,
            frequency=frequency.value,
        )

    def _advance_next_run(self, request: CatchupRequest, frequency: Frequency, result: CatchupResult) -> None:
        """Move the schedule past the last backfilled date so it cannot be replayed"""
        next_run_date = advance_run_date(result.transactions[-1].date, frequency)
        try:
            self.contracts.set_next_run_date(request.contract_id, next_run_date)
        except PersistenceError as e:
            logger.exception("Could not advance next run date after catch-up", extra={"contract_id": request.contract_id})
            result.warnings.append(
                f"Catch-up transactions were created but the next run date could not be advanced: {e}"
            )
