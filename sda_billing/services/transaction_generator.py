"""Automated drawdown generation - bills every contract due today, once per resident"""

import logging
import time
import uuid
from datetime import date, datetime
from typing import Callable, Optional, Set
from zoneinfo import ZoneInfo

from sda_billing.config import settings
from sda_billing.domain.eligibility import find_eligible_contracts
from sda_billing.domain.exceptions import (
    BillingError,
    ContractUpdateError,
    DomainException,
    DuplicateTransactionError,
    InsufficientBalanceError,
    InvalidTransactionAmountError,
    PersistenceError,
)
from sda_billing.domain.models import (
    AUTOMATION_ACTOR,
    AuditEntry,
    DraftTransaction,
    FundingContract,
    GenerationPreview,
    GenerationResult,
    PreviewTransaction,
    TransactionError,
)
from sda_billing.domain.ports import AuditLogSink, ContractStore, TransactionIdAllocator, TransactionStore
from sda_billing.domain.rates import get_transaction_amount
from sda_billing.domain.reporting import run_status, summarize_transactions
from sda_billing.infrastructure.observability.logging import log_run_completed
from sda_billing.infrastructure.observability.metrics import (
    record_contract_failure,
    record_run,
    record_transaction,
)
from sda_billing.services.sequencing import insert_with_sequential_id
from sda_billing.utils.date_utils import advance_run_date, day_window

logger = logging.getLogger(__name__)

DUPLICATE_RESIDENT_REASON = (
    "Another contract for this resident was already processed in this automation run. "
    "Please disable automation on the duplicate contract."
)


class TransactionGenerator:
    """
    Creates draft drawdown transactions for contracts scheduled today.

    Idempotency layers:
    1. In-memory set of residents billed in this run
    2. Persisted check for an automated transaction for the resident today
    3. Collision-safe sequential id allocation

    Layer 2 is what makes a second invocation on the same day a no-op; it
    runs for every contract regardless of layer 1.
    """

    def __init__(
        self,
        contracts: ContractStore,
        transactions: TransactionStore,
        id_allocator: TransactionIdAllocator,
        audit_log: AuditLogSink,
        clock: Optional[Callable[[], datetime]] = None,
        max_id_retries: int | None = None,
        id_backoff_base: float | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.contracts = contracts
        self.transactions = transactions
        self.id_allocator = id_allocator
        self.audit_log = audit_log
        self.clock = clock or (lambda: datetime.now(ZoneInfo(settings.billing_timezone)))
        self.max_id_retries = max_id_retries or settings.txn_id_max_retries
        self.id_backoff_base = settings.txn_id_backoff_base if id_backoff_base is None else id_backoff_base
        self.sleep = sleep

    def generate_for_eligible_contracts(
        self, organization_id: Optional[str] = None, as_of: Optional[date] = None
    ) -> GenerationResult:
        """
        Bill every eligible contract for `as_of` (default: today).

        Contracts are processed one at a time in store order. A failing
        contract is recorded in `errors` and the run continues; only a
        failure to fetch the eligible contracts fails the whole run.
        """
        started = time.monotonic()
        run_id = uuid.uuid4().hex
        now = self.clock()
        today = as_of or now.date()

        try:
            eligible = find_eligible_contracts(self.contracts, today, organization_id)
        except Exception as e:
            logger.exception(
                "Failed to fetch eligible contracts",
                extra={"run_id": run_id, "organization_id": organization_id},
            )
            result = GenerationResult(
                success=False,
                run_id=run_id,
                errors=[
                    TransactionError(
                        contract_id="unknown",
                        resident_id="unknown",
                        error="Failed to generate transactions",
                        kind="fetch_failed",
                        details={"error": str(e)},
                    )
                ],
            )
            self._finish(result, organization_id, started)
            return result

        result = GenerationResult(success=True, run_id=run_id, processed_contracts=len(eligible))
        billed_residents: Set[str] = set()

        for eligible_contract in eligible:
            contract = eligible_contract.contract
            if contract.resident_id in billed_residents:
                logger.warning(
                    "Skipping duplicate contract for resident already billed in this run",
                    extra={"run_id": run_id, "contract_id": contract.id, "resident_id": contract.resident_id},
                )
                result.skipped_contracts += 1
                self._record_failure(
                    result,
                    contract,
                    "Skipped: duplicate contract for same resident",
                    "duplicate_resident",
                    {"reason": DUPLICATE_RESIDENT_REASON},
                )
                continue

            try:
                transaction = self.generate_transaction_for_contract(contract, run_id, today=today, now=now)
            except BillingError as e:
                result.failed_transactions += 1
                self._record_failure(result, contract, str(e), e.kind, e.details)
            except DomainException as e:
                result.failed_transactions += 1
                self._record_failure(result, contract, str(e), "persistence", {"error_type": type(e).__name__})
            except Exception as e:
                logger.exception(
                    "Unexpected error generating transaction",
                    extra={"run_id": run_id, "contract_id": contract.id},
                )
                result.failed_transactions += 1
                self._record_failure(result, contract, "Transaction generation failed", "unexpected", {"error": str(e)})
            else:
                billed_residents.add(contract.resident_id)
                result.successful_transactions += 1
                result.transactions.append(transaction)
                record_transaction(transaction.frequency)

        result.summary = summarize_transactions(result.transactions)
        self._finish(result, organization_id, started)
        return result

    def generate_transaction_for_contract(
        self,
        contract: FundingContract,
        run_id: str,
        today: Optional[date] = None,
        now: Optional[datetime] = None,
    ) -> DraftTransaction:
        """
        Bill one contract: insert a draft and draw down the balance together.

        Raises a BillingError subclass when the contract must not be billed,
        ContractUpdateError when the balance update failed and the draft was
        removed again.
        """
        now = now or self.clock()
        today = today or now.date()
        frequency = contract.frequency

        amount = get_transaction_amount(frequency, contract.daily_support_item_cost)
        if amount <= 0:
            raise InvalidTransactionAmountError(
                "Invalid transaction amount",
                {"daily_rate": str(contract.daily_support_item_cost), "frequency": frequency.value},
            )

        if contract.current_balance < amount:
            raise InsufficientBalanceError(
                "Insufficient contract balance",
                {"current_balance": str(contract.current_balance), "transaction_amount": str(amount)},
            )

        window_start, window_end = day_window(today, now.tzinfo)
        existing = self.transactions.find_automated_for_resident(
            contract.resident_id, AUTOMATION_ACTOR, window_start, window_end
        )
        if existing:
            logger.warning(
                "Duplicate prevented",
                extra={"contract_id": contract.id, "existing": [t.id for t in existing]},
            )
            raise DuplicateTransactionError(
                "Duplicate prevented: automation transaction already exists for this resident today",
                {
                    "existing_transactions": [{"id": t.id, "contract_id": t.contract_id} for t in existing],
                    "contract_id": contract.id,
                    "resident_id": contract.resident_id,
                },
            )

        occurred_at = datetime.combine(today, now.timetz())
        description = f"Automated {frequency.value} drawdown - {contract.contract_type}"

        transaction = insert_with_sequential_id(
            self.id_allocator,
            self.transactions,
            contract.organization_id,
            lambda txn_id: DraftTransaction(
                id=txn_id,
                organization_id=contract.organization_id,
                contract_id=contract.id,
                resident_id=contract.resident_id,
                amount=amount,
                occurred_at=occurred_at,
                description=description,
                created_by=AUTOMATION_ACTOR,
                automation_run_id=run_id,
                frequency=frequency.value,
            ),
            max_retries=self.max_id_retries,
            backoff_base=self.id_backoff_base,
            sleep=self.sleep,
        )

        new_balance = contract.current_balance - amount
        next_run_date = advance_run_date(contract.next_run_date or today, frequency)

        try:
            self.contracts.record_drawdown(contract.id, new_balance, next_run_date, now)
        except Exception as e:
            self._discard(transaction)
            raise ContractUpdateError(
                "Failed to update contract",
                {"transaction_id": transaction.id, "error": str(e)},
            ) from e

        self._audit(contract, transaction, new_balance, run_id, now)
        return transaction

    def preview(self, organization_id: Optional[str] = None, as_of: Optional[date] = None) -> GenerationPreview:
        """What a run would bill today, without writing anything"""
        today = as_of or self.clock().date()
        try:
            eligible = find_eligible_contracts(self.contracts, today, organization_id)
        except Exception as e:
            logger.exception("Preview failed", extra={"organization_id": organization_id})
            return GenerationPreview(success=False, eligible_contracts=0, error=str(e))

        preview = GenerationPreview(success=True, eligible_contracts=len(eligible))
        for eligible_contract in eligible:
            contract = eligible_contract.contract
            frequency = contract.frequency
            amount = get_transaction_amount(frequency, contract.daily_support_item_cost)
            preview.transactions.append(
                PreviewTransaction(
                    contract_id=contract.id,
                    resident_id=contract.resident_id,
                    resident_name=contract.resident.full_name,
                    amount=amount,
                    frequency=frequency.value,
                    current_balance=contract.current_balance,
                    new_balance=contract.current_balance - amount,
                    next_run_date=advance_run_date(contract.next_run_date, frequency),
                    has_sufficient_balance=contract.current_balance >= amount,
                )
            )
            preview.total_amount += amount
        return preview

    def _discard(self, transaction: DraftTransaction) -> None:
        """Compensating delete of a draft whose contract update failed"""
        try:
            self.transactions.delete(transaction.id)
        except PersistenceError:
            logger.exception(
                "Rollback failed, orphan draft transaction left behind",
                extra={"transaction_id": transaction.id, "contract_id": transaction.contract_id},
            )
            raise

    def _audit(
        self,
        contract: FundingContract,
        transaction: DraftTransaction,
        new_balance,
        run_id: str,
        now: datetime,
    ) -> None:
        entry = AuditEntry(
            resident_id=contract.resident_id,
            action="AUTOMATED_TRANSACTION_CREATED",
            field="current_balance",
            old_value=str(contract.current_balance),
            new_value=str(new_balance),
            timestamp=now,
            run_id=run_id,
            details={
                "transaction_id": transaction.id,
                "contract_id": contract.id,
                "frequency": transaction.frequency,
                "transaction_amount": str(transaction.amount),
            },
        )
        try:
            self.audit_log.append(entry)
        except PersistenceError:
            # The drawdown itself is complete; a lost audit line must not undo it
            logger.exception(
                "Audit log write failed",
                extra={"transaction_id": transaction.id, "run_id": run_id},
            )

    def _record_failure(self, result: GenerationResult, contract: FundingContract, message: str, kind: str, details) -> None:
        result.errors.append(
            TransactionError(
                contract_id=contract.id,
                resident_id=contract.resident_id,
                error=message,
                kind=kind,
                details=dict(details or {}),
            )
        )
        record_contract_failure(kind)

    def _finish(self, result: GenerationResult, organization_id: Optional[str], started: float) -> None:
        duration = time.monotonic() - started
        status = run_status(result)
        record_run(status, duration)
        log_run_completed(
            result.run_id,
            organization_id,
            status,
            result.processed_contracts,
            result.successful_transactions,
            result.failed_transactions,
            duration * 1000,
        )
