"""Data access layer - SQL implementations of the billing engine's stores"""

import logging
from contextlib import contextmanager
from datetime import date, datetime
from decimal import Decimal
from typing import Iterator, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from sda_billing.domain.exceptions import ContractNotFoundError, DuplicateTransactionIdError, PersistenceError
from sda_billing.domain.models import (
    AuditEntry,
    AutomationSettings,
    ContractStatus,
    DraftTransaction,
    Frequency,
    FundingContract,
    House,
    Resident,
)
from sda_billing.domain.transaction_ids import (
    FIRST,
    format_transaction_id,
    increment,
    latest_position,
    next_transaction_id,
    org_prefix,
)
from sda_billing.infrastructure.database.models import (
    AuditLogRow,
    AutomationLogRow,
    AutomationSettingsRow,
    FundingContractRow,
    ResidentRow,
    TransactionIdCounterRow,
    TransactionRow,
)

logger = logging.getLogger(__name__)


@contextmanager
def savepoint(db: Session) -> Iterator[None]:
    """Run a write in a SAVEPOINT; failures roll back only that write"""
    try:
        with db.begin_nested():
            yield
            db.flush()
    except SQLAlchemyError as e:
        raise PersistenceError(f"Database write failed: {e}") from e


def contract_to_domain(row: FundingContractRow) -> FundingContract:
    """Map a contract row (with resident and house) to its domain snapshot"""
    resident_row = row.resident
    house_row = resident_row.house if resident_row is not None else None
    return FundingContract(
        id=row.id,
        organization_id=row.organization_id,
        resident=Resident(
            id=resident_row.id,
            first_name=resident_row.first_name,
            last_name=resident_row.last_name,
            status=resident_row.status,
            house_id=resident_row.house_id,
        ),
        contract_type=row.type,
        original_amount=Decimal(row.amount),
        current_balance=Decimal(row.current_balance),
        start_date=row.start_date,
        end_date=row.end_date,
        contract_status=ContractStatus.parse(row.contract_status),
        auto_billing_enabled=bool(row.auto_billing_enabled),
        automated_drawdown_frequency=row.automated_drawdown_frequency,
        first_run_date=row.first_run_date,
        next_run_date=row.next_run_date,
        daily_support_item_cost=(
            Decimal(row.daily_support_item_cost) if row.daily_support_item_cost is not None else None
        ),
        renewal_date=row.renewal_date,
        last_drawdown_date=row.last_drawdown_date,
        house=(
            House(
                id=house_row.id,
                descriptor=house_row.descriptor or "",
                address1=house_row.address1 or "",
                suburb=house_row.suburb or "",
                state=house_row.state or "",
                postcode=house_row.postcode or "",
            )
            if house_row is not None
            else None
        ),
    )


def transaction_to_domain(row: TransactionRow) -> DraftTransaction:
    return DraftTransaction(
        id=row.id,
        organization_id=row.organization_id,
        contract_id=row.contract_id,
        resident_id=row.resident_id,
        amount=Decimal(row.amount),
        occurred_at=row.occurred_at,
        description=row.description or "",
        created_by=row.created_by,
        automation_run_id=row.automation_run_id,
        frequency=row.frequency,
        note=row.note,
        quantity=row.quantity,
        unit_price=Decimal(row.unit_price),
        status=row.status,
        drawdown_status=row.drawdown_status,
        is_drawdown_transaction=row.is_drawdown_transaction,
    )


class SqlContractStore:
    """Repository for funding contracts"""

    def __init__(self, db: Session):
        self.db = db

    def _query(self):
        return self.db.query(FundingContractRow).options(
            joinedload(FundingContractRow.resident).joinedload(ResidentRow.house)
        )

    def _row(self, contract_id: str) -> FundingContractRow:
        row = self.db.get(FundingContractRow, contract_id)
        if row is None:
            raise ContractNotFoundError(f"Contract {contract_id} not found")
        return row

    def get(self, contract_id: str) -> FundingContract:
        """Fetch contract with resident and house"""
        try:
            row = self._query().filter(FundingContractRow.id == contract_id).first()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load contract {contract_id}: {e}") from e
        if row is None:
            raise ContractNotFoundError(f"Contract {contract_id} not found")
        return contract_to_domain(row)

    def find_due(self, run_date: date, organization_id: Optional[str] = None) -> List[FundingContract]:
        """Automation-enabled contracts scheduled for exactly run_date"""
        query = self._query().filter(
            FundingContractRow.auto_billing_enabled.is_(True),
            FundingContractRow.next_run_date == run_date,
        )
        return self._list(query, organization_id)

    def find_automated(self, organization_id: Optional[str] = None) -> List[FundingContract]:
        query = self._query().filter(FundingContractRow.auto_billing_enabled.is_(True))
        return self._list(query, organization_id)

    def _list(self, query, organization_id: Optional[str]) -> List[FundingContract]:
        if organization_id is not None:
            query = query.filter(FundingContractRow.organization_id == organization_id)
        try:
            rows = query.order_by(FundingContractRow.created_at, FundingContractRow.id).all()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to query contracts: {e}") from e
        return [contract_to_domain(row) for row in rows]

    def record_drawdown(
        self,
        contract_id: str,
        current_balance: Decimal,
        next_run_date: date,
        last_drawdown_date: datetime,
    ) -> None:
        """Apply a drawdown: new balance, advanced schedule, timestamp"""
        with savepoint(self.db):
            row = self._row(contract_id)
            row.current_balance = current_balance
            row.next_run_date = next_run_date
            row.last_drawdown_date = last_drawdown_date

    def set_next_run_date(self, contract_id: str, next_run_date: date) -> None:
        with savepoint(self.db):
            self._row(contract_id).next_run_date = next_run_date

    def enable_automation(
        self,
        contract_id: str,
        frequency: Frequency,
        daily_support_item_cost: Decimal,
        first_run_date: date,
        next_run_date: date,
    ) -> None:
        with savepoint(self.db):
            row = self._row(contract_id)
            row.auto_billing_enabled = True
            row.automated_drawdown_frequency = frequency.value
            row.daily_support_item_cost = daily_support_item_cost
            row.first_run_date = first_run_date
            row.next_run_date = next_run_date


class SqlTransactionStore:
    """Repository for draft transactions"""

    def __init__(self, db: Session):
        self.db = db

    def insert(self, transaction: DraftTransaction) -> None:
        """Insert a draft; a taken id raises DuplicateTransactionIdError"""
        try:
            with savepoint(self.db):
                self.db.add(
                    TransactionRow(
                        id=transaction.id,
                        organization_id=transaction.organization_id,
                        resident_id=transaction.resident_id,
                        contract_id=transaction.contract_id,
                        amount=transaction.amount,
                        quantity=transaction.quantity,
                        unit_price=transaction.unit_price,
                        occurred_at=transaction.occurred_at,
                        description=transaction.description,
                        note=transaction.note,
                        status=transaction.status,
                        drawdown_status=transaction.drawdown_status,
                        is_drawdown_transaction=transaction.is_drawdown_transaction,
                        created_by=transaction.created_by,
                        automation_run_id=transaction.automation_run_id,
                        frequency=transaction.frequency,
                    )
                )
        except PersistenceError as e:
            if self.exists(transaction.id):
                raise DuplicateTransactionIdError(f"Transaction id {transaction.id} already exists") from e
            raise

    def exists(self, transaction_id: str) -> bool:
        return self.db.query(TransactionRow.id).filter(TransactionRow.id == transaction_id).first() is not None

    def find_automated_for_resident(
        self, resident_id: str, created_by: str, window_start: datetime, window_end: datetime
    ) -> List[DraftTransaction]:
        """Transactions created by `created_by` for a resident inside a time window"""
        try:
            rows = (
                self.db.query(TransactionRow)
                .filter(
                    TransactionRow.resident_id == resident_id,
                    TransactionRow.created_by == created_by,
                    TransactionRow.occurred_at >= window_start,
                    TransactionRow.occurred_at <= window_end,
                )
                .all()
            )
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to check existing transactions: {e}") from e
        return [transaction_to_domain(row) for row in rows]

    def delete(self, transaction_id: str) -> None:
        with savepoint(self.db):
            self.db.query(TransactionRow).filter(TransactionRow.id == transaction_id).delete()


class SqlTransactionIdAllocator:
    """
    Sequential id allocation per organization.

    Primary path: a counter row read with SELECT ... FOR UPDATE, so
    concurrent allocators are serialized by the database. If the counter
    cannot be used, ids are derived from a scan of existing transactions;
    collisions from that path surface at insert and are retried there.
    """

    SCAN_LIMIT = 500

    def __init__(self, db: Session):
        self.db = db

    def allocate(self, organization_id: str) -> str:
        try:
            with savepoint(self.db):
                return self._allocate_from_counter(organization_id)
        except PersistenceError:
            logger.warning(
                "Counter allocation failed, falling back to id scan",
                extra={"organization_id": organization_id},
                exc_info=True,
            )
            return next_transaction_id(self._existing_ids(organization_id), organization_id)

    def _allocate_from_counter(self, organization_id: str) -> str:
        prefix = org_prefix(organization_id)
        counter = (
            self.db.query(TransactionIdCounterRow)
            .filter(TransactionIdCounterRow.organization_id == organization_id)
            .with_for_update()
            .one_or_none()
        )
        if counter is None:
            # Seed from existing data so ids continue after legacy transactions
            latest = latest_position(self._existing_ids(organization_id), prefix)
            letter, number = increment(*latest) if latest else FIRST
            counter = TransactionIdCounterRow(organization_id=organization_id, letter=letter, number=number)
            self.db.add(counter)
        else:
            counter.letter, counter.number = increment(counter.letter, counter.number)
        self.db.flush()
        return format_transaction_id(prefix, counter.letter, counter.number)

    def _existing_ids(self, organization_id: str) -> List[str]:
        try:
            rows = (
                self.db.query(TransactionRow.id)
                .filter(TransactionRow.organization_id == organization_id, TransactionRow.id.like("TXN-%"))
                .order_by(TransactionRow.id.desc())
                .limit(self.SCAN_LIMIT)
                .all()
            )
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to read transaction ids: {e}") from e
        return [row.id for row in rows]


class SqlAuditLogSink:
    """Append-only audit trail"""

    def __init__(self, db: Session):
        self.db = db

    def append(self, entry: AuditEntry) -> None:
        with savepoint(self.db):
            self.db.add(
                AuditLogRow(
                    resident_id=entry.resident_id,
                    action=entry.action,
                    field=entry.field,
                    old_value=entry.old_value,
                    new_value=entry.new_value,
                    timestamp=entry.timestamp,
                    run_id=entry.run_id,
                    details=entry.details,
                )
            )


class AutomationSettingsRepository:
    """Repository for per-organization automation settings"""

    def __init__(self, db: Session):
        self.db = db

    def list_enabled(self) -> List[AutomationSettings]:
        rows = (
            self.db.query(AutomationSettingsRow)
            .filter(AutomationSettingsRow.enabled.is_(True))
            .order_by(AutomationSettingsRow.organization_name)
            .all()
        )
        return [
            AutomationSettings(
                organization_id=row.organization_id,
                organization_name=row.organization_name,
                enabled=row.enabled,
                admin_emails=list(row.admin_emails or []),
                timezone=row.timezone,
            )
            for row in rows
        ]


class AutomationLogRepository:
    """Repository for automation run logs"""

    def __init__(self, db: Session):
        self.db = db

    def create_log(
        self,
        run_id: str,
        organization_id: str,
        run_date: datetime,
        status: str,
        processed: int,
        successful: int,
        failed: int,
        skipped: int,
        execution_time_ms: float,
        errors: list,
        summary: str,
    ) -> AutomationLogRow:
        """Persist one organization's run outcome"""
        row = AutomationLogRow(
            run_id=run_id,
            organization_id=organization_id,
            run_date=run_date,
            status=status,
            contracts_processed=processed,
            contracts_successful=successful,
            contracts_failed=failed,
            contracts_skipped=skipped,
            execution_time_ms=execution_time_ms,
            errors=errors,
            summary=summary,
        )
        with savepoint(self.db):
            self.db.add(row)
        return row

    def get_logs_by_organization(
        self,
        organization_id: str,
        limit: int = 10,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
    ) -> List[AutomationLogRow]:
        """Fetch recent run logs for an organization, newest run first"""
        query = self.db.query(AutomationLogRow).filter(AutomationLogRow.organization_id == organization_id)
        if since is not None:
            query = query.filter(AutomationLogRow.run_date >= since)
        if until is not None:
            query = query.filter(AutomationLogRow.run_date <= until)
        try:
            return (
                query.order_by(AutomationLogRow.run_date.desc(), AutomationLogRow.created_at.desc())
                .limit(limit)
                .all()
            )
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to read automation logs: {e}") from e
