"""Storage interfaces the billing engine depends on.

Implementations are passed in explicitly (SQL stores in production,
in-memory fakes in tests). Every method may raise PersistenceError.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional, Protocol

from sda_billing.domain.models import AuditEntry, DraftTransaction, Frequency, FundingContract


class ContractStore(Protocol):
    def get(self, contract_id: str) -> FundingContract:
        """Raises ContractNotFoundError for unknown ids"""
        ...

    def find_due(self, run_date: date, organization_id: Optional[str] = None) -> List[FundingContract]:
        """Contracts with automation enabled and next_run_date == run_date"""
        ...

    def find_automated(self, organization_id: Optional[str] = None) -> List[FundingContract]:
        """All contracts with automation enabled"""
        ...

    def record_drawdown(
        self,
        contract_id: str,
        current_balance: Decimal,
        next_run_date: date,
        last_drawdown_date: datetime,
    ) -> None:
        ...

    def set_next_run_date(self, contract_id: str, next_run_date: date) -> None:
        ...

    def enable_automation(
        self,
        contract_id: str,
        frequency: Frequency,
        daily_support_item_cost: Decimal,
        first_run_date: date,
        next_run_date: date,
    ) -> None:
        ...


class TransactionStore(Protocol):
    def insert(self, transaction: DraftTransaction) -> None:
        """Raises DuplicateTransactionIdError if the id is taken"""
        ...

    def find_automated_for_resident(
        self, resident_id: str, created_by: str, window_start: datetime, window_end: datetime
    ) -> List[DraftTransaction]:
        ...

    def delete(self, transaction_id: str) -> None:
        ...


class TransactionIdAllocator(Protocol):
    def allocate(self, organization_id: str) -> str:
        ...


class AuditLogSink(Protocol):
    def append(self, entry: AuditEntry) -> None:
        ...
