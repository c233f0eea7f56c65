"""Pytest fixtures for testing"""

import copy
import json
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Dict, Generator, List, Optional
from zoneinfo import ZoneInfo

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from sda_billing.api.dependencies import get_clock, get_notification_client
from sda_billing.api.main import create_app
from sda_billing.domain.exceptions import ContractNotFoundError, DuplicateTransactionIdError, PersistenceError
from sda_billing.domain.models import (
    AuditEntry,
    ContractStatus,
    DraftTransaction,
    Frequency,
    FundingContract,
    House,
    Resident,
)
from sda_billing.domain.transaction_ids import next_transaction_id
from sda_billing.infrastructure.clients.notifier import NotificationClient
from sda_billing.infrastructure.database.models import Base, FundingContractRow, HouseRow, ResidentRow
from sda_billing.infrastructure.database.session import get_db
from sda_billing.services.catchup import CatchupGenerator
from sda_billing.services.transaction_generator import TransactionGenerator

ORG_ID = "org-sunrise-0001"
SYDNEY = ZoneInfo("Australia/Sydney")
TODAY = date(2024, 3, 15)
NOW = datetime(2024, 3, 15, 9, 30, tzinfo=SYDNEY)


# Test database: one shared in-memory connection per test run
engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


@event.listens_for(engine, "connect")
def _disable_pysqlite_transactions(dbapi_connection, connection_record):
    # Let SQLAlchemy emit BEGIN itself so SAVEPOINTs nest correctly
    dbapi_connection.isolation_level = None


@event.listens_for(engine, "begin")
def _emit_begin(conn):
    conn.exec_driver_sql("BEGIN")


TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


# In-memory stores. Reads hand out copies so callers cannot mutate state
# without going through the store, like a real database.


class InMemoryContractStore:
    def __init__(self):
        self.contracts: Dict[str, FundingContract] = {}
        self.fail_updates = False

    def add(self, *contracts: FundingContract) -> None:
        for contract in contracts:
            self.contracts[contract.id] = copy.deepcopy(contract)

    def get(self, contract_id: str) -> FundingContract:
        if contract_id not in self.contracts:
            raise ContractNotFoundError(f"Contract {contract_id} not found")
        return copy.deepcopy(self.contracts[contract_id])

    def find_due(self, run_date: date, organization_id: Optional[str] = None) -> List[FundingContract]:
        return [c for c in self.find_automated(organization_id) if c.next_run_date == run_date]

    def find_automated(self, organization_id: Optional[str] = None) -> List[FundingContract]:
        return [
            copy.deepcopy(c)
            for c in self.contracts.values()
            if c.auto_billing_enabled and (organization_id is None or c.organization_id == organization_id)
        ]

    def record_drawdown(self, contract_id, current_balance, next_run_date, last_drawdown_date) -> None:
        if self.fail_updates:
            raise PersistenceError("contract update failed")
        contract = self.contracts[contract_id]
        contract.current_balance = current_balance
        contract.next_run_date = next_run_date
        contract.last_drawdown_date = last_drawdown_date

    def set_next_run_date(self, contract_id: str, next_run_date: date) -> None:
        if self.fail_updates:
            raise PersistenceError("contract update failed")
        self.contracts[contract_id].next_run_date = next_run_date

    def enable_automation(self, contract_id, frequency, daily_support_item_cost, first_run_date, next_run_date) -> None:
        contract = self.contracts[contract_id]
        contract.auto_billing_enabled = True
        contract.automated_drawdown_frequency = frequency.value
        contract.daily_support_item_cost = daily_support_item_cost
        contract.first_run_date = first_run_date
        contract.next_run_date = next_run_date


class InMemoryTransactionStore:
    def __init__(self):
        self.transactions: Dict[str, DraftTransaction] = {}
        self.fail_after: Optional[int] = None
        self.fail_deletes = False

    def insert(self, transaction: DraftTransaction) -> None:
        if transaction.id in self.transactions:
            raise DuplicateTransactionIdError(f"Transaction id {transaction.id} already exists")
        if self.fail_after is not None and len(self.transactions) >= self.fail_after:
            raise PersistenceError("insert failed")
        self.transactions[transaction.id] = copy.deepcopy(transaction)

    def find_automated_for_resident(self, resident_id, created_by, window_start, window_end) -> List[DraftTransaction]:
        return [
            copy.deepcopy(t)
            for t in self.transactions.values()
            if t.resident_id == resident_id
            and t.created_by == created_by
            and window_start <= t.occurred_at <= window_end
        ]

    def delete(self, transaction_id: str) -> None:
        if self.fail_deletes:
            raise PersistenceError("delete failed")
        self.transactions.pop(transaction_id, None)


class ScanningIdAllocator:
    """Derives the next id from the store's existing ids"""

    def __init__(self, store: InMemoryTransactionStore):
        self.store = store

    def allocate(self, organization_id: str) -> str:
        return next_transaction_id(list(self.store.transactions), organization_id)


class InMemoryAuditLog:
    def __init__(self):
        self.entries: List[AuditEntry] = []
        self.fail = False

    def append(self, entry: AuditEntry) -> None:
        if self.fail:
            raise PersistenceError("audit write failed")
        self.entries.append(entry)


@pytest.fixture
def today() -> date:
    return TODAY


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def org_id() -> str:
    return ORG_ID


@pytest.fixture
def contract_store() -> InMemoryContractStore:
    return InMemoryContractStore()


@pytest.fixture
def transaction_store() -> InMemoryTransactionStore:
    return InMemoryTransactionStore()


@pytest.fixture
def audit_log() -> InMemoryAuditLog:
    return InMemoryAuditLog()


@pytest.fixture
def generator(contract_store, transaction_store, audit_log) -> TransactionGenerator:
    """Transaction generator over in-memory stores with a fixed clock"""
    return TransactionGenerator(
        contracts=contract_store,
        transactions=transaction_store,
        id_allocator=ScanningIdAllocator(transaction_store),
        audit_log=audit_log,
        clock=lambda: NOW,
        sleep=lambda seconds: None,
    )


@pytest.fixture
def catchup_generator(contract_store, transaction_store) -> CatchupGenerator:
    return CatchupGenerator(
        contracts=contract_store,
        transactions=transaction_store,
        id_allocator=ScanningIdAllocator(transaction_store),
        clock=lambda: NOW,
        sleep=lambda seconds: None,
    )


@pytest.fixture
def make_contract() -> Callable[..., FundingContract]:
    """
    Build an eligible weekly contract due today.

    Any FundingContract field can be overridden, plus resident_id and
    resident_status for the embedded resident.
    """

    def _make(**overrides) -> FundingContract:
        resident_id = overrides.pop("resident_id", "resident-1")
        resident_status = overrides.pop("resident_status", "Active")
        values = dict(
            id="contract-1",
            organization_id=ORG_ID,
            resident=Resident(
                id=resident_id,
                first_name="Jane",
                last_name="Citizen",
                status=resident_status,
                house_id="house-1",
            ),
            contract_type="SDA",
            original_amount=Decimal("10000.00"),
            current_balance=Decimal("5000.00"),
            start_date=date(2024, 1, 1),
            end_date=date(2024, 12, 31),
            contract_status=ContractStatus.ACTIVE,
            auto_billing_enabled=True,
            automated_drawdown_frequency=Frequency.WEEKLY.value,
            first_run_date=date(2024, 1, 5),
            next_run_date=TODAY,
            daily_support_item_cost=Decimal("27.32"),
            house=House(id="house-1", descriptor="Harbour View"),
        )
        values.update(overrides)
        return FundingContract(**values)

    return _make


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def seed_contract(db: Session) -> Callable[..., str]:
    """Insert house, resident and contract rows; returns the contract id"""

    def _seed(
        contract_id: str = "contract-1",
        resident_id: str = "resident-1",
        organization_id: str = ORG_ID,
        **overrides,
    ) -> str:
        resident_status = overrides.pop("resident_status", "Active")
        if db.get(HouseRow, "house-1") is None:
            db.add(HouseRow(id="house-1", organization_id=organization_id, descriptor="Harbour View"))
        if db.get(ResidentRow, resident_id) is None:
            db.add(
                ResidentRow(
                    id=resident_id,
                    organization_id=organization_id,
                    house_id="house-1",
                    first_name="Jane",
                    last_name="Citizen",
                    status=resident_status,
                )
            )
        values = dict(
            id=contract_id,
            organization_id=organization_id,
            resident_id=resident_id,
            type="SDA",
            amount=Decimal("10000.00"),
            current_balance=Decimal("5000.00"),
            start_date=date(2024, 1, 1),
            end_date=date(2024, 12, 31),
            contract_status="Active",
            auto_billing_enabled=True,
            automated_drawdown_frequency="weekly",
            first_run_date=date(2024, 1, 5),
            next_run_date=TODAY,
            daily_support_item_cost=Decimal("27.32"),
        )
        values.update(overrides)
        db.add(FundingContractRow(**values))
        db.commit()
        return contract_id

    return _seed


@pytest.fixture
def notifications() -> List[dict]:
    """Payloads the fake notification service received"""
    return []


@pytest.fixture
def client(db: Session, notifications: List[dict]) -> TestClient:
    """Create FastAPI test client with test database, fixed clock and fake notification service"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    def record(request: httpx.Request) -> httpx.Response:
        notifications.append(json.loads(request.content))
        return httpx.Response(202)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: (lambda: NOW)
    app.dependency_overrides[get_notification_client] = lambda: NotificationClient(
        webhook_url="http://notifications.test/automation-run",
        transport=httpx.MockTransport(record),
    )
    return TestClient(app)
