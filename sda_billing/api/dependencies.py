"""Dependency injection for FastAPI endpoints"""

import secrets
from datetime import datetime
from typing import Callable
from zoneinfo import ZoneInfo

from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from sda_billing.config import settings
from sda_billing.infrastructure.clients.notifier import NotificationClient
from sda_billing.infrastructure.database.repositories import (
    SqlAuditLogSink,
    SqlContractStore,
    SqlTransactionIdAllocator,
    SqlTransactionStore,
)
from sda_billing.infrastructure.database.session import get_db
from sda_billing.services.catchup import CatchupGenerator
from sda_billing.services.transaction_generator import TransactionGenerator


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_clock() -> Callable[[], datetime]:
    """Current time in the billing timezone"""
    return lambda: datetime.now(ZoneInfo(settings.billing_timezone))


def get_contract_store(db: Session = Depends(get_db)) -> SqlContractStore:
    return SqlContractStore(db)


def get_transaction_generator(
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> TransactionGenerator:
    """Generator wired to the request's session; the endpoint commits"""
    return TransactionGenerator(
        contracts=SqlContractStore(db),
        transactions=SqlTransactionStore(db),
        id_allocator=SqlTransactionIdAllocator(db),
        audit_log=SqlAuditLogSink(db),
        clock=clock,
    )


def get_catchup_generator(
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> CatchupGenerator:
    return CatchupGenerator(
        contracts=SqlContractStore(db),
        transactions=SqlTransactionStore(db),
        id_allocator=SqlTransactionIdAllocator(db),
        clock=clock,
    )


def get_notification_client() -> NotificationClient:
    """Provide run notification webhook client instance"""
    return NotificationClient()


def verify_cron_secret(authorization: str | None = Header(None)) -> None:
    """Reject cron calls without the shared secret, when one is configured"""
    if not settings.cron_secret:
        return
    expected = f"Bearer {settings.cron_secret}"
    if authorization is None or not secrets.compare_digest(authorization, expected):
        raise HTTPException(status_code=401, detail="Unauthorized")
