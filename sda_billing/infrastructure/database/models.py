"""SQLAlchemy ORM models for contracts, drafts and automation bookkeeping"""

import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


class HouseRow(Base):
    """SDA property"""

    __tablename__ = "houses"

    id = Column(String(36), primary_key=True, default=_uuid)
    organization_id = Column(String(36), nullable=False, index=True)
    descriptor = Column(Text, nullable=True)
    address1 = Column(Text, nullable=True)
    suburb = Column(Text, nullable=True)
    state = Column(Text, nullable=True)
    postcode = Column(Text, nullable=True)
    status = Column(Text, nullable=False, default="Active")

    residents = relationship("ResidentRow", back_populates="house")


class ResidentRow(Base):
    """NDIS participant"""

    __tablename__ = "residents"

    id = Column(String(36), primary_key=True, default=_uuid)
    organization_id = Column(String(36), nullable=False, index=True)
    house_id = Column(String(36), ForeignKey("houses.id", ondelete="SET NULL"), nullable=True)
    first_name = Column(Text, nullable=False)
    last_name = Column(Text, nullable=False)
    status = Column(Text, nullable=True)

    house = relationship("HouseRow", back_populates="residents")
    contracts = relationship("FundingContractRow", back_populates="resident")


class FundingContractRow(Base):
    """Funding contract with automation configuration"""

    __tablename__ = "funding_contracts"

    id = Column(String(36), primary_key=True, default=_uuid)
    organization_id = Column(String(36), nullable=False, index=True)
    resident_id = Column(String(36), ForeignKey("residents.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(Text, nullable=False, default="SDA")
    amount = Column(Numeric(12, 2), nullable=False)
    current_balance = Column(Numeric(12, 2), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)
    renewal_date = Column(Date, nullable=True)
    contract_status = Column(Text, nullable=False, default="Draft")
    support_item_code = Column(Text, nullable=True)
    daily_support_item_cost = Column(Numeric(12, 2), nullable=True)
    auto_billing_enabled = Column(Boolean, nullable=False, default=False)
    automated_drawdown_frequency = Column(Text, nullable=True)
    first_run_date = Column(Date, nullable=True)
    next_run_date = Column(Date, nullable=True, index=True)
    last_drawdown_date = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=func.now())

    resident = relationship("ResidentRow", back_populates="contracts")


class TransactionRow(Base):
    """Billing transaction; automation only ever creates drafts"""

    __tablename__ = "transactions"

    id = Column(String(32), primary_key=True)
    organization_id = Column(String(36), nullable=False, index=True)
    resident_id = Column(String(36), ForeignKey("residents.id", ondelete="CASCADE"), nullable=False, index=True)
    contract_id = Column(String(36), ForeignKey("funding_contracts.id", ondelete="CASCADE"), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    unit_price = Column(Numeric(12, 2), nullable=False)
    occurred_at = Column(DateTime(timezone=True), nullable=False, index=True)
    description = Column(Text, nullable=True)
    note = Column(Text, nullable=True)
    status = Column(Text, nullable=False, default="draft")
    drawdown_status = Column(Text, nullable=False, default="pending")
    is_drawdown_transaction = Column(Boolean, nullable=False, default=True)
    created_by = Column(Text, nullable=False)
    automation_run_id = Column(String(32), nullable=True, index=True)
    frequency = Column(Text, nullable=True)
    posted_at = Column(DateTime(timezone=True), nullable=True)
    posted_by = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class AuditLogRow(Base):
    """Append-only field change history"""

    __tablename__ = "audit_logs"

    id = Column(String(36), primary_key=True, default=_uuid)
    resident_id = Column(String(36), nullable=False, index=True)
    action = Column(Text, nullable=False)
    field = Column(Text, nullable=False)
    old_value = Column(Text, nullable=True)
    new_value = Column(Text, nullable=True)
    timestamp = Column(DateTime(timezone=True), nullable=False)
    user_id = Column(Text, nullable=False, default="system")
    run_id = Column(String(32), nullable=True, index=True)
    details = Column(JSON, nullable=True)


class AutomationSettingsRow(Base):
    """Per-organization automation switch and notification recipients"""

    __tablename__ = "automation_settings"

    organization_id = Column(String(36), primary_key=True)
    organization_name = Column(Text, nullable=False)
    enabled = Column(Boolean, nullable=False, default=False)
    admin_emails = Column(JSON, nullable=False, default=list)
    timezone = Column(Text, nullable=False, default="Australia/Sydney")
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())


class AutomationLogRow(Base):
    """One organization's outcome for one automation run"""

    __tablename__ = "automation_logs"

    id = Column(String(36), primary_key=True, default=_uuid)
    run_id = Column(String(32), nullable=False, index=True)
    organization_id = Column(String(36), nullable=False, index=True)
    run_date = Column(DateTime(timezone=True), nullable=False)
    status = Column(Text, nullable=False)  # success | partial | failed
    contracts_processed = Column(Integer, nullable=False, default=0)
    contracts_successful = Column(Integer, nullable=False, default=0)
    contracts_failed = Column(Integer, nullable=False, default=0)
    contracts_skipped = Column(Integer, nullable=False, default=0)
    execution_time_ms = Column(Float, nullable=False, default=0)
    errors = Column(JSON, nullable=True)
    summary = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class TransactionIdCounterRow(Base):
    """Last allocated sequential id position per organization (row-locked on allocation)"""

    __tablename__ = "transaction_id_counters"

    organization_id = Column(String(36), primary_key=True)
    letter = Column(String(1), nullable=False)
    number = Column(Integer, nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
