"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional

from sda_billing.domain.exceptions import InvalidFrequencyError

AUTOMATION_ACTOR = "automation-system"


class Frequency(str, Enum):
    """Drawdown cadence of an automated contract"""

    DAILY = "daily"
    WEEKLY = "weekly"
    FORTNIGHTLY = "fortnightly"

    @property
    def interval_days(self) -> int:
        return _INTERVAL_DAYS[self]

    @classmethod
    def is_valid(cls, value: object) -> bool:
        return value in cls._value2member_map_

    @classmethod
    def parse(cls, value: object) -> "Frequency":
        """Strict conversion; a missing or unknown frequency is never defaulted."""
        if isinstance(value, cls):
            return value
        if not value:
            raise InvalidFrequencyError("Automation frequency is not set")
        if not cls.is_valid(value):
            raise InvalidFrequencyError(f"Invalid automation frequency: '{value}'")
        return cls(value)


_INTERVAL_DAYS = {
    Frequency.DAILY: 1,
    Frequency.WEEKLY: 7,
    Frequency.FORTNIGHTLY: 14,
}


class ContractStatus(str, Enum):
    """Funding contract lifecycle"""

    DRAFT = "Draft"
    ACTIVE = "Active"
    EXPIRED = "Expired"
    CANCELLED = "Cancelled"
    RENEWED = "Renewed"

    @classmethod
    def parse(cls, value: str) -> "ContractStatus":
        """Case-insensitive lookup ("active" and "Active" are the same status)"""
        for status in cls:
            if status.value.lower() == str(value).strip().lower():
                return status
        raise ValueError(f"Unknown contract status: '{value}'")


@dataclass
class House:
    """SDA property a resident lives in"""

    id: str
    descriptor: str = ""
    address1: str = ""
    suburb: str = ""
    state: str = ""
    postcode: str = ""

    @property
    def display_name(self) -> str:
        return self.descriptor or f"{self.address1}, {self.suburb}"


@dataclass
class Resident:
    """NDIS participant living in an SDA property"""

    id: str
    first_name: str
    last_name: str
    status: Optional[str]
    house_id: Optional[str] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


@dataclass
class FundingContract:
    """Funding contract snapshot, joined with its resident and house"""

    id: str
    organization_id: str
    resident: Resident
    contract_type: str
    original_amount: Decimal
    current_balance: Decimal
    start_date: date
    end_date: Optional[date]
    contract_status: ContractStatus
    auto_billing_enabled: bool = False
    automated_drawdown_frequency: Optional[str] = None  # raw stored value, see `frequency`
    first_run_date: Optional[date] = None
    next_run_date: Optional[date] = None
    daily_support_item_cost: Optional[Decimal] = None
    renewal_date: Optional[date] = None
    last_drawdown_date: Optional[datetime] = None
    house: Optional[House] = None

    @property
    def resident_id(self) -> str:
        return self.resident.id

    @property
    def frequency(self) -> Frequency:
        """Validated drawdown frequency; raises InvalidFrequencyError"""
        return Frequency.parse(self.automated_drawdown_frequency)


@dataclass
class EligibilityChecks:
    """The five independent automation checks"""

    status_check: bool
    automation_check: bool
    balance_check: bool
    date_check: bool
    next_run_check: bool

    @property
    def all_passed(self) -> bool:
        return all(
            (self.status_check, self.automation_check, self.balance_check, self.date_check, self.next_run_check)
        )


@dataclass
class EligibilityResult:
    """Output of an eligibility evaluation (never persisted)"""

    contract_id: str
    is_eligible: bool
    reasons: List[str]
    checks: EligibilityChecks
    contract: Optional[FundingContract] = None


@dataclass
class RateCalculation:
    """Rates derived from contract amount and duration"""

    daily_rate: Decimal
    weekly_rate: Decimal
    fortnightly_rate: Decimal
    total_days: int
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    calculation_method: str = "automatic"


@dataclass
class DraftTransaction:
    """Billing record created by automation; always draft until posted by a person"""

    id: str
    organization_id: str
    contract_id: str
    resident_id: str
    amount: Decimal
    occurred_at: datetime
    description: str
    created_by: str = AUTOMATION_ACTOR
    automation_run_id: Optional[str] = None
    frequency: Optional[str] = None
    note: Optional[str] = None
    quantity: int = 1
    unit_price: Optional[Decimal] = None
    status: str = "draft"
    drawdown_status: str = "pending"
    is_drawdown_transaction: bool = True

    def __post_init__(self) -> None:
        if self.unit_price is None:
            self.unit_price = self.amount


@dataclass
class AuditEntry:
    """Append-only record of a field change"""

    resident_id: str
    action: str
    field: str
    old_value: str
    new_value: str
    timestamp: datetime
    run_id: Optional[str] = None
    details: Dict[str, object] = field(default_factory=dict)


@dataclass
class TransactionError:
    """Per-contract failure recorded in a generation result"""

    contract_id: str
    resident_id: str
    error: str
    kind: str
    details: Dict[str, object] = field(default_factory=dict)


@dataclass
class GenerationSummary:
    """Totals across the transactions created in one run"""

    total_amount: Decimal = Decimal("0")
    average_amount: Decimal = Decimal("0")
    frequency_breakdown: Dict[str, int] = field(default_factory=dict)


@dataclass
class GenerationResult:
    """Outcome of one automation run for an organization"""

    success: bool
    run_id: str
    processed_contracts: int = 0
    successful_transactions: int = 0
    failed_transactions: int = 0
    skipped_contracts: int = 0
    transactions: List[DraftTransaction] = field(default_factory=list)
    errors: List[TransactionError] = field(default_factory=list)
    summary: GenerationSummary = field(default_factory=GenerationSummary)


@dataclass
class PreviewTransaction:
    """What a run would bill for one contract"""

    contract_id: str
    resident_id: str
    resident_name: str
    amount: Decimal
    frequency: str
    current_balance: Decimal
    new_balance: Decimal
    next_run_date: date
    has_sufficient_balance: bool


@dataclass
class GenerationPreview:
    """Side-effect free dry run of the generator"""

    success: bool
    eligible_contracts: int
    transactions: List[PreviewTransaction] = field(default_factory=list)
    total_amount: Decimal = Decimal("0")
    error: Optional[str] = None


@dataclass
class UpcomingRun:
    """A projected run of a contract inside a preview window"""

    scheduled_run_date: date
    contract_id: str
    resident_id: str
    resident_name: str
    house_name: Optional[str]
    contract_type: str
    frequency: str
    transaction_amount: Decimal
    current_balance: Decimal
    balance_after_transaction: Decimal
    next_run_date_after: date
    has_sufficient_balance: bool


@dataclass
class CatchupRequest:
    """Inputs for backfilling missed billing dates of one contract"""

    contract_id: str
    resident_id: str
    organization_id: str
    next_run_date: date
    frequency: Frequency
    amount: Decimal
    current_balance: Decimal
    start_date: date
    created_by: str = AUTOMATION_ACTOR


@dataclass
class CatchupTransaction:
    """Draft created for one historical billing date"""

    id: str
    date: date
    amount: Decimal


@dataclass
class CatchupResult:
    """Outcome of a catch-up generation"""

    success: bool
    transactions_created: int = 0
    transactions: List[CatchupTransaction] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class CatchupValidation:
    """Pre-check result for a catch-up request"""

    valid: bool
    count: int = 0
    error: Optional[str] = None
    warning: Optional[str] = None


@dataclass
class AutomationSettings:
    """Per-organization automation configuration owned by the scheduler"""

    organization_id: str
    organization_name: str
    enabled: bool
    admin_emails: List[str] = field(default_factory=list)
    timezone: str = "Australia/Sydney"
