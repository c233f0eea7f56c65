"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class InvalidFrequencyError(DomainException):
    """Drawdown frequency is missing or not one of daily/weekly/fortnightly"""

    pass


class ContractNotFoundError(DomainException):
    """No funding contract with the requested id"""

    pass


class PersistenceError(DomainException):
    """A store read or write failed"""

    pass


class DuplicateTransactionIdError(PersistenceError):
    """Allocated transaction id is already taken"""

    pass


class TransactionIdAllocationError(DomainException):
    """Could not allocate a sequential transaction id"""

    pass


class BillingError(DomainException):
    """A single contract could not be billed in this run.

    ``kind`` is a stable code so callers can tell the failure classes apart.
    """

    kind = "billing_error"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class InvalidTransactionAmountError(BillingError):
    """Computed drawdown amount is zero or negative"""

    kind = "invalid_amount"


class InsufficientBalanceError(BillingError):
    """Contract balance does not cover the drawdown amount"""

    kind = "insufficient_balance"


class DuplicateTransactionError(BillingError):
    """An automated transaction already exists for the resident today"""

    kind = "duplicate_prevented"


class ContractUpdateError(BillingError):
    """Draft was inserted but the contract could not be updated; draft removed"""

    kind = "persistence"
