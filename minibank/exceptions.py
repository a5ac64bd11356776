"""Exception hierarchy for minibank.

Domain errors describe expected, caller-recoverable conditions and are
never retried. Storage errors describe infrastructure failures and are
never translated into domain errors.
"""


class MinibankError(Exception):
    """Base exception for all minibank errors."""


class DomainError(MinibankError):
    """Raised for validation and state conditions the caller can act on."""


class AccountNotFoundError(DomainError):
    """Raised when an account id (or account query) resolves to nothing."""


class InvalidAmountError(DomainError):
    """Raised when an amount is zero or negative."""


class InsufficientFundsError(DomainError):
    """Raised when a debit would take a balance below zero."""


class SameAccountTransferError(DomainError):
    """Raised when a transfer names the same account on both sides."""


class NoTransactionsError(DomainError):
    """Raised when a journal query finds nothing for the account."""


class InvalidRangeError(DomainError):
    """Raised when a date range ends before it starts."""


class AccountBlockedError(DomainError):
    """Raised when a BLOCKED account is mutated while status enforcement is on."""


class AccountHasTransactionsError(DomainError):
    """Raised when deleting an account that still owns journal entries."""


class StorageError(MinibankError):
    """Raised when the storage layer cannot complete an operation."""


class LockTimeoutError(StorageError):
    """Raised when account locks cannot be acquired in time."""
