"""Tests for the exception hierarchy."""

import pytest

from minibank.exceptions import (
    AccountBlockedError,
    AccountHasTransactionsError,
    AccountNotFoundError,
    DomainError,
    InsufficientFundsError,
    InvalidAmountError,
    InvalidRangeError,
    LockTimeoutError,
    MinibankError,
    NoTransactionsError,
    SameAccountTransferError,
    StorageError,
)


DOMAIN_ERRORS = [
    AccountNotFoundError,
    InvalidAmountError,
    InsufficientFundsError,
    SameAccountTransferError,
    NoTransactionsError,
    InvalidRangeError,
    AccountBlockedError,
    AccountHasTransactionsError,
]


class TestExceptionHierarchy:
    @pytest.mark.parametrize("error_type", DOMAIN_ERRORS)
    def test_domain_errors(self, error_type):
        assert issubclass(error_type, DomainError)
        assert issubclass(error_type, MinibankError)
        assert not issubclass(error_type, StorageError)

    def test_lock_timeout_is_infrastructure(self):
        assert issubclass(LockTimeoutError, StorageError)
        assert not issubclass(LockTimeoutError, DomainError)

    def test_base_is_exception(self):
        assert issubclass(MinibankError, Exception)

    def test_message_is_kept(self):
        with pytest.raises(DomainError, match="Insufficient funds"):
            raise InsufficientFundsError("Insufficient funds in account a1")
