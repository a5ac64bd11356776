"""
Ledger Core Module

The only component allowed to change an account balance. Every successful
deposit, withdrawal or transfer mutates the balance(s) and appends the
matching journal rows inside a single atomic storage block: either all of
it commits or none of it does.

Accounts touched by an operation are locked in ascending id order before the
atomic block is opened, so two transfers over the same pair of accounts in
opposite directions cannot deadlock.
"""

import threading
from contextlib import contextmanager
from decimal import Decimal
from typing import Dict, Iterable, List, Tuple

from .accounts import Account, AccountManager
from .currency import AmountLike, ZERO, exact_amount, to_amount
from .exceptions import (
    AccountBlockedError,
    DomainError,
    InsufficientFundsError,
    InvalidAmountError,
    LockTimeoutError,
    SameAccountTransferError,
)
from .journal import TransactionJournal
from .logging_config import get_logger, log_action
from .storage import StorageInterface


class AccountLocks:
    """Per-account mutexes, always acquired in sorted id order"""

    def __init__(self, timeout: float = 30.0):
        self.timeout = timeout
        self._locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, account_id: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(account_id)
            if lock is None:
                lock = self._locks[account_id] = threading.Lock()
            return lock

    @contextmanager
    def hold(self, account_ids: Iterable[str]):
        """
        Hold the locks of every given account for the duration of the block.

        Raises:
            LockTimeoutError: If any lock is not acquired within the timeout
        """
        acquired: List[threading.Lock] = []
        try:
            for account_id in sorted(set(account_ids)):
                lock = self._lock_for(account_id)
                if not lock.acquire(timeout=self.timeout):
                    raise LockTimeoutError(
                        f"Timed out after {self.timeout}s waiting for account {account_id}"
                    )
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()


class LedgerCore:
    """
    Balance mutation and transfer atomicity
    """

    def __init__(
        self,
        storage: StorageInterface,
        account_manager: AccountManager,
        journal: TransactionJournal,
        enforce_account_status: bool = False,
        lock_timeout: float = 30.0
    ):
        self.storage = storage
        self.account_manager = account_manager
        self.journal = journal
        self.enforce_account_status = enforce_account_status
        self.locks = AccountLocks(timeout=lock_timeout)
        self.logger = get_logger("minibank.ledger")

    def deposit(self, account_id: str, amount: AmountLike) -> Account:
        """
        Credit an account and record a DEPOSIT row

        Raises:
            AccountNotFoundError: If the account does not exist
            InvalidAmountError: If amount is not positive or finer than a cent
        """
        try:
            with self.locks.hold([account_id]), self.storage.atomic():
                account = self.account_manager.get_account_or_raise(account_id)
                value = self._positive_amount(amount)
                self._check_status(account)

                account.balance = to_amount(account.balance + value)
                self.account_manager.save_balance(account)
                self.journal.record_deposit(account_id, value)
        except DomainError as e:
            self._log_rejected("deposit", f"account:{account_id}", e)
            raise

        log_action(
            self.logger, "info", "Deposit completed",
            action="deposit", resource=f"account:{account_id}",
            extra={"amount": str(value), "balance": str(account.balance)}
        )
        return account

    def withdraw(self, account_id: str, amount: AmountLike) -> Account:
        """
        Debit an account and record a WITHDRAW row

        Raises:
            AccountNotFoundError: If the account does not exist
            InvalidAmountError: If amount is not positive or finer than a cent
            InsufficientFundsError: If the balance is lower than amount
        """
        try:
            with self.locks.hold([account_id]), self.storage.atomic():
                account = self.account_manager.get_account_or_raise(account_id)
                value = self._positive_amount(amount)
                self._check_status(account)
                self._check_funds(account, value)

                account.balance = to_amount(account.balance - value)
                self.account_manager.save_balance(account)
                self.journal.record_withdraw(account_id, value)
        except DomainError as e:
            self._log_rejected("withdraw", f"account:{account_id}", e)
            raise

        log_action(
            self.logger, "info", "Withdrawal completed",
            action="withdraw", resource=f"account:{account_id}",
            extra={"amount": str(value), "balance": str(account.balance)}
        )
        return account

    def transfer(self, sender_id: str, receiver_id: str, amount: AmountLike) -> Tuple[Account, Account]:
        """
        Move money between two accounts.

        Both balance changes and both journal legs (TRANSFER_OUT for the
        sender, TRANSFER_IN for the receiver) commit together. Accounts in
        different currencies are moved at face value; there is no conversion.

        Args:
            sender_id: Account debited
            receiver_id: Account credited
            amount: Positive amount

        Returns:
            Tuple of (sender, receiver) after the transfer

        Raises:
            SameAccountTransferError: If sender and receiver are the same account
            InvalidAmountError: If amount is not positive or finer than a cent
            AccountNotFoundError: If either account does not exist
            InsufficientFundsError: If the sender balance is lower than amount
        """
        resource = f"transfer:{sender_id}->{receiver_id}"
        try:
            if sender_id == receiver_id:
                raise SameAccountTransferError("Cannot transfer money to the same account")
            value = self._positive_amount(amount)

            with self.locks.hold([sender_id, receiver_id]), self.storage.atomic():
                sender = self.account_manager.get_account_or_raise(sender_id)
                receiver = self.account_manager.get_account_or_raise(receiver_id)
                self._check_status(sender)
                self._check_status(receiver)
                self._check_funds(sender, value)

                sender.balance = to_amount(sender.balance - value)
                receiver.balance = to_amount(receiver.balance + value)
                self.account_manager.save_balance(sender)
                self.account_manager.save_balance(receiver)
                self.journal.record_transfer(sender_id, receiver_id, value)
        except DomainError as e:
            self._log_rejected("transfer", resource, e)
            raise

        log_action(
            self.logger, "info", "Transfer completed",
            action="transfer", resource=resource,
            extra={
                "amount": str(value),
                "sender_balance": str(sender.balance),
                "receiver_balance": str(receiver.balance)
            }
        )
        return sender, receiver

    def _positive_amount(self, amount: AmountLike) -> Decimal:
        try:
            value = exact_amount(amount)
        except ValueError as e:
            raise InvalidAmountError(str(e))
        if value <= ZERO:
            raise InvalidAmountError("Amount must be greater than 0")
        return value

    def _check_funds(self, account: Account, value: Decimal) -> None:
        if account.balance < value:
            raise InsufficientFundsError(
                f"Insufficient funds in account {account.id}: balance {account.balance}, requested {value}"
            )

    def _check_status(self, account: Account) -> None:
        if self.enforce_account_status and account.is_blocked:
            raise AccountBlockedError(f"Account {account.id} is blocked")

    def _log_rejected(self, action: str, resource: str, error: DomainError) -> None:
        log_action(
            self.logger, "warning", f"{action.capitalize()} rejected: {error}",
            action=action, resource=resource,
            extra={"error": type(error).__name__}
        )
