"""
Test suite for the ledger core

Validates balance mutation, transfer atomicity, rollback on failure and
behaviour under concurrent use.
CRITICAL: money is never created or destroyed and balances never go negative.
"""

import pytest
import threading
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

from minibank.accounts import AccountManager, AccountStatus, AccountType
from minibank.audit import AuditEventType, AuditTrail
from minibank.exceptions import (
    AccountBlockedError,
    AccountNotFoundError,
    InsufficientFundsError,
    InvalidAmountError,
    LockTimeoutError,
    SameAccountTransferError,
)
from minibank.journal import TransactionJournal, TransactionType
from minibank.ledger import AccountLocks, LedgerCore
from minibank.storage import InMemoryStorage, SQLiteStorage


class InjectedFailure(Exception):
    pass


class LedgerBehaviour:
    """Ledger checks shared by every storage backend"""

    def make_storage(self):
        raise NotImplementedError

    def setup_method(self):
        self.storage = self.make_storage()
        self.journal = TransactionJournal(self.storage)
        self.accounts = AccountManager(self.storage, self.journal)
        self.ledger = LedgerCore(self.storage, self.accounts, self.journal)

        self.alice = self.accounts.create_account("Alice", "USD", AccountType.CHECKING).id
        self.bob = self.accounts.create_account("Bob", "USD", AccountType.CHECKING).id

    def teardown_method(self):
        self.storage.close()

    def balance(self, account_id):
        return self.accounts.get_account(account_id).balance

    # Deposits

    def test_deposit(self):
        account = self.ledger.deposit(self.alice, Decimal("100.50"))

        assert account.balance == Decimal("100.50")
        assert self.balance(self.alice) == Decimal("100.50")
        rows = self.journal.list_for_account(self.alice)
        assert [(t.type, t.amount) for t in rows] == [(TransactionType.DEPOSIT, Decimal("100.50"))]

    def test_deposit_rejects_sub_cent_amount(self):
        with pytest.raises(InvalidAmountError, match="decimal places"):
            self.ledger.deposit(self.alice, "0.005")
        assert self.balance(self.alice) == Decimal("0.00")
        assert not self.journal.has_transactions(self.alice)

    def test_deposit_accepts_exponent_notation(self):
        assert self.ledger.deposit(self.alice, "2e2").balance == Decimal("200.00")

    def test_deposit_rejects_trailing_garbage(self):
        with pytest.raises(InvalidAmountError):
            self.ledger.deposit(self.alice, "12abc")
        assert self.balance(self.alice) == Decimal("0.00")

    def test_deposit_accepts_float_without_binary_noise(self):
        self.ledger.deposit(self.alice, 0.1)
        self.ledger.deposit(self.alice, 0.2)
        assert self.balance(self.alice) == Decimal("0.30")

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5"), "0.004", "abc"])
    def test_deposit_rejects_non_positive_amounts(self, amount):
        with pytest.raises(InvalidAmountError):
            self.ledger.deposit(self.alice, amount)
        assert self.balance(self.alice) == Decimal("0.00")
        assert not self.journal.has_transactions(self.alice)

    def test_deposit_to_missing_account(self):
        with pytest.raises(AccountNotFoundError):
            self.ledger.deposit("missing", Decimal("10"))

    # Withdrawals

    def test_withdraw(self):
        self.ledger.deposit(self.alice, Decimal("100"))
        account = self.ledger.withdraw(self.alice, Decimal("40"))

        assert account.balance == Decimal("60.00")
        assert self.journal.list_for_account(self.alice)[0].type == TransactionType.WITHDRAW

    def test_withdraw_entire_balance(self):
        self.ledger.deposit(self.alice, Decimal("25"))
        assert self.ledger.withdraw(self.alice, Decimal("25")).balance == Decimal("0.00")

    def test_withdraw_one_cent_too_much(self):
        self.ledger.deposit(self.alice, Decimal("100"))

        with pytest.raises(InsufficientFundsError):
            self.ledger.withdraw(self.alice, Decimal("100.01"))

        assert self.balance(self.alice) == Decimal("100.00")
        assert self.journal.count(self.alice) == 1

    def test_withdraw_invalid_amount(self):
        with pytest.raises(InvalidAmountError):
            self.ledger.withdraw(self.alice, Decimal("-1"))

    def test_withdraw_rejects_sub_cent_amount(self):
        self.ledger.deposit(self.alice, Decimal("1"))

        with pytest.raises(InvalidAmountError):
            self.ledger.withdraw(self.alice, Decimal("0.999"))
        assert self.balance(self.alice) == Decimal("1.00")

    def test_withdraw_from_missing_account(self):
        with pytest.raises(AccountNotFoundError):
            self.ledger.withdraw("missing", Decimal("1"))

    # Transfers

    def test_transfer(self):
        self.ledger.deposit(self.alice, Decimal("1000"))
        sender, receiver = self.ledger.transfer(self.alice, self.bob, Decimal("400"))

        assert sender.balance == Decimal("600.00")
        assert receiver.balance == Decimal("400.00")
        assert self.balance(self.alice) + self.balance(self.bob) == Decimal("1000.00")

        out_rows = self.journal.list_by_type(self.alice, TransactionType.TRANSFER_OUT)
        in_rows = self.journal.list_by_type(self.bob, TransactionType.TRANSFER_IN)
        assert [t.amount for t in out_rows] == [Decimal("400.00")]
        assert [t.amount for t in in_rows] == [Decimal("400.00")]

    def test_transfer_insufficient_funds_changes_nothing(self):
        self.ledger.deposit(self.alice, Decimal("100"))

        with pytest.raises(InsufficientFundsError):
            self.ledger.transfer(self.alice, self.bob, Decimal("500"))

        assert self.balance(self.alice) == Decimal("100.00")
        assert self.balance(self.bob) == Decimal("0.00")
        assert self.journal.count(self.alice) == 1
        assert not self.journal.has_transactions(self.bob)

    def test_transfer_to_same_account(self):
        self.ledger.deposit(self.alice, Decimal("100"))

        with pytest.raises(SameAccountTransferError):
            self.ledger.transfer(self.alice, self.alice, Decimal("10"))

        assert self.balance(self.alice) == Decimal("100.00")
        assert self.journal.count(self.alice) == 1

    def test_same_account_checked_before_lookup(self):
        with pytest.raises(SameAccountTransferError):
            self.ledger.transfer("missing", "missing", Decimal("10"))

    def test_amount_checked_before_lookup(self):
        with pytest.raises(InvalidAmountError):
            self.ledger.transfer("missing", self.bob, Decimal("0"))

    def test_transfer_rejects_sub_cent_amount(self):
        self.ledger.deposit(self.alice, Decimal("10"))

        with pytest.raises(InvalidAmountError):
            self.ledger.transfer(self.alice, self.bob, "0.015")
        assert self.balance(self.alice) == Decimal("10.00")
        assert self.balance(self.bob) == Decimal("0.00")

    def test_transfer_to_missing_account(self):
        self.ledger.deposit(self.alice, Decimal("100"))

        with pytest.raises(AccountNotFoundError):
            self.ledger.transfer(self.alice, "missing", Decimal("10"))

        assert self.balance(self.alice) == Decimal("100.00")

    def test_transfer_between_currencies_moves_face_value(self):
        euro = self.accounts.create_account("Erin", "EUR", AccountType.CHECKING).id
        self.ledger.deposit(self.alice, Decimal("50"))
        self.ledger.transfer(self.alice, euro, Decimal("20"))

        assert self.balance(euro) == Decimal("20.00")

    def test_last_two_entries_after_four_operations(self):
        self.ledger.deposit(self.alice, Decimal("100"))
        self.ledger.withdraw(self.alice, Decimal("10"))
        self.ledger.deposit(self.alice, Decimal("5"))
        self.ledger.transfer(self.alice, self.bob, Decimal("7"))

        last = self.journal.last_n(self.alice, 2)
        assert [t.type for t in last] == [TransactionType.TRANSFER_OUT, TransactionType.DEPOSIT]

    # Rollback

    def test_journal_failure_rolls_back_deposit(self, monkeypatch):
        def fail(*args, **kwargs):
            raise InjectedFailure()

        monkeypatch.setattr(self.journal, "record_deposit", fail)

        with pytest.raises(InjectedFailure):
            self.ledger.deposit(self.alice, Decimal("100"))

        assert self.balance(self.alice) == Decimal("0.00")

    def test_failure_on_second_leg_rolls_back_transfer(self, monkeypatch):
        self.ledger.deposit(self.alice, Decimal("100"))
        original_append = self.journal._append

        def append(account_id, transaction_type, amount):
            if transaction_type == TransactionType.TRANSFER_IN:
                raise InjectedFailure()
            return original_append(account_id, transaction_type, amount)

        monkeypatch.setattr(self.journal, "_append", append)

        with pytest.raises(InjectedFailure):
            self.ledger.transfer(self.alice, self.bob, Decimal("30"))

        assert self.balance(self.alice) == Decimal("100.00")
        assert self.balance(self.bob) == Decimal("0.00")
        assert self.journal.count(self.alice) == 1
        assert not self.journal.has_transactions(self.bob)
        assert not self.storage.in_transaction

    # Status policy

    def test_blocked_account_allowed_by_default(self):
        self.accounts.block_account(self.alice)
        assert self.ledger.deposit(self.alice, Decimal("10")).balance == Decimal("10.00")

    def test_blocked_account_rejected_when_enforced(self):
        ledger = LedgerCore(self.storage, self.accounts, self.journal, enforce_account_status=True)
        ledger.deposit(self.alice, Decimal("50"))
        self.accounts.block_account(self.bob)

        with pytest.raises(AccountBlockedError):
            ledger.transfer(self.alice, self.bob, Decimal("10"))
        with pytest.raises(AccountBlockedError):
            ledger.deposit(self.bob, Decimal("10"))

        assert self.balance(self.alice) == Decimal("50.00")

    # Concurrency

    def test_concurrent_transfers_on_disjoint_pairs(self):
        pairs = []
        for i in range(4):
            sender = self.accounts.create_account(f"S{i}", "USD", AccountType.CHECKING).id
            receiver = self.accounts.create_account(f"R{i}", "USD", AccountType.CHECKING).id
            self.ledger.deposit(sender, Decimal("100"))
            pairs.append((sender, receiver))

        jobs = [pair for pair in pairs for _ in range(10)]
        with ThreadPoolExecutor(max_workers=8) as executor:
            list(executor.map(lambda p: self.ledger.transfer(p[0], p[1], Decimal("1.50")), jobs))

        for sender, receiver in pairs:
            assert self.balance(sender) == Decimal("85.00")
            assert self.balance(receiver) == Decimal("15.00")
            assert self.journal.count(receiver) == 10

    def test_concurrent_transfers_never_overdraw(self):
        self.ledger.deposit(self.alice, Decimal("100"))
        results = []
        results_lock = threading.Lock()

        def attempt(_):
            try:
                self.ledger.transfer(self.alice, self.bob, Decimal("10"))
                outcome = "ok"
            except InsufficientFundsError:
                outcome = "rejected"
            with results_lock:
                results.append(outcome)

        with ThreadPoolExecutor(max_workers=8) as executor:
            list(executor.map(attempt, range(25)))

        assert results.count("ok") == 10
        assert results.count("rejected") == 15
        assert self.balance(self.alice) == Decimal("0.00")
        assert self.balance(self.bob) == Decimal("100.00")

    def test_opposite_direction_transfers_do_not_deadlock(self):
        self.ledger.deposit(self.alice, Decimal("500"))
        self.ledger.deposit(self.bob, Decimal("500"))

        def move(i):
            if i % 2:
                self.ledger.transfer(self.alice, self.bob, Decimal("1"))
            else:
                self.ledger.transfer(self.bob, self.alice, Decimal("1"))

        with ThreadPoolExecutor(max_workers=8) as executor:
            list(executor.map(move, range(40)))

        assert self.balance(self.alice) == Decimal("500.00")
        assert self.balance(self.bob) == Decimal("500.00")


class TestLedgerInMemory(LedgerBehaviour):
    def make_storage(self):
        return InMemoryStorage()


class TestLedgerSQLite(LedgerBehaviour):
    def make_storage(self):
        return SQLiteStorage(":memory:")


class PauseAfterAccountLoad:
    """
    Storage mixin that runs a callback once, right after the next account
    row is read and before the caller writes it back.
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.after_account_load = None

    def load(self, table, record_id):
        data = super().load(table, record_id)
        if table == "accounts" and self.after_account_load:
            callback, self.after_account_load = self.after_account_load, None
            callback()
        return data


class PausingMemoryStorage(PauseAfterAccountLoad, InMemoryStorage):
    pass


class PausingSQLiteStorage(PauseAfterAccountLoad, SQLiteStorage):
    pass


class AdminChangeDuringDeposit:
    """An owner or status change must not overwrite a concurrent deposit"""

    def make_storage(self):
        raise NotImplementedError

    def setup_method(self):
        self.storage = self.make_storage()
        self.journal = TransactionJournal(self.storage)
        self.audit = AuditTrail(self.storage)
        self.accounts = AccountManager(self.storage, self.journal, self.audit)
        self.ledger = LedgerCore(self.storage, self.accounts, self.journal, lock_timeout=5)
        self.alice = self.accounts.create_account("Alice", "USD", AccountType.CHECKING).id
        self.deposit_thread = None

    def teardown_method(self):
        self.storage.close()

    def deposit_while_loaded(self):
        """Start a deposit once the admin path has read the account"""
        finished = threading.Event()

        def deposit():
            self.ledger.deposit(self.alice, Decimal("100"))
            finished.set()

        def start_deposit():
            self.deposit_thread = threading.Thread(target=deposit)
            self.deposit_thread.start()
            # Give the deposit every chance to slip in before the write
            finished.wait(0.3)

        self.storage.after_account_load = start_deposit

    def test_update_owner_keeps_concurrent_deposit(self):
        self.deposit_while_loaded()
        self.accounts.update_owner(self.alice, "Alice Smith")
        self.deposit_thread.join(5)

        account = self.accounts.get_account(self.alice)
        assert account.balance == Decimal("100.00")
        assert account.owner == "Alice Smith"
        assert self.journal.count(self.alice) == 1

    def test_block_account_keeps_concurrent_deposit(self):
        self.deposit_while_loaded()
        self.accounts.block_account(self.alice, "review")
        self.deposit_thread.join(5)

        account = self.accounts.get_account(self.alice)
        assert account.balance == Decimal("100.00")
        assert account.status == AccountStatus.BLOCKED
        assert [e.event_type for e in self.audit.history(self.alice)] == [
            AuditEventType.ACCOUNT_CREATED, AuditEventType.ACCOUNT_BLOCKED
        ]


class TestAdminChangeDuringDepositInMemory(AdminChangeDuringDeposit):
    def make_storage(self):
        return PausingMemoryStorage()


class TestAdminChangeDuringDepositSQLite(AdminChangeDuringDeposit):
    def make_storage(self):
        return PausingSQLiteStorage(":memory:")


class TestAccountLocks:
    """Ordered per-account locking"""

    def test_hold_releases_locks(self):
        locks = AccountLocks(timeout=0.1)
        with locks.hold(["b", "a"]):
            pass
        with locks.hold(["a", "b"]):
            pass

    def test_timeout_raises(self):
        locks = AccountLocks(timeout=0.05)
        held = threading.Event()
        release = threading.Event()

        def holder():
            with locks.hold(["a"]):
                held.set()
                release.wait(2)

        thread = threading.Thread(target=holder)
        thread.start()
        held.wait(2)
        try:
            with pytest.raises(LockTimeoutError):
                with locks.hold(["a", "b"]):
                    pass
        finally:
            release.set()
            thread.join()

        # Nothing stays locked after the timeout
        with locks.hold(["a", "b"]):
            pass

    def test_duplicate_ids_are_locked_once(self):
        locks = AccountLocks(timeout=0.05)
        with locks.hold(["a", "a"]):
            pass
