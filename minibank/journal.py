"""
Transaction Journal Module

Append-only record of every balance-changing event. Rows are written only as
a side effect of a ledger mutation and are never updated or deleted. The query
surface answers per-account questions over that history: full history,
filters by type, date range and amount, daily sums, counts and top-N.

Every query that finds nothing raises NoTransactionsError, so an empty
history is reported the same way everywhere. The one exception is last_n
with a non-positive limit, which is an empty request rather than an empty
history.
"""

from decimal import Decimal
from datetime import date, datetime, timezone
from dataclasses import dataclass
from typing import Callable, Dict, List, Tuple, Union
from enum import Enum
import threading
import uuid

from .currency import AmountLike, ZERO, to_amount
from .exceptions import InvalidRangeError, NoTransactionsError
from .logging_config import get_logger, log_action
from .storage import StorageInterface, StorageRecord


class TransactionType(Enum):
    """Kinds of journal entries"""
    DEPOSIT = "DEPOSIT"
    WITHDRAW = "WITHDRAW"
    TRANSFER_IN = "TRANSFER_IN"    # Inbound leg of a transfer
    TRANSFER_OUT = "TRANSFER_OUT"  # Outbound leg of a transfer


@dataclass
class Transaction(StorageRecord):
    """
    One immutable journal row. ``created_at`` is the server-clock timestamp
    of the event; ``sequence`` is the append order used to break ties.
    """
    account_id: str
    type: TransactionType
    amount: Decimal
    sequence: int

    def __post_init__(self):
        if self.amount <= ZERO:
            raise ValueError("Transaction amount must be positive")

    @property
    def timestamp(self) -> datetime:
        return self.created_at

    @classmethod
    def from_dict(cls, data: Dict) -> 'Transaction':
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            account_id=data['account_id'],
            type=TransactionType(data['type']),
            amount=Decimal(data['amount']),
            sequence=int(data['sequence'])
        )


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(moment: datetime) -> datetime:
    """Naive datetimes are taken to be UTC"""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def _newest_first(transactions: List[Transaction]) -> List[Transaction]:
    return sorted(transactions, key=lambda t: (t.created_at, t.sequence), reverse=True)


class TransactionJournal:
    """
    Append-only journal of balance-changing events with per-account queries
    """

    def __init__(
        self,
        storage: StorageInterface,
        clock: Callable[[], datetime] = _utc_now
    ):
        self.storage = storage
        self.table_name = "transactions"
        self.clock = clock
        self.logger = get_logger("minibank.journal")
        self._lock = threading.Lock()

        # Range and ordering queries go through these indexes
        self.storage.create_index(self.table_name, ["account_id", "created_at"])
        self.storage.create_index(self.table_name, ["account_id", "type"])

        self._sequence = max(
            (int(row.get('sequence', 0)) for row in self.storage.load_all(self.table_name)),
            default=0
        )

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def record_deposit(self, account_id: str, amount: AmountLike) -> Transaction:
        """Append a DEPOSIT row"""
        return self._append(account_id, TransactionType.DEPOSIT, amount)

    def record_withdraw(self, account_id: str, amount: AmountLike) -> Transaction:
        """Append a WITHDRAW row"""
        return self._append(account_id, TransactionType.WITHDRAW, amount)

    def record_transfer(
        self,
        sender_id: str,
        receiver_id: str,
        amount: AmountLike
    ) -> Tuple[Transaction, Transaction]:
        """Append both legs of a transfer; they commit together or not at all"""
        with self.storage.atomic():
            outbound = self._append(sender_id, TransactionType.TRANSFER_OUT, amount)
            inbound = self._append(receiver_id, TransactionType.TRANSFER_IN, amount)
        return outbound, inbound

    def _append(self, account_id: str, transaction_type: TransactionType, amount: AmountLike) -> Transaction:
        with self._lock:
            self._sequence += 1
            sequence = self._sequence

        now = _as_utc(self.clock())
        transaction = Transaction(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            account_id=account_id,
            type=transaction_type,
            amount=to_amount(amount),
            sequence=sequence
        )
        self.storage.save(self.table_name, transaction.id, transaction.to_dict())

        log_action(
            self.logger, "debug", f"Journal entry recorded: {transaction_type.value}",
            action="record_transaction", resource=f"transaction:{transaction.id}",
            extra={
                "account_id": account_id,
                "type": transaction_type.value,
                "amount": str(transaction.amount),
                "sequence": sequence
            }
        )
        return transaction

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _history(self, account_id: str, **filters) -> List[Transaction]:
        rows = self.storage.find(self.table_name, {"account_id": account_id, **filters})
        return _newest_first([Transaction.from_dict(row) for row in rows])

    def has_transactions(self, account_id: str) -> bool:
        return bool(self.storage.find(self.table_name, {"account_id": account_id}))

    def list_for_account(self, account_id: str) -> List[Transaction]:
        """All transactions for an account, newest first"""
        transactions = self._history(account_id)
        if not transactions:
            raise NoTransactionsError(f"No transactions for account id {account_id}")
        return transactions

    def list_by_type(self, account_id: str, transaction_type: TransactionType) -> List[Transaction]:
        """Transactions of exactly one type, newest first"""
        transactions = self._history(account_id, type=transaction_type.value)
        if not transactions:
            raise NoTransactionsError(
                f"No transactions of type {transaction_type.value} for account id {account_id}"
            )
        return transactions

    def list_between(self, account_id: str, start: datetime, end: datetime) -> List[Transaction]:
        """
        Transactions with ``start <= timestamp <= end``, newest first.

        Raises:
            InvalidRangeError: If end is before start
            NoTransactionsError: If the range holds nothing
        """
        start, end = _as_utc(start), _as_utc(end)
        if end < start:
            raise InvalidRangeError("'to' date cannot be before 'from' date")

        transactions = [t for t in self._history(account_id) if start <= t.created_at <= end]
        if not transactions:
            raise NoTransactionsError(
                f"No transactions for account id {account_id} between {start.isoformat()} and {end.isoformat()}"
            )
        return transactions

    def sum_for_day(self, account_id: str, day: Union[date, datetime]) -> Decimal:
        """
        Sum of amounts over the transactions dated on ``day`` (UTC calendar day).
        A datetime argument contributes only its date.
        """
        if isinstance(day, datetime):
            day = _as_utc(day).date()

        transactions = [t for t in self._history(account_id) if t.created_at.date() == day]
        if not transactions:
            raise NoTransactionsError(f"No transactions for account id {account_id} on date {day.isoformat()}")

        return to_amount(sum((t.amount for t in transactions), ZERO))

    def count(self, account_id: str) -> int:
        """Number of transactions recorded for the account"""
        transactions = self.storage.find(self.table_name, {"account_id": account_id})
        if not transactions:
            raise NoTransactionsError(f"No transactions for account id {account_id}")
        return len(transactions)

    def last_n(self, account_id: str, limit: int) -> List[Transaction]:
        """The ``limit`` most recent transactions, newest first"""
        if limit <= 0:
            return []
        return self.list_for_account(account_id)[:limit]

    def max_by_type(self, account_id: str, transaction_type: TransactionType) -> Transaction:
        """Largest transaction of the given type; the newest wins a tie"""
        # max() keeps the first maximum, and the list is newest first
        return max(self.list_by_type(account_id, transaction_type), key=lambda t: t.amount)

    def above(self, account_id: str, amount: AmountLike) -> List[Transaction]:
        """Transactions whose amount is strictly greater than ``amount``"""
        threshold = amount if isinstance(amount, Decimal) else Decimal(str(amount))
        transactions = [t for t in self._history(account_id) if t.amount > threshold]
        if not transactions:
            raise NoTransactionsError(f"No transactions above amount {threshold} for account id {account_id}")
        return transactions
