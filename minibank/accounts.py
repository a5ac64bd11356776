"""
Account Management Module

Manages the account lifecycle (creation, owner updates, blocking, deletion)
and the account-level queries. Balances are stored here but changed only by
the ledger core through ``save_balance``.
"""

from decimal import Decimal
from datetime import date, datetime, timezone
from dataclasses import dataclass
from typing import Dict, List, Optional
from enum import Enum
import uuid

from .audit import AuditTrail, AuditEventType
from .currency import AmountLike, Currency, ZERO, to_amount
from .exceptions import AccountHasTransactionsError, AccountNotFoundError
from .journal import TransactionJournal
from .logging_config import get_logger, log_action
from .storage import StorageInterface, StorageRecord


class AccountType(Enum):
    """Banking product types"""
    CHECKING = "CHECKING"
    SAVINGS = "SAVINGS"


class AccountStatus(Enum):
    """Account states"""
    ACTIVE = "ACTIVE"
    BLOCKED = "BLOCKED"


DEFAULT_SAVINGS_RATE = Decimal('0.02')


@dataclass
class Account(StorageRecord):
    """
    Bank account. ``balance`` always carries two decimal places and is never
    negative once an operation completes.
    """
    account_number: str
    owner: str
    currency: str
    account_type: AccountType
    balance: Decimal = ZERO
    status: AccountStatus = AccountStatus.ACTIVE
    interest_rate: Decimal = ZERO

    def __post_init__(self):
        self.balance = to_amount(self.balance)
        if self.balance < ZERO:
            raise ValueError("Account balance cannot be negative")

    @property
    def is_blocked(self) -> bool:
        return self.status == AccountStatus.BLOCKED

    @property
    def created_on(self) -> date:
        """Creation date (UTC)"""
        return self.created_at.astimezone(timezone.utc).date()

    @classmethod
    def from_dict(cls, data: Dict) -> 'Account':
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            account_number=data['account_number'],
            owner=data['owner'],
            currency=data['currency'],
            account_type=AccountType(data['account_type']),
            balance=Decimal(data['balance']),
            status=AccountStatus(data['status']),
            interest_rate=Decimal(data['interest_rate'])
        )


class AccountManager:
    """
    Manages account lifecycle and account queries
    """

    def __init__(
        self,
        storage: StorageInterface,
        journal: TransactionJournal,
        audit_trail: Optional[AuditTrail] = None,
        savings_interest_rate: Decimal = DEFAULT_SAVINGS_RATE
    ):
        self.storage = storage
        self.journal = journal
        self.audit_trail = audit_trail
        self.savings_interest_rate = Decimal(savings_interest_rate)
        self.table_name = "accounts"
        self.logger = get_logger("minibank.accounts")

        self.storage.create_index(self.table_name, ["account_number"], unique=True)

    def _audit(self, event_type: AuditEventType, account: Account, **details) -> None:
        # Called inside the caller's atomic block so the event commits with the change
        if self.audit_trail:
            self.audit_trail.record(event_type, account.id, **details)

    def create_account(self, owner: str, currency: str, account_type: AccountType) -> Account:
        """
        Create a new account with a zero balance

        Args:
            owner: Free-text account owner
            currency: ISO currency code (must be supported)
            account_type: CHECKING or SAVINGS

        Returns:
            Created Account object

        Raises:
            ValueError: If the owner is blank or the currency is unsupported
        """
        if not owner or not owner.strip():
            raise ValueError("Owner cannot be blank")
        currency_code = Currency.from_code(currency).code

        with self.storage.atomic():
            now = datetime.now(timezone.utc)
            account = Account(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                account_number=self._generate_account_number(),
                owner=owner.strip(),
                currency=currency_code,
                account_type=account_type,
                interest_rate=self.savings_interest_rate if account_type == AccountType.SAVINGS else ZERO
            )
            self._save_account(account)

            self._audit(
                AuditEventType.ACCOUNT_CREATED, account,
                account_number=account.account_number,
                owner=account.owner,
                currency=account.currency,
                account_type=account.account_type
            )

        log_action(
            self.logger, "info", "Account created",
            action="create_account", resource=f"account:{account.id}",
            extra={"account_number": account.account_number, "currency": account.currency}
        )

        return account

    def get_account(self, account_id: str) -> Optional[Account]:
        """Get account by ID"""
        account_dict = self.storage.load(self.table_name, account_id)
        if account_dict:
            return Account.from_dict(account_dict)
        return None

    def get_account_or_raise(self, account_id: str) -> Account:
        """Get account by ID or raise AccountNotFoundError"""
        account = self.get_account(account_id)
        if not account:
            raise AccountNotFoundError(f"Account not found with id {account_id}")
        return account

    def list_accounts(self) -> List[Account]:
        """All accounts, oldest first"""
        return [Account.from_dict(data) for data in self.storage.load_all(self.table_name)]

    def update_owner(self, account_id: str, owner: str) -> Account:
        """Replace the account owner"""
        if not owner or not owner.strip():
            raise ValueError("Owner cannot be blank")

        # The whole document is rewritten, so the read must not race a balance change
        with self.storage.atomic():
            account = self.get_account_or_raise(account_id)
            old_owner = account.owner
            account.owner = owner.strip()
            account.updated_at = datetime.now(timezone.utc)
            self._save_account(account)

            self._audit(AuditEventType.ACCOUNT_UPDATED, account, old_owner=old_owner, new_owner=account.owner)

        return account

    def block_account(self, account_id: str, reason: str = "") -> Account:
        """Mark an account BLOCKED"""
        return self._set_status(account_id, AccountStatus.BLOCKED, reason)

    def unblock_account(self, account_id: str, reason: str = "") -> Account:
        """Return an account to ACTIVE"""
        return self._set_status(account_id, AccountStatus.ACTIVE, reason)

    def _set_status(self, account_id: str, new_status: AccountStatus, reason: str) -> Account:
        with self.storage.atomic():
            account = self.get_account_or_raise(account_id)
            old_status = account.status
            account.status = new_status
            account.updated_at = datetime.now(timezone.utc)
            self._save_account(account)

            if new_status == AccountStatus.BLOCKED:
                event_type = AuditEventType.ACCOUNT_BLOCKED
            else:
                event_type = AuditEventType.ACCOUNT_UNBLOCKED
            self._audit(event_type, account, old_status=old_status, new_status=new_status, reason=reason)

        log_action(
            self.logger, "info", f"Account status set to {new_status.value}",
            action="set_account_status", resource=f"account:{account.id}",
            extra={"old_status": old_status.value, "reason": reason}
        )
        return account

    def delete_account(self, account_id: str) -> Account:
        """
        Delete an account that has no journal history.

        Raises:
            AccountNotFoundError: If the account does not exist
            AccountHasTransactionsError: If journal rows still reference it
        """
        with self.storage.atomic():
            account = self.get_account_or_raise(account_id)
            if self.journal.has_transactions(account_id):
                raise AccountHasTransactionsError(
                    f"Account {account_id} has recorded transactions and cannot be deleted"
                )
            self.storage.delete(self.table_name, account_id)

            self._audit(
                AuditEventType.ACCOUNT_DELETED, account,
                account_number=account.account_number,
                balance=account.balance
            )

        log_action(
            self.logger, "info", f"Account with id {account_id} has been deleted",
            action="delete_account", resource=f"account:{account_id}"
        )
        return account

    def save_balance(self, account: Account) -> None:
        """Persist a balance change made by the ledger core"""
        account.updated_at = datetime.now(timezone.utc)
        self._save_account(account)

    # ------------------------------------------------------------------
    # Account queries
    # ------------------------------------------------------------------

    def find_by_owner(self, owner: str) -> List[Account]:
        accounts = [Account.from_dict(data) for data in self.storage.find(self.table_name, {"owner": owner})]
        if not accounts:
            raise AccountNotFoundError(f"No accounts for owner: {owner}")
        return accounts

    def find_by_number(self, account_number: str) -> Optional[Account]:
        accounts = self.storage.find(self.table_name, {"account_number": account_number})
        if accounts:
            return Account.from_dict(accounts[0])
        return None

    def highest_balance(self) -> Account:
        accounts = self.list_accounts()
        if not accounts:
            raise AccountNotFoundError("No accounts in database")
        return max(accounts, key=lambda a: a.balance)

    def balance_greater_than(self, amount: AmountLike) -> List[Account]:
        threshold = amount if isinstance(amount, Decimal) else Decimal(str(amount))
        accounts = [a for a in self.list_accounts() if a.balance > threshold]
        if not accounts:
            raise AccountNotFoundError(f"No accounts found with balance greater than {threshold}")
        return accounts

    def created_after(self, day: date) -> List[Account]:
        accounts = [a for a in self.list_accounts() if a.created_on > day]
        if not accounts:
            raise AccountNotFoundError(f"No accounts found after {day.isoformat()}")
        return accounts

    def created_before(self, day: date) -> List[Account]:
        accounts = [a for a in self.list_accounts() if a.created_on < day]
        if not accounts:
            raise AccountNotFoundError(f"No accounts found before {day.isoformat()}")
        return accounts

    def oldest(self) -> Account:
        accounts = self.list_accounts()
        if not accounts:
            raise AccountNotFoundError("No accounts found")
        return min(accounts, key=lambda a: a.created_at)

    def count_by_currency(self, currency: str) -> int:
        return len(self.storage.find(self.table_name, {"currency": currency.strip().upper()}))

    def top_by_status(self, status: AccountStatus) -> Account:
        """Account with the highest balance among those in ``status``"""
        accounts = [Account.from_dict(data) for data in self.storage.find(self.table_name, {"status": status.value})]
        if not accounts:
            raise AccountNotFoundError(f"No account found with status {status.value}")
        return max(accounts, key=lambda a: a.balance)

    def highest_balance_in(self, currency: str) -> Account:
        code = currency.strip().upper()
        accounts = [Account.from_dict(data) for data in self.storage.find(self.table_name, {"currency": code})]
        if not accounts:
            raise AccountNotFoundError(f"No account found in currency {code}")
        return max(accounts, key=lambda a: a.balance)

    def top_by_balance(self, limit: int = 3) -> List[Account]:
        accounts = sorted(self.list_accounts(), key=lambda a: a.balance, reverse=True)[:limit]
        if not accounts:
            raise AccountNotFoundError("No accounts found in database")
        return accounts

    def _generate_account_number(self) -> str:
        """Generate a unique account number such as ACC-1A2B3C4D"""
        while True:
            number = f"ACC-{uuid.uuid4().hex[:8].upper()}"
            if not self.find_by_number(number):
                return number

    def _save_account(self, account: Account) -> None:
        self.storage.save(self.table_name, account.id, account.to_dict())
