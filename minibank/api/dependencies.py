"""
Component wiring and FastAPI dependencies
"""

from decimal import Decimal
from typing import Optional

from ..accounts import AccountManager
from ..audit import AuditTrail
from ..config import MinibankConfig, get_config
from ..journal import TransactionJournal
from ..ledger import LedgerCore
from ..storage import StorageInterface, create_storage


class BankingSystem:
    """Ledger service with all components initialized"""

    def __init__(
        self,
        config: Optional[MinibankConfig] = None,
        storage: Optional[StorageInterface] = None
    ):
        self.config = config or get_config()

        # Initialize storage
        if storage is None:
            storage = create_storage(self.config.database_url, echo=self.config.database_echo)
        self.storage = storage

        # Initialize core components
        self.audit_trail = AuditTrail(self.storage) if self.config.enable_audit_logging else None
        self.journal = TransactionJournal(self.storage)
        self.account_manager = AccountManager(
            self.storage, self.journal, self.audit_trail,
            savings_interest_rate=Decimal(self.config.savings_interest_rate)
        )
        self.ledger = LedgerCore(
            self.storage, self.account_manager, self.journal,
            enforce_account_status=self.config.enforce_account_status,
            lock_timeout=self.config.lock_timeout_seconds
        )

    @property
    def min_transfer_amount(self) -> Decimal:
        return Decimal(self.config.min_transfer_amount)

    def close(self) -> None:
        self.storage.close()


# Global banking system instance, created on first use
banking_system: Optional[BankingSystem] = None


# Dependency to get banking system
def get_banking_system() -> BankingSystem:
    global banking_system
    if banking_system is None:
        banking_system = BankingSystem()
    return banking_system
