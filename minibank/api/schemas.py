"""
Pydantic schemas for API requests and responses
"""

from decimal import Decimal
from datetime import datetime
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field

from ..accounts import Account
from ..audit import AuditEvent
from ..currency import format_amount
from ..journal import Transaction


# Account schemas
class CreateAccountRequest(BaseModel):
    owner: str = Field(..., min_length=1, description="Account owner")
    currency: str = Field(..., description="Currency code (USD, EUR, PLN, ...)")
    account_type: str = Field("CHECKING", description="Account type (CHECKING, SAVINGS)")


class UpdateAccountRequest(BaseModel):
    owner: str = Field(..., min_length=1)


class UpdateStatusRequest(BaseModel):
    status: str = Field(..., description="Account status (ACTIVE, BLOCKED)")
    reason: Optional[str] = None


class AccountResponse(BaseModel):
    id: str
    account_number: str
    owner: str
    currency: str
    balance: str = Field(..., description="Decimal amount as string")
    status: str
    account_type: str
    interest_rate: str
    created_at: str

    @classmethod
    def from_account(cls, account: Account) -> 'AccountResponse':
        return cls(
            id=account.id,
            account_number=account.account_number,
            owner=account.owner,
            currency=account.currency,
            balance=format_amount(account.balance),
            status=account.status.value,
            account_type=account.account_type.value,
            interest_rate=str(account.interest_rate),
            created_at=account.created_at.isoformat()
        )


class CurrencyCountResponse(BaseModel):
    currency: str
    count: int


# Transaction schemas
class TransferRequest(BaseModel):
    sender_id: str
    receiver_id: str
    amount: Decimal = Field(..., description="Amount to move, at least the configured minimum")


class TransferResponse(BaseModel):
    message: str
    timestamp: datetime


class TransactionResponse(BaseModel):
    id: str
    account_id: str
    type: str
    amount: str = Field(..., description="Decimal amount as string")
    timestamp: str
    sequence: int

    @classmethod
    def from_transaction(cls, transaction: Transaction) -> 'TransactionResponse':
        return cls(
            id=transaction.id,
            account_id=transaction.account_id,
            type=transaction.type.value,
            amount=format_amount(transaction.amount),
            timestamp=transaction.timestamp.isoformat(),
            sequence=transaction.sequence
        )


class DaySumResponse(BaseModel):
    account_id: str
    date: str
    total: str


class TransactionCountResponse(BaseModel):
    account_id: str
    count: int


# Audit schemas
class AuditEventResponse(BaseModel):
    id: str
    event_type: str
    account_id: str
    details: Dict[str, Any]
    created_at: str
    previous_hash: str
    current_hash: str

    @classmethod
    def from_event(cls, event: AuditEvent) -> 'AuditEventResponse':
        return cls(
            id=event.id,
            event_type=event.event_type.value,
            account_id=event.account_id,
            details=event.details,
            created_at=event.created_at.isoformat(),
            previous_hash=event.previous_hash,
            current_hash=event.current_hash
        )


class ChainReportResponse(BaseModel):
    valid: bool
    total_events: int
    first_broken_event: Optional[str] = None
