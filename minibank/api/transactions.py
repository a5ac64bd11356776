"""
Transaction history and transfer endpoints
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import List

from fastapi import APIRouter, HTTPException, Depends, Query, status

from .dependencies import BankingSystem, get_banking_system
from .errors import http_error
from .schemas import (
    DaySumResponse,
    TransactionCountResponse,
    TransactionResponse,
    TransferRequest,
    TransferResponse,
)
from ..currency import format_amount
from ..exceptions import DomainError
from ..journal import TransactionType


router = APIRouter()


def execute_transfer(request: TransferRequest, system: BankingSystem) -> TransferResponse:
    """Validate the request amount, then hand the transfer to the ledger core"""
    if request.amount < system.min_transfer_amount:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Amount must be at least {system.min_transfer_amount}"
        )
    try:
        system.ledger.transfer(request.sender_id, request.receiver_id, request.amount)
    except DomainError as e:
        raise http_error(e)

    return TransferResponse(message="Transfer completed", timestamp=datetime.now(timezone.utc))


def _parse_type(value: str) -> TransactionType:
    try:
        return TransactionType(value.strip().upper())
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown transaction type: {value}"
        )


def _to_response(transactions) -> List[TransactionResponse]:
    return [TransactionResponse.from_transaction(t) for t in transactions]


@router.post("/transfer", response_model=TransferResponse)
def transfer(
    request: TransferRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    """Make a transfer between accounts"""
    return execute_transfer(request, system)


@router.get("/{account_id}", response_model=List[TransactionResponse])
def get_transactions(
    account_id: str,
    system: BankingSystem = Depends(get_banking_system)
):
    """Full history for an account, newest first"""
    try:
        return _to_response(system.journal.list_for_account(account_id))
    except DomainError as e:
        raise http_error(e)


@router.get("/{account_id}/type", response_model=List[TransactionResponse])
def get_transactions_by_type(
    account_id: str,
    type: str = Query(..., description="DEPOSIT, WITHDRAW, TRANSFER_IN or TRANSFER_OUT"),
    system: BankingSystem = Depends(get_banking_system)
):
    """History filtered by transaction type"""
    transaction_type = _parse_type(type)
    try:
        return _to_response(system.journal.list_by_type(account_id, transaction_type))
    except DomainError as e:
        raise http_error(e)


@router.get("/{account_id}/between", response_model=List[TransactionResponse])
def get_transactions_between(
    account_id: str,
    start: datetime = Query(..., alias="from"),
    end: datetime = Query(..., alias="to"),
    system: BankingSystem = Depends(get_banking_system)
):
    """History within an inclusive timestamp range"""
    try:
        return _to_response(system.journal.list_between(account_id, start, end))
    except DomainError as e:
        raise http_error(e)


@router.get("/{account_id}/sum", response_model=DaySumResponse)
def get_daily_sum(
    account_id: str,
    day: date = Query(..., alias="date"),
    system: BankingSystem = Depends(get_banking_system)
):
    """Sum of amounts recorded on one (UTC) day"""
    try:
        total = system.journal.sum_for_day(account_id, day)
    except DomainError as e:
        raise http_error(e)

    return DaySumResponse(account_id=account_id, date=day.isoformat(), total=format_amount(total))


@router.get("/{account_id}/count", response_model=TransactionCountResponse)
def get_transaction_count(
    account_id: str,
    system: BankingSystem = Depends(get_banking_system)
):
    """Number of transactions for an account"""
    try:
        return TransactionCountResponse(account_id=account_id, count=system.journal.count(account_id))
    except DomainError as e:
        raise http_error(e)


@router.get("/{account_id}/last", response_model=List[TransactionResponse])
def get_last_transactions(
    account_id: str,
    limit: int = Query(5),
    system: BankingSystem = Depends(get_banking_system)
):
    """The most recent transactions"""
    try:
        return _to_response(system.journal.last_n(account_id, limit))
    except DomainError as e:
        raise http_error(e)


@router.get("/{account_id}/max", response_model=TransactionResponse)
def get_max_transaction(
    account_id: str,
    type: str = Query(...),
    system: BankingSystem = Depends(get_banking_system)
):
    """Largest transaction of a type"""
    transaction_type = _parse_type(type)
    try:
        return TransactionResponse.from_transaction(system.journal.max_by_type(account_id, transaction_type))
    except DomainError as e:
        raise http_error(e)


@router.get("/{account_id}/above", response_model=List[TransactionResponse])
def get_transactions_above(
    account_id: str,
    amount: Decimal = Query(...),
    system: BankingSystem = Depends(get_banking_system)
):
    """Transactions strictly larger than an amount"""
    try:
        return _to_response(system.journal.above(account_id, amount))
    except DomainError as e:
        raise http_error(e)
