"""
Account management endpoints
"""

from datetime import date
from decimal import Decimal
from typing import List

from fastapi import APIRouter, HTTPException, Depends, Query, Response, status

from .audit import require_audit_trail
from .dependencies import BankingSystem, get_banking_system
from .errors import http_error
from .schemas import (
    AccountResponse,
    AuditEventResponse,
    CreateAccountRequest,
    CurrencyCountResponse,
    TransferRequest,
    TransferResponse,
    UpdateAccountRequest,
    UpdateStatusRequest,
)
from .transactions import execute_transfer
from ..accounts import AccountStatus, AccountType
from ..exceptions import DomainError


router = APIRouter()


def _parse_status(value: str) -> AccountStatus:
    try:
        return AccountStatus(value.strip().upper())
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unknown account status: {value}")


def _to_response(accounts) -> List[AccountResponse]:
    return [AccountResponse.from_account(a) for a in accounts]


@router.get("", response_model=List[AccountResponse])
def list_accounts(system: BankingSystem = Depends(get_banking_system)):
    """All accounts; 204 when there are none"""
    accounts = system.account_manager.list_accounts()
    if not accounts:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return _to_response(accounts)


@router.post("", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
def create_account(
    request: CreateAccountRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    """Create a new account"""
    try:
        account = system.account_manager.create_account(
            owner=request.owner,
            currency=request.currency,
            account_type=AccountType(request.account_type.strip().upper())
        )
    except (DomainError, ValueError) as e:
        raise http_error(e)

    return AccountResponse.from_account(account)


@router.post("/transfer", response_model=TransferResponse)
def transfer(
    request: TransferRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    """Make a transfer between accounts"""
    return execute_transfer(request, system)


# Account queries

@router.get("/owner/{owner}", response_model=List[AccountResponse])
def get_accounts_by_owner(owner: str, system: BankingSystem = Depends(get_banking_system)):
    try:
        return _to_response(system.account_manager.find_by_owner(owner))
    except DomainError as e:
        raise http_error(e)


@router.get("/highest-balance", response_model=AccountResponse)
def get_highest_balance(system: BankingSystem = Depends(get_banking_system)):
    try:
        return AccountResponse.from_account(system.account_manager.highest_balance())
    except DomainError as e:
        raise http_error(e)


@router.get("/highest-balance/{currency}", response_model=AccountResponse)
def get_highest_balance_in_currency(currency: str, system: BankingSystem = Depends(get_banking_system)):
    try:
        return AccountResponse.from_account(system.account_manager.highest_balance_in(currency))
    except DomainError as e:
        raise http_error(e)


@router.get("/balance/greater-than/{amount}", response_model=List[AccountResponse])
def get_balance_greater_than(amount: Decimal, system: BankingSystem = Depends(get_banking_system)):
    try:
        return _to_response(system.account_manager.balance_greater_than(amount))
    except DomainError as e:
        raise http_error(e)


@router.get("/created-after/{day}", response_model=List[AccountResponse])
def get_created_after(day: date, system: BankingSystem = Depends(get_banking_system)):
    try:
        return _to_response(system.account_manager.created_after(day))
    except DomainError as e:
        raise http_error(e)


@router.get("/created-before/{day}", response_model=List[AccountResponse])
def get_created_before(day: date, system: BankingSystem = Depends(get_banking_system)):
    try:
        return _to_response(system.account_manager.created_before(day))
    except DomainError as e:
        raise http_error(e)


@router.get("/oldest", response_model=AccountResponse)
def get_oldest(system: BankingSystem = Depends(get_banking_system)):
    try:
        return AccountResponse.from_account(system.account_manager.oldest())
    except DomainError as e:
        raise http_error(e)


@router.get("/with-currency/{currency}", response_model=CurrencyCountResponse)
def count_with_currency(currency: str, system: BankingSystem = Depends(get_banking_system)):
    """Number of accounts held in a currency"""
    return CurrencyCountResponse(
        currency=currency.strip().upper(),
        count=system.account_manager.count_by_currency(currency)
    )


@router.get("/with-status/{account_status}", response_model=AccountResponse)
def get_top_with_status(account_status: str, system: BankingSystem = Depends(get_banking_system)):
    """Highest-balance account among those with a status"""
    try:
        return AccountResponse.from_account(system.account_manager.top_by_status(_parse_status(account_status)))
    except DomainError as e:
        raise http_error(e)


@router.get("/balance-top3", response_model=List[AccountResponse])
def get_top3(system: BankingSystem = Depends(get_banking_system)):
    try:
        return _to_response(system.account_manager.top_by_balance(3))
    except DomainError as e:
        raise http_error(e)


# Single account operations

@router.get("/{account_id}", response_model=AccountResponse)
def get_account(account_id: str, system: BankingSystem = Depends(get_banking_system)):
    """Get account details"""
    try:
        return AccountResponse.from_account(system.account_manager.get_account_or_raise(account_id))
    except DomainError as e:
        raise http_error(e)


@router.put("/{account_id}", response_model=AccountResponse)
def update_account(
    account_id: str,
    request: UpdateAccountRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    """Change the account owner"""
    try:
        return AccountResponse.from_account(system.account_manager.update_owner(account_id, request.owner))
    except (DomainError, ValueError) as e:
        raise http_error(e)


@router.delete("/{account_id}", response_model=AccountResponse)
def delete_account(account_id: str, system: BankingSystem = Depends(get_banking_system)):
    """Delete an account without transaction history"""
    try:
        return AccountResponse.from_account(system.account_manager.delete_account(account_id))
    except DomainError as e:
        raise http_error(e)


@router.get("/{account_id}/audit", response_model=List[AuditEventResponse])
def get_account_audit(account_id: str, system: BankingSystem = Depends(get_banking_system)):
    """Administrative changes to an account, oldest first. Kept after deletion."""
    events = require_audit_trail(system).history(account_id)
    return [AuditEventResponse.from_event(e) for e in events]


@router.put("/{account_id}/status", response_model=AccountResponse)
def update_status(
    account_id: str,
    request: UpdateStatusRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    """Block or unblock an account"""
    new_status = _parse_status(request.status)
    try:
        if new_status == AccountStatus.BLOCKED:
            account = system.account_manager.block_account(account_id, request.reason or "")
        else:
            account = system.account_manager.unblock_account(account_id, request.reason or "")
    except DomainError as e:
        raise http_error(e)

    return AccountResponse.from_account(account)


@router.post("/{account_id}/deposit", response_model=AccountResponse)
def deposit(
    account_id: str,
    amount: Decimal = Query(...),
    system: BankingSystem = Depends(get_banking_system)
):
    """Make a deposit"""
    try:
        return AccountResponse.from_account(system.ledger.deposit(account_id, amount))
    except DomainError as e:
        raise http_error(e)


@router.post("/{account_id}/withdraw", response_model=AccountResponse)
def withdraw(
    account_id: str,
    amount: Decimal = Query(...),
    system: BankingSystem = Depends(get_banking_system)
):
    """Make a withdrawal"""
    try:
        return AccountResponse.from_account(system.ledger.withdraw(account_id, amount))
    except DomainError as e:
        raise http_error(e)
