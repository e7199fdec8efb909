"""
Money movement endpoints
"""

from fastapi import APIRouter, Depends

from .dependencies import BankingSystem, get_banking_system, require_account_owner
from .schemas import DepositRequest, SendMoneyRequest, WithdrawRequest


router = APIRouter()


@router.post("/{account_id}/withdraw")
def withdraw(
    request: WithdrawRequest,
    account_id: str = Depends(require_account_owner),
    system: BankingSystem = Depends(get_banking_system)
):
    """Move funds from the account balance to the card balance"""
    account = system.money_movement.withdraw(
        account_id=account_id,
        card_number=request.card_number,
        amount=request.amount
    )
    return account.to_public_dict()


@router.post("/{account_id}/deposit")
def deposit(
    request: DepositRequest,
    account_id: str = Depends(require_account_owner),
    system: BankingSystem = Depends(get_banking_system)
):
    """Move funds from the card balance to the account balance"""
    account = system.money_movement.deposit(
        account_id=account_id,
        card_number=request.card_number,
        month=request.month,
        year=request.year,
        cvv=request.cvv,
        amount=request.amount
    )
    return account.to_public_dict()


@router.post("/{account_id}/send-money")
def send_money(
    request: SendMoneyRequest,
    account_id: str = Depends(require_account_owner),
    system: BankingSystem = Depends(get_banking_system)
):
    """Transfer funds to another account by account number"""
    outcome = system.money_movement.transfer(
        sender_id=account_id,
        recipient_account_number=request.account_number,
        amount=request.amount
    )
    return outcome.to_dict()
