"""
Account management endpoints
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends, Response, status

from .dependencies import BankingSystem, get_banking_system, get_token_claims, require_account_owner
from .schemas import CreateAccountRequest
from ..accounts import Account


router = APIRouter()


def _view(account: Account, claims: Dict[str, Any]) -> Dict[str, Any]:
    """Owners see their full record (minus password hash); others the directory entry"""
    if claims.get("sub") == account.id:
        return account.to_public_dict()
    return account.to_directory_dict()


@router.get("")
def list_accounts(
    claims: Dict[str, Any] = Depends(get_token_claims),
    system: BankingSystem = Depends(get_banking_system)
):
    """List all accounts"""
    return {"accounts": [_view(a, claims) for a in system.onboarding.list_accounts()]}


@router.post("", status_code=status.HTTP_201_CREATED)
def create_account(
    request: CreateAccountRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    """Open a new account"""
    account = system.onboarding.create_account(request.to_candidate())
    return account.to_public_dict()


@router.get("/by-account-number/{account_number}")
def find_by_account_number(
    account_number: str,
    claims: Dict[str, Any] = Depends(get_token_claims),
    system: BankingSystem = Depends(get_banking_system)
):
    """Find the account holding an account number"""
    return _view(system.money_movement.find_by_account_number(account_number), claims)


@router.get("/by-card-number/{card_number}")
def find_by_card_number(
    card_number: str,
    claims: Dict[str, Any] = Depends(get_token_claims),
    system: BankingSystem = Depends(get_banking_system)
):
    """Find the account holding a card number"""
    return _view(system.money_movement.find_by_card_number(card_number), claims)


@router.get("/{account_id}")
def get_account(
    account_id: str,
    claims: Dict[str, Any] = Depends(get_token_claims),
    system: BankingSystem = Depends(get_banking_system)
):
    """Get account details"""
    return _view(system.onboarding.get_account(account_id), claims)


@router.delete("/{account_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_account(
    account_id: str = Depends(require_account_owner),
    system: BankingSystem = Depends(get_banking_system)
):
    """Remove an account"""
    system.onboarding.delete_account(account_id, actor_id=account_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
