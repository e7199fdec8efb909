"""
Account Entity Module

The balance-bearing record. Each account holds two pockets of whole-unit
funds: the cash ``balance`` (which receives transfers) and the linked card's
``card_balance``. Withdrawals and deposits move funds between the pockets;
transfers move cash balance between accounts.
"""

from datetime import datetime
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .storage import StorageRecord


ACCOUNT_NUMBER_LENGTH = 9
CARD_NUMBER_LENGTH = 16
CVV_LENGTH = 3


def _is_digits(value: str, length: int) -> bool:
    return isinstance(value, str) and len(value) == length and value.isdigit()


def mask_card_number(card_number: Optional[str]) -> str:
    """Keep only the last four digits, for logs and audit metadata"""
    if not card_number:
        return ""
    return "*" * (len(card_number) - 4) + card_number[-4:]


@dataclass
class Account(StorageRecord):
    """
    Bank account with cash and card balances
    """
    first_name: str
    last_name: str
    email: str
    phone: str
    account_number: str
    card_number: str
    card_verification_value: str
    expiration_month: str
    expiration_year: str
    password_hash: Optional[str] = None
    balance: int = 0
    card_balance: int = 0

    def __post_init__(self):
        if not _is_digits(self.account_number, ACCOUNT_NUMBER_LENGTH):
            raise ValueError("Account number must be a 9-digit numeric string")

        if not _is_digits(self.card_number, CARD_NUMBER_LENGTH):
            raise ValueError("Card number must be a 16-digit numeric string")

        if not _is_digits(self.card_verification_value, CVV_LENGTH):
            raise ValueError("Card verification value must be a 3-digit numeric string")

        self.check_balances()

    def check_balances(self) -> None:
        """Both pockets are non-negative integers at every committed point"""
        for name in ("balance", "card_balance"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"{name} must be an integer")
            if value < 0:
                raise ValueError(f"{name} cannot be negative")

    @property
    def two_pocket_total(self) -> int:
        """Funds held by the account across both pockets"""
        return self.balance + self.card_balance

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def card_matches(self, card_number: str) -> bool:
        """Check a card number against the registered one"""
        return card_number == self.card_number

    def card_details_match(self, card_number: str, month: str, year: str, cvv: str) -> bool:
        """All four card fields must equal the registered values exactly"""
        return (
            card_number == self.card_number and
            month == self.expiration_month and
            year == self.expiration_year and
            cvv == self.card_verification_value
        )

    def to_public_dict(self) -> Dict[str, Any]:
        """Outward-facing representation; never carries the password hash"""
        result = self.to_dict()
        result.pop('password_hash', None)
        return result

    def to_directory_dict(self) -> Dict[str, Any]:
        """What other account holders may see: enough to address a transfer"""
        return {
            'id': self.id,
            'first_name': self.first_name,
            'last_name': self.last_name,
            'account_number': self.account_number
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Account':
        """Create Account from its stored dictionary"""
        data = dict(data)
        data['created_at'] = datetime.fromisoformat(data['created_at'])
        data['updated_at'] = datetime.fromisoformat(data['updated_at'])
        return cls(**data)
