"""
Ledger Store Module

Persistence collaborator holding the authoritative account records. Wraps a
StorageInterface backend, declares the unique fields the account population
must respect and converts between stored dictionaries and Account objects.
"""

from contextlib import contextmanager
from typing import Dict, List, Optional

from .accounts import Account
from .errors import (
    ConflictError, ACCOUNT_NUMBER_IN_USE, CARD_NUMBER_IN_USE, EMAIL_IN_USE, PHONE_IN_USE
)
from .storage import StorageInterface, UniqueConstraintError


UNIQUE_ACCOUNT_FIELDS = ("account_number", "card_number", "email", "phone")

_CONFLICT_CODES: Dict[str, str] = {
    "account_number": ACCOUNT_NUMBER_IN_USE,
    "card_number": CARD_NUMBER_IN_USE,
    "email": EMAIL_IN_USE,
    "phone": PHONE_IN_USE,
}

_CONFLICT_MESSAGES: Dict[str, str] = {
    "account_number": "Account number is already in use",
    "card_number": "Card number is already in use",
    "email": "Email is already in use",
    "phone": "Phone number is already in use",
}


class LedgerStore:
    """
    Account persistence with store-enforced uniqueness
    """

    def __init__(self, storage: StorageInterface, table_name: str = "accounts"):
        self.storage = storage
        self.table_name = table_name
        self.storage.register_unique(self.table_name, UNIQUE_ACCOUNT_FIELDS)

    @contextmanager
    def atomic(self):
        """Transactional boundary spanning every read and write inside it"""
        with self.storage.atomic():
            yield

    def find_by_id(self, account_id: str) -> Optional[Account]:
        """Get account by ID"""
        data = self.storage.load(self.table_name, account_id)
        if data:
            return Account.from_dict(data)
        return None

    def find_all(self) -> List[Account]:
        """Get every account, oldest first"""
        return [Account.from_dict(data) for data in self.storage.load_all(self.table_name)]

    def find_by_account_number(self, account_number: str) -> Optional[Account]:
        return self._find_one("account_number", account_number)

    def find_by_card_number(self, card_number: str) -> Optional[Account]:
        return self._find_one("card_number", card_number)

    def find_by_email(self, email: str) -> Optional[Account]:
        return self._find_one("email", email)

    def exists_by_account_number(self, account_number: str) -> bool:
        return self._exists("account_number", account_number)

    def exists_by_card_number(self, card_number: str) -> bool:
        return self._exists("card_number", card_number)

    def exists_by_email(self, email: str) -> bool:
        return self._exists("email", email)

    def exists_by_phone_number(self, phone: str) -> bool:
        return self._exists("phone", phone)

    def insert(self, account: Account) -> None:
        """
        Persist a brand new account.

        Raises:
            ConflictError: if the id or any unique field is already taken;
                ``field`` names the offending field.
        """
        account.check_balances()
        try:
            self.storage.insert(self.table_name, account.id, account.to_dict())
        except UniqueConstraintError as e:
            raise self._conflict(e) from e

    def save(self, account: Account) -> None:
        """Persist changes to an account"""
        account.check_balances()
        try:
            self.storage.save(self.table_name, account.id, account.to_dict())
        except UniqueConstraintError as e:
            raise self._conflict(e) from e

    def delete(self, account: Account) -> bool:
        """Remove an account; returns False if it was already gone"""
        return self.storage.delete(self.table_name, account.id)

    def count(self) -> int:
        return self.storage.count(self.table_name)

    def _find_one(self, field_name: str, value: str) -> Optional[Account]:
        matches = self.storage.find(self.table_name, {field_name: value})
        if matches:
            return Account.from_dict(matches[0])
        return None

    def _exists(self, field_name: str, value: str) -> bool:
        return bool(self.storage.find(self.table_name, {field_name: value}))

    @staticmethod
    def _conflict(error: UniqueConstraintError) -> ConflictError:
        return ConflictError(
            _CONFLICT_MESSAGES.get(error.field, f"Duplicate value for {error.field}"),
            code=_CONFLICT_CODES.get(error.field, "CONFLICT"),
            field=error.field,
        )
