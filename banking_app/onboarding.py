"""
Account Onboarding Module

Creates accounts: uniqueness checks on email and phone, password hashing,
identifier generation, card details and opening balances. Also covers the
rest of the account lifecycle that is not money movement: lookup, login and
removal.
"""

from datetime import date, datetime, timezone
from dataclasses import dataclass
from typing import Callable, List, Optional
import uuid

from .accounts import Account, mask_card_number
from .audit import AuditTrail, AuditEventType
from .errors import (
    AuthenticationError, ConflictError, NotFoundError, ValidationError,
    EMAIL_IN_USE, PHONE_IN_USE, INVALID_INPUT, INVALID_CREDENTIALS
)
from .identifiers import IdentifierGenerator, expiration_for
from .ledger_store import LedgerStore
from .logging_config import get_logger, log_action
from .money_movement import AccountLockManager
from .passwords import PasswordHasher


# Conflicts on these fields mean the generated identifiers lost a race
_REGENERATE_ON = ("account_number", "card_number", "id")


@dataclass
class AccountCandidate:
    """Sign-up data supplied by the caller"""
    first_name: str
    last_name: str
    email: str
    phone: str
    password: str

    def validate(self, password_min_length: int = 8) -> None:
        """Reject blank identity fields and short passwords"""
        for name in ("first_name", "last_name", "email", "phone"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value.strip():
                raise ValidationError(f"{name} is required", code=INVALID_INPUT)
        if not isinstance(self.password, str) or len(self.password) < password_min_length:
            raise ValidationError(
                f"Password must be at least {password_min_length} characters",
                code=INVALID_INPUT
            )


class AccountOnboarding:
    """
    Account creation and lifecycle outside of money movement
    """

    def __init__(
        self,
        store: LedgerStore,
        password_hasher: Optional[PasswordHasher] = None,
        identifier_generator: Optional[IdentifierGenerator] = None,
        audit_trail: Optional[AuditTrail] = None,
        lock_manager: Optional[AccountLockManager] = None,
        initial_balance: int = 500,
        initial_card_balance: int = 0,
        card_validity_years: int = 5,
        password_min_length: int = 8,
        max_attempts: int = 10,
        today: Callable[[], date] = date.today
    ):
        self.store = store
        self.password_hasher = password_hasher or PasswordHasher()
        self.identifiers = identifier_generator or IdentifierGenerator(store)
        self.audit_trail = audit_trail
        self.locks = lock_manager or AccountLockManager()
        self.initial_balance = initial_balance
        self.initial_card_balance = initial_card_balance
        self.card_validity_years = card_validity_years
        self.password_min_length = password_min_length
        self.max_attempts = max_attempts
        self._today = today
        self.logger = get_logger("banking_app.onboarding")

    def create_account(self, candidate: AccountCandidate) -> Account:
        """
        Create and persist a new account

        Email and phone are checked first, in that order. Identifiers are then
        drawn and the account inserted; if the store reports that another
        creator took the same account or card number in the meantime, fresh
        identifiers are drawn and the insert retried.

        Returns:
            The stored account. It still carries the password hash; use
            ``to_public_dict()`` for anything outward facing.

        Raises:
            ValidationError: blank fields or short password
            ConflictError: email or phone already registered
        """
        candidate.validate(self.password_min_length)

        if self.store.exists_by_email(candidate.email):
            raise ConflictError("Email is already in use", code=EMAIL_IN_USE, field="email")

        if self.store.exists_by_phone_number(candidate.phone):
            raise ConflictError("Phone number is already in use", code=PHONE_IN_USE, field="phone")

        password_hash = self.password_hasher.hash(candidate.password)
        expiration_month, expiration_year = expiration_for(self._today(), self.card_validity_years)

        attempt = 0
        while True:
            attempt += 1
            account = self._build_account(candidate, password_hash, expiration_month, expiration_year)
            try:
                with self.store.atomic():
                    self.store.insert(account)
                    if self.audit_trail:
                        self.audit_trail.log_event(
                            event_type=AuditEventType.ACCOUNT_CREATED,
                            entity_type="account",
                            entity_id=account.id,
                            metadata={
                                "account_number": account.account_number,
                                "card_number": mask_card_number(account.card_number),
                                "balance": account.balance,
                                "card_balance": account.card_balance
                            },
                            actor_id=account.id
                        )
            except ConflictError as e:
                if e.field not in _REGENERATE_ON or attempt >= self.max_attempts:
                    raise
                log_action(
                    self.logger, "warning", "Identifier collision at insert, regenerating",
                    action="create_account", resource="account",
                    extra={"field": e.field, "attempt": attempt}
                )
                continue
            break

        log_action(
            self.logger, "info", "Account created",
            account_id=account.id, action="create_account", resource="account",
            extra={"account_number": account.account_number}
        )
        return account

    def _build_account(
        self,
        candidate: AccountCandidate,
        password_hash: str,
        expiration_month: str,
        expiration_year: str
    ) -> Account:
        now = datetime.now(timezone.utc)
        return Account(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            first_name=candidate.first_name.strip(),
            last_name=candidate.last_name.strip(),
            email=candidate.email,
            phone=candidate.phone,
            account_number=self.identifiers.generate_account_number(),
            card_number=self.identifiers.generate_card_number(),
            card_verification_value=self.identifiers.generate_cvv(),
            expiration_month=expiration_month,
            expiration_year=expiration_year,
            password_hash=password_hash,
            balance=self.initial_balance,
            card_balance=self.initial_card_balance
        )

    def list_accounts(self) -> List[Account]:
        """All accounts, oldest first"""
        return self.store.find_all()

    def get_account(self, account_id: str) -> Account:
        """Get account by ID or raise NotFoundError"""
        account = self.store.find_by_id(account_id)
        if not account:
            raise NotFoundError(f"Account {account_id} not found")
        return account

    def authenticate(self, email: str, password: str) -> Account:
        """
        Check login credentials

        Unknown email and wrong password are reported the same way.
        """
        account = self.store.find_by_email(email) if email else None
        if not account or not self.password_hasher.verify(password, account.password_hash or ""):
            if self.audit_trail:
                self.audit_trail.log_event(
                    event_type=AuditEventType.LOGIN_FAILED,
                    entity_type="session",
                    entity_id=account.id if account else "unknown",
                    metadata={"reason": "invalid_credentials"}
                )
            log_action(self.logger, "warning", "Login failed", action="login", resource="session")
            raise AuthenticationError("Invalid credentials", code=INVALID_CREDENTIALS)

        if self.audit_trail:
            self.audit_trail.log_event(
                event_type=AuditEventType.LOGIN_SUCCESS,
                entity_type="session",
                entity_id=account.id,
                metadata={},
                actor_id=account.id
            )
        log_action(self.logger, "info", "Login succeeded", account_id=account.id,
                   action="login", resource="session")
        return account

    def delete_account(self, account_id: str, actor_id: Optional[str] = None) -> Account:
        """Remove an account; no cascading effects"""
        with self.locks.hold(account_id):
            with self.store.atomic():
                account = self.get_account(account_id)
                self.store.delete(account)
                if self.audit_trail:
                    self.audit_trail.log_event(
                        event_type=AuditEventType.ACCOUNT_DELETED,
                        entity_type="account",
                        entity_id=account.id,
                        metadata={
                            "account_number": account.account_number,
                            "balance": account.balance,
                            "card_balance": account.card_balance
                        },
                        actor_id=actor_id
                    )
        self.locks.discard(account_id)

        log_action(self.logger, "info", "Account deleted", account_id=account_id,
                   action="delete_account", resource="account")
        return account
