"""
Service wiring and authentication dependencies
"""

from typing import Any, Dict, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..audit import AuditTrail
from ..config import BankingConfig, get_config
from ..errors import AuthenticationError, ForbiddenError, INVALID_TOKEN, NOT_ACCOUNT_OWNER
from ..ledger_store import LedgerStore
from ..money_movement import AccountLockManager, MoneyMovementEngine
from ..onboarding import AccountOnboarding
from ..passwords import PasswordHasher
from ..storage import StorageInterface, create_storage
from ..tokens import TokenIssuer


class BankingSystem:
    """Banking service with all components initialized"""

    def __init__(
        self,
        config: Optional[BankingConfig] = None,
        storage: Optional[StorageInterface] = None
    ):
        self.config = config or get_config()

        # Initialize storage
        self.storage = storage or create_storage(self.config.database_url)

        # Initialize core components
        self.store = LedgerStore(self.storage)
        self.audit_trail = AuditTrail(self.storage) if self.config.enable_audit_logging else None
        self.lock_manager = AccountLockManager()
        self.password_hasher = PasswordHasher()
        self.token_issuer = TokenIssuer(
            secret=self.config.jwt_secret,
            algorithm=self.config.jwt_algorithm,
            expiry_minutes=self.config.jwt_expiry_minutes
        )
        self.onboarding = AccountOnboarding(
            self.store,
            password_hasher=self.password_hasher,
            audit_trail=self.audit_trail,
            lock_manager=self.lock_manager,
            initial_balance=self.config.initial_balance,
            initial_card_balance=self.config.initial_card_balance,
            card_validity_years=self.config.card_validity_years,
            password_min_length=self.config.password_min_length,
            max_attempts=self.config.identifier_max_attempts
        )
        self.money_movement = MoneyMovementEngine(
            self.store,
            audit_trail=self.audit_trail,
            lock_manager=self.lock_manager
        )

    def close(self) -> None:
        self.storage.close()


_banking_system: Optional[BankingSystem] = None


# Dependency to get banking system
def get_banking_system() -> BankingSystem:
    global _banking_system
    if _banking_system is None:
        _banking_system = BankingSystem()
    return _banking_system


# JWT Security
security = HTTPBearer(auto_error=False)


def get_token_claims(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    system: BankingSystem = Depends(get_banking_system)
) -> Dict[str, Any]:
    """Dependency that validates the bearer token and returns its claims"""
    if not credentials:
        raise AuthenticationError("Not authenticated", code=INVALID_TOKEN)
    return system.token_issuer.decode(credentials.credentials)


def get_bearer_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> str:
    if not credentials:
        raise AuthenticationError("Not authenticated", code=INVALID_TOKEN)
    return credentials.credentials


def require_account_owner(
    account_id: str,
    claims: Dict[str, Any] = Depends(get_token_claims)
) -> str:
    """Only the account's own token may move its money or remove it"""
    if claims["sub"] != account_id:
        raise ForbiddenError("Not allowed to operate on this account", code=NOT_ACCOUNT_OWNER)
    return account_id
