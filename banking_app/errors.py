"""
Banking Error Taxonomy

Every failure the core reports is a BankingError carrying an ErrorKind
(what category of failure) and a code (the precise reason). The API layer
maps kinds to status codes; callers can branch on either.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(Enum):
    """Categories of failures reported by the banking core"""
    NOT_FOUND = "not_found"                      # Entity absent
    CONFLICT = "conflict"                        # Uniqueness violation
    VALIDATION = "validation"                    # Bad input or mismatched card data
    INSUFFICIENT_FUNDS = "insufficient_funds"    # Balance shortfall
    BACKEND_UNAVAILABLE = "backend_unavailable"  # Storage I/O failure
    UNAUTHORIZED = "unauthorized"                # Credential or token failure
    FORBIDDEN = "forbidden"                      # Valid token for a different account


class BankingError(Exception):
    """Base class for all banking errors"""

    kind: ErrorKind = ErrorKind.VALIDATION
    default_code: str = "BANKING_ERROR"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code

    @property
    def retryable(self) -> bool:
        """Backend faults may succeed on retry; business errors need corrected input"""
        return self.kind == ErrorKind.BACKEND_UNAVAILABLE

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for API responses"""
        return {
            "error": self.kind.value,
            "code": self.code,
            "message": self.message,
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"


class NotFoundError(BankingError):
    """Raised when an account (or transfer recipient) does not exist"""
    kind = ErrorKind.NOT_FOUND
    default_code = "ACCOUNT_NOT_FOUND"


class ConflictError(BankingError):
    """Raised when a unique field is already taken"""
    kind = ErrorKind.CONFLICT
    default_code = "CONFLICT"

    def __init__(self, message: str, code: Optional[str] = None, field: Optional[str] = None):
        super().__init__(message, code)
        self.field = field


class ValidationError(BankingError):
    """Raised for bad amounts, mismatched card details and self transfers"""
    kind = ErrorKind.VALIDATION
    default_code = "INVALID_INPUT"


class InsufficientFundsError(BankingError):
    """Raised when a balance cannot cover the requested amount"""
    kind = ErrorKind.INSUFFICIENT_FUNDS
    default_code = "INSUFFICIENT_BALANCE"


class BackendUnavailableError(BankingError):
    """Raised when the storage backend fails; safe to retry"""
    kind = ErrorKind.BACKEND_UNAVAILABLE
    default_code = "BACKEND_UNAVAILABLE"


class AuthenticationError(BankingError):
    """Raised for bad credentials and invalid, expired or revoked tokens"""
    kind = ErrorKind.UNAUTHORIZED
    default_code = "INVALID_CREDENTIALS"


class ForbiddenError(BankingError):
    """Raised when a caller acts on an account its token does not belong to"""
    kind = ErrorKind.FORBIDDEN
    default_code = "NOT_ACCOUNT_OWNER"


# Fine-grained reason codes
ACCOUNT_NOT_FOUND = "ACCOUNT_NOT_FOUND"
RECIPIENT_NOT_FOUND = "RECIPIENT_NOT_FOUND"
EMAIL_IN_USE = "EMAIL_IN_USE"
PHONE_IN_USE = "PHONE_IN_USE"
ACCOUNT_NUMBER_IN_USE = "ACCOUNT_NUMBER_IN_USE"
CARD_NUMBER_IN_USE = "CARD_NUMBER_IN_USE"
INVALID_AMOUNT = "INVALID_AMOUNT"
CARD_MISMATCH = "CARD_MISMATCH"
INVALID_CARD_INFO = "INVALID_CARD_INFO"
SELF_TRANSFER = "SELF_TRANSFER"
INVALID_INPUT = "INVALID_INPUT"
INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
INSUFFICIENT_CARD_BALANCE = "INSUFFICIENT_CARD_BALANCE"
INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
INVALID_TOKEN = "INVALID_TOKEN"
TOKEN_EXPIRED = "TOKEN_EXPIRED"
TOKEN_REVOKED = "TOKEN_REVOKED"
NOT_ACCOUNT_OWNER = "NOT_ACCOUNT_OWNER"
