"""
Test suite for the error taxonomy
"""

import pytest

from banking_app.errors import (
    AuthenticationError, BackendUnavailableError, BankingError, ConflictError, ErrorKind, ForbiddenError,
    InsufficientFundsError, NotFoundError, ValidationError,
    CARD_MISMATCH, EMAIL_IN_USE
)


class TestBankingErrors:
    """Kinds, codes and serialization"""

    @pytest.mark.parametrize("error_class,kind,code", [
        (NotFoundError, ErrorKind.NOT_FOUND, "ACCOUNT_NOT_FOUND"),
        (ConflictError, ErrorKind.CONFLICT, "CONFLICT"),
        (ValidationError, ErrorKind.VALIDATION, "INVALID_INPUT"),
        (InsufficientFundsError, ErrorKind.INSUFFICIENT_FUNDS, "INSUFFICIENT_BALANCE"),
        (BackendUnavailableError, ErrorKind.BACKEND_UNAVAILABLE, "BACKEND_UNAVAILABLE"),
        (AuthenticationError, ErrorKind.UNAUTHORIZED, "INVALID_CREDENTIALS"),
        (ForbiddenError, ErrorKind.FORBIDDEN, "NOT_ACCOUNT_OWNER"),
    ])
    def test_default_kind_and_code(self, error_class, kind, code):
        error = error_class("boom")

        assert isinstance(error, BankingError)
        assert error.kind == kind
        assert error.code == code

    def test_only_backend_failures_are_retryable(self):
        assert BackendUnavailableError("disk gone").retryable
        assert not ValidationError("bad card", code=CARD_MISMATCH).retryable
        assert not InsufficientFundsError("short").retryable

    def test_to_dict(self):
        error = ConflictError("Email is already in use", code=EMAIL_IN_USE, field="email")

        assert error.field == "email"
        assert error.to_dict() == {
            "error": "conflict",
            "code": "EMAIL_IN_USE",
            "message": "Email is already in use"
        }
        assert str(error) == "Email is already in use"
