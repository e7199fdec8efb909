"""
Login and logout endpoints
"""

from fastapi import APIRouter, Depends

from .dependencies import BankingSystem, get_banking_system, get_bearer_token
from .schemas import LoginRequest
from ..audit import AuditEventType
from ..logging_config import get_logger, log_action


router = APIRouter()
logger = get_logger("banking_app.api.auth")


@router.post("/login")
def login(
    request: LoginRequest,
    system: BankingSystem = Depends(get_banking_system)
):
    """Authenticate and return a bearer token"""
    account = system.onboarding.authenticate(request.email, request.password)
    token, expires_at = system.token_issuer.issue(account.id)

    return {
        "access_token": token,
        "token_type": "bearer",
        "expires_at": expires_at.isoformat(),
        "account": account.to_public_dict()
    }


@router.post("/logout")
def logout(
    token: str = Depends(get_bearer_token),
    system: BankingSystem = Depends(get_banking_system)
):
    """Revoke the presented bearer token"""
    claims = system.token_issuer.revoke(token)

    if system.audit_trail:
        system.audit_trail.log_event(
            event_type=AuditEventType.LOGOUT,
            entity_type="session",
            entity_id=claims["sub"],
            metadata={"jti": claims["jti"]},
            actor_id=claims["sub"]
        )
    log_action(logger, "info", "Logout", account_id=claims["sub"], action="logout", resource="session")

    return {"message": "Logged out"}
