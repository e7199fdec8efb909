"""
Bearer Token Module

Issues time-bounded JWT bearer credentials after a successful login and keeps
an in-process revocation list so that logout invalidates a token before it
expires.
"""

import threading
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Tuple

import jwt

from .errors import AuthenticationError, INVALID_TOKEN, TOKEN_EXPIRED, TOKEN_REVOKED


class TokenIssuer:
    """Signs, validates and revokes bearer tokens"""

    def __init__(self, secret: str, algorithm: str = "HS256", expiry_minutes: int = 60):
        if not secret:
            raise ValueError("Token secret cannot be empty")
        self._secret = secret
        self.algorithm = algorithm
        self.expiry = timedelta(minutes=expiry_minutes)
        self._revoked: Dict[str, datetime] = {}
        self._lock = threading.Lock()

    def issue(self, subject: str, **claims: Any) -> Tuple[str, datetime]:
        """
        Issue a token for an account

        Returns:
            (encoded token, expiry time)
        """
        now = datetime.now(timezone.utc)
        expires_at = now + self.expiry
        payload = {
            "sub": subject,
            "jti": str(uuid.uuid4()),
            "iat": now,
            "exp": expires_at,
        }
        payload.update(claims)
        token = jwt.encode(payload, self._secret, algorithm=self.algorithm)
        return token, expires_at

    def decode(self, token: str) -> Dict[str, Any]:
        """Validate a token and return its claims"""
        try:
            payload = jwt.decode(token, self._secret, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError as e:
            raise AuthenticationError("Token expired", code=TOKEN_EXPIRED) from e
        except jwt.InvalidTokenError as e:
            raise AuthenticationError("Invalid token", code=INVALID_TOKEN) from e

        if not payload.get("sub") or not payload.get("jti"):
            raise AuthenticationError("Invalid token", code=INVALID_TOKEN)

        with self._lock:
            if payload["jti"] in self._revoked:
                raise AuthenticationError("Token has been revoked", code=TOKEN_REVOKED)

        return payload

    def revoke(self, token: str) -> Dict[str, Any]:
        """Invalidate a token until its natural expiry"""
        payload = self.decode(token)
        expires_at = datetime.fromtimestamp(payload["exp"], tz=timezone.utc)
        with self._lock:
            self._purge_expired()
            self._revoked[payload["jti"]] = expires_at
        return payload

    def _purge_expired(self) -> None:
        now = datetime.now(timezone.utc)
        for jti in [j for j, exp in self._revoked.items() if exp <= now]:
            del self._revoked[jti]
