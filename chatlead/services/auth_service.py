"""
Login use case.

Two strategies are supported:

- ``identity``: credentials are checked by the identity provider, which also
  issues the session token; the internal user row is then loaded by e-mail.
- ``user_hash``: self-hosted variant that compares the password against the
  hash mirrored in the ``users`` table. No token is issued.

Every failure (unknown e-mail, wrong password, missing user row) raises the
same ``InvalidCredentialsError`` so callers cannot tell which e-mails exist.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from chatlead.core.security import verify_password
from chatlead.repositories.sql_repository import RecordStoreError
from chatlead.services.identity_provider import (
    IdentityError,
    IdentityProvider,
    InvalidCredentialsError as IdentityInvalidCredentials,
)
from chatlead.services.onboarding_service import RecordStore

logger = logging.getLogger(__name__)

LOGIN_STRATEGIES = ("identity", "user_hash")
_HIDDEN_USER_FIELDS = ("password_hash",)


class AuthError(Exception):
    """Base class for authentication-related exceptions."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class MissingCredentialsError(AuthError):
    pass


class InvalidCredentialsError(AuthError):
    status_code = 401


class AuthUnavailableError(AuthError):
    status_code = 503


@dataclass
class LoginResult:
    token: Optional[str]
    user: dict[str, Any]

    def as_dict(self) -> dict[str, Any]:
        return {"token": self.token, "user": self.user}


def public_user(row: dict[str, Any]) -> dict[str, Any]:
    """User row as returned to clients (no credential material)."""
    return {key: value for key, value in row.items() if key not in _HIDDEN_USER_FIELDS}


class AuthService:
    """Authenticates e-mail/password pairs against the configured strategy."""

    def __init__(
        self,
        identity: IdentityProvider,
        store: RecordStore,
        *,
        strategy: str = "identity",
        verifier: Callable[[str, Optional[str]], bool] = verify_password,
    ) -> None:
        if strategy not in LOGIN_STRATEGIES:
            raise ValueError(f"Unknown login strategy: {strategy}")
        self.identity = identity
        self.store = store
        self.strategy = strategy
        self.verifier = verifier

    def _find_user(self, email: str) -> Optional[dict[str, Any]]:
        try:
            return self.store.select_one_by("users", "email", email)
        except RecordStoreError as exc:
            raise AuthUnavailableError("Authentication temporarily unavailable.") from exc

    def login(self, email: str, password: str) -> LoginResult:
        raw_email = (email or "").strip()
        if not raw_email or not password:
            raise MissingCredentialsError("Email and password are required.")

        if self.strategy == "user_hash":
            user = self._find_user(raw_email)
            if not user or not self.verifier(password, user.get("password_hash")):
                logger.info("login rejected (user_hash)")
                raise InvalidCredentialsError("Invalid credentials.")
            return LoginResult(token=None, user=public_user(user))

        try:
            session = self.identity.authenticate(raw_email, password)
        except IdentityInvalidCredentials:
            logger.info("login rejected by identity provider")
            raise InvalidCredentialsError("Invalid credentials.") from None
        except IdentityError as exc:
            logger.warning("identity provider failure during login: %s", exc.message)
            raise AuthUnavailableError("Authentication temporarily unavailable.") from exc

        user = self._find_user(raw_email)
        if not user:
            logger.warning("identity %s has no users row", session.identity_id)
            raise InvalidCredentialsError("Invalid credentials.")
        return LoginResult(token=session.access_token, user=public_user(user))
