"""
Identity Provider adapters.

Two implementations share one interface:

- ``LocalIdentityProvider`` keeps identities and sessions in the SQL database
  (``auth_identities`` / ``auth_sessions``) with Argon2 hashes.
- ``HostedIdentityProvider`` talks to a GoTrue-compatible auth REST API
  (Supabase Auth) over httpx using the service key.

Both support administrative creation with immediate e-mail confirmation
(``auto_confirm=True``) and self-service sign-up, where the identity stays
unconfirmed until the user follows the confirmation e-mail.
"""
from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Protocol

import httpx
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from chatlead.core.config import Settings
from chatlead.core.security import hash_password, verify_password
from chatlead.db.models import AuthIdentity, AuthSession
from chatlead.db.session import get_session

logger = logging.getLogger(__name__)


class IdentityError(Exception):
    """The identity provider rejected a call or could not be reached."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class IdentityConflictError(IdentityError):
    """An identity with this e-mail already exists."""


class InvalidCredentialsError(IdentityError):
    pass


@dataclass
class IdentityRecord:
    id: str
    email: str
    metadata: dict[str, Any] = field(default_factory=dict)
    confirmed: bool = False


@dataclass
class IdentitySession:
    access_token: str
    identity_id: str
    expires_at: Optional[datetime] = None


class IdentityProvider(Protocol):
    def create_identity(self, email: str, password: str, metadata: dict[str, Any]) -> IdentityRecord: ...

    def delete_identity(self, identity_id: str) -> None: ...

    def authenticate(self, email: str, password: str) -> IdentitySession: ...


class LocalIdentityProvider:
    """Identities stored next to the business tables."""

    def __init__(self, *, auto_confirm: bool = True, session_ttl_seconds: int = 86400) -> None:
        self.auto_confirm = auto_confirm
        self.session_ttl_seconds = max(60, session_ttl_seconds)

    def create_identity(self, email: str, password: str, metadata: dict[str, Any]) -> IdentityRecord:
        now = datetime.now(timezone.utc)
        entity = AuthIdentity(
            email=email,
            password_hash=hash_password(password),
            user_metadata=dict(metadata or {}),
            email_confirmed_at=now if self.auto_confirm else None,
        )
        with get_session() as session:
            try:
                session.add(entity)
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise IdentityConflictError("A user with this email address has already been registered") from exc
            except SQLAlchemyError as exc:
                session.rollback()
                raise IdentityError(f"Failed to create identity: {exc}") from exc
            return IdentityRecord(
                id=entity.id,
                email=entity.email,
                metadata=dict(entity.user_metadata or {}),
                confirmed=entity.email_confirmed_at is not None,
            )

    def delete_identity(self, identity_id: str) -> None:
        with get_session() as session:
            try:
                session.execute(delete(AuthSession).where(AuthSession.identity_id == identity_id))
                session.execute(delete(AuthIdentity).where(AuthIdentity.id == identity_id))
                session.commit()
            except SQLAlchemyError as exc:
                session.rollback()
                raise IdentityError(f"Failed to delete identity {identity_id}: {exc}") from exc

    def confirm_email(self, identity_id: str) -> None:
        with get_session() as session:
            try:
                entity = session.get(AuthIdentity, identity_id)
                if not entity:
                    raise IdentityError(f"Identity {identity_id} not found")
                entity.email_confirmed_at = datetime.now(timezone.utc)
                session.commit()
            except SQLAlchemyError as exc:
                session.rollback()
                raise IdentityError(f"Failed to confirm identity {identity_id}: {exc}") from exc

    def authenticate(self, email: str, password: str) -> IdentitySession:
        with get_session() as session:
            try:
                entity = session.execute(select(AuthIdentity).where(AuthIdentity.email == email)).scalar_one_or_none()
                # unknown e-mail, wrong password and unconfirmed identity look the same
                if not entity or not verify_password(password, entity.password_hash) or not entity.email_confirmed_at:
                    raise InvalidCredentialsError("Invalid login credentials")
                now = datetime.now(timezone.utc)
                session.execute(
                    delete(AuthSession).where(
                        AuthSession.identity_id == entity.id,
                        AuthSession.expires_at < now,
                    )
                )
                token = secrets.token_urlsafe(32)
                expires_at = now + timedelta(seconds=self.session_ttl_seconds)
                session.add(AuthSession(access_token=token, identity_id=entity.id, expires_at=expires_at))
                session.commit()
            except SQLAlchemyError as exc:
                session.rollback()
                logger.warning("identity store failure during authenticate: %s", exc)
                raise IdentityError("Identity store unavailable") from exc
            return IdentitySession(access_token=token, identity_id=entity.id, expires_at=expires_at)


class HostedIdentityProvider:
    """Client for a GoTrue-compatible auth API (``/auth/v1``)."""

    def __init__(
        self,
        base_url: str,
        service_key: str,
        *,
        auto_confirm: bool = True,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        if not base_url or not service_key:
            raise RuntimeError("SUPABASE_URL and SUPABASE_SERVICE_KEY must be configured for the hosted identity backend.")
        self.auto_confirm = auto_confirm
        self._client = httpx.Client(
            base_url=f"{base_url.rstrip('/')}/auth/v1",
            headers={"apikey": service_key, "Authorization": f"Bearer {service_key}"},
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise IdentityError(f"Identity provider unavailable: {exc}") from exc

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text or f"HTTP {response.status_code}"
        if isinstance(body, dict):
            for key in ("msg", "message", "error_description", "error"):
                if body.get(key):
                    return str(body[key])
        return f"HTTP {response.status_code}"

    @staticmethod
    def _json_object(response: httpx.Response) -> dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            logger.warning("identity provider answered HTTP %s with a non-object body", response.status_code)
            raise IdentityError("Identity provider returned an invalid response")
        return body

    @staticmethod
    def _is_conflict(response: httpx.Response, message: str) -> bool:
        if response.status_code == 409:
            return True
        lowered = message.lower()
        return response.status_code in (400, 422) and ("already" in lowered or "exists" in lowered)

    def create_identity(self, email: str, password: str, metadata: dict[str, Any]) -> IdentityRecord:
        if self.auto_confirm:
            payload = {"email": email, "password": password, "email_confirm": True, "user_metadata": metadata}
            response = self._request("POST", "/admin/users", json=payload)
        else:
            payload = {"email": email, "password": password, "data": metadata}
            response = self._request("POST", "/signup", json=payload)
        if response.status_code >= 400:
            message = self._error_message(response)
            if self._is_conflict(response, message):
                raise IdentityConflictError(message)
            raise IdentityError(message)
        body = self._json_object(response)
        # signup may wrap the user object
        user = body.get("user") or body
        if not isinstance(user, dict) or not user.get("id"):
            raise IdentityError("Identity provider returned no user id")
        return IdentityRecord(
            id=str(user["id"]),
            email=user.get("email") or email,
            metadata=user.get("user_metadata") or dict(metadata),
            confirmed=bool(user.get("email_confirmed_at") or user.get("confirmed_at")),
        )

    def delete_identity(self, identity_id: str) -> None:
        response = self._request("DELETE", f"/admin/users/{identity_id}")
        if response.status_code >= 400 and response.status_code != 404:
            raise IdentityError(self._error_message(response))

    def authenticate(self, email: str, password: str) -> IdentitySession:
        response = self._request(
            "POST",
            "/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        if response.status_code in (400, 401, 403, 422):
            raise InvalidCredentialsError("Invalid login credentials")
        if response.status_code >= 400:
            raise IdentityError(self._error_message(response))
        body = self._json_object(response)
        user = body.get("user") or {}
        if not body.get("access_token") or not isinstance(user, dict):
            raise IdentityError("Identity provider returned an invalid response")
        expires_at = None
        if body.get("expires_at"):
            try:
                expires_at = datetime.fromtimestamp(int(body["expires_at"]), tz=timezone.utc)
            except (TypeError, ValueError, OverflowError, OSError):
                raise IdentityError("Identity provider returned an invalid response") from None
        return IdentitySession(
            access_token=str(body["access_token"]),
            identity_id=str(user.get("id", "")),
            expires_at=expires_at,
        )


def build_identity_provider(settings: Settings) -> IdentityProvider:
    """Pick the identity backend configured by IDENTITY_BACKEND."""
    if settings.identity_backend == "hosted":
        logger.info("using hosted identity provider at %s", settings.supabase_url)
        return HostedIdentityProvider(
            settings.supabase_url,
            settings.supabase_service_key,
            auto_confirm=settings.identity_auto_confirm,
            timeout=settings.identity_timeout_seconds,
        )
    if settings.identity_backend != "local":
        raise RuntimeError(f"Unknown IDENTITY_BACKEND: {settings.identity_backend}")
    return LocalIdentityProvider(
        auto_confirm=settings.identity_auto_confirm,
        session_ttl_seconds=settings.session_ttl_seconds,
    )
