from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest
from sqlalchemy import select

from chatlead.core import config as core_config
from chatlead.db.models import AuthSession
from chatlead.db.session import get_engine, get_session
from chatlead.services.identity_provider import (
    HostedIdentityProvider,
    IdentityConflictError,
    IdentityError,
    InvalidCredentialsError,
    LocalIdentityProvider,
    build_identity_provider,
)


# -------------------------------------- local --------------------------------------
def test_local_create_and_authenticate(db_env):
    provider = LocalIdentityProvider()
    record = provider.create_identity("ana@example.com", "secret123", {"full_name": "Ana"})

    assert record.confirmed is True
    assert record.metadata == {"full_name": "Ana"}
    session = provider.authenticate("ana@example.com", "secret123")
    assert session.identity_id == record.id
    assert len(session.access_token) > 20


def test_local_duplicate_email_conflicts(db_env):
    provider = LocalIdentityProvider()
    provider.create_identity("ana@example.com", "secret123", {})

    with pytest.raises(IdentityConflictError):
        provider.create_identity("ana@example.com", "other-pass", {})


def test_local_wrong_password_and_unknown_email_look_the_same(db_env):
    provider = LocalIdentityProvider()
    provider.create_identity("ana@example.com", "secret123", {})

    with pytest.raises(InvalidCredentialsError) as wrong:
        provider.authenticate("ana@example.com", "nope")
    with pytest.raises(InvalidCredentialsError) as unknown:
        provider.authenticate("ghost@example.com", "secret123")
    assert str(wrong.value) == str(unknown.value)


def test_local_self_service_requires_confirmation(db_env):
    provider = LocalIdentityProvider(auto_confirm=False)
    record = provider.create_identity("ana@example.com", "secret123", {})

    assert record.confirmed is False
    with pytest.raises(InvalidCredentialsError):
        provider.authenticate("ana@example.com", "secret123")
    provider.confirm_email(record.id)
    assert provider.authenticate("ana@example.com", "secret123").identity_id == record.id


def test_local_delete_removes_identity_and_sessions(db_env):
    provider = LocalIdentityProvider()
    record = provider.create_identity("ana@example.com", "secret123", {})
    provider.authenticate("ana@example.com", "secret123")

    provider.delete_identity(record.id)

    with pytest.raises(InvalidCredentialsError):
        provider.authenticate("ana@example.com", "secret123")
    # the e-mail can be registered again
    provider.create_identity("ana@example.com", "secret123", {})


def test_local_authenticate_prunes_expired_sessions(db_env):
    provider = LocalIdentityProvider()
    record = provider.create_identity("ana@example.com", "secret123", {})
    stale = datetime.now(timezone.utc) - timedelta(hours=1)
    with get_session() as session:
        session.add(AuthSession(access_token="stale-token", identity_id=record.id, expires_at=stale))
        session.commit()

    first = provider.authenticate("ana@example.com", "secret123")
    second = provider.authenticate("ana@example.com", "secret123")

    with get_session() as session:
        tokens = set(session.execute(select(AuthSession.access_token)).scalars())
    assert tokens == {first.access_token, second.access_token}


def test_local_store_failure_is_not_reported_as_bad_credentials(db_env):
    provider = LocalIdentityProvider()
    provider.create_identity("ana@example.com", "secret123", {})
    AuthSession.__table__.drop(get_engine())

    with pytest.raises(IdentityError) as exc:
        provider.authenticate("ana@example.com", "secret123")
    assert not isinstance(exc.value, InvalidCredentialsError)


# -------------------------------------- hosted --------------------------------------
def _hosted(handler, **kwargs):
    return HostedIdentityProvider(
        "https://auth.example.test",
        "service-key",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


def test_hosted_admin_create_sends_email_confirm():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["auth"] = request.headers["authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "uuid-1", "email": "ana@example.com", "email_confirmed_at": "2024-01-01T00:00:00Z"})

    record = _hosted(handler).create_identity("ana@example.com", "secret123", {"full_name": "Ana"})

    assert record.id == "uuid-1"
    assert record.confirmed is True
    assert seen["path"] == "/auth/v1/admin/users"
    assert seen["auth"] == "Bearer service-key"
    assert seen["body"]["email_confirm"] is True
    assert seen["body"]["user_metadata"] == {"full_name": "Ana"}


def test_hosted_self_service_signup_uses_signup_endpoint():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/auth/v1/signup"
        assert json.loads(request.content)["data"] == {"full_name": "Ana"}
        return httpx.Response(200, json={"user": {"id": "uuid-2", "email": "ana@example.com"}})

    record = _hosted(handler, auto_confirm=False).create_identity("ana@example.com", "secret123", {"full_name": "Ana"})

    assert record.id == "uuid-2"
    assert record.confirmed is False


def test_hosted_already_registered_is_conflict():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(422, json={"msg": "A user with this email address has already been registered"})

    with pytest.raises(IdentityConflictError, match="already been registered"):
        _hosted(handler).create_identity("ana@example.com", "secret123", {})


def test_hosted_transport_error_is_identity_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(IdentityError, match="unavailable"):
        _hosted(handler).delete_identity("uuid-1")


def test_hosted_authenticate_maps_invalid_grant():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["grant_type"] == "password"
        body = json.loads(request.content)
        if body["password"] == "secret123":
            return httpx.Response(200, json={"access_token": "jwt", "expires_at": 1700000000, "user": {"id": "uuid-1"}})
        return httpx.Response(400, json={"error": "invalid_grant", "error_description": "Invalid login credentials"})

    provider = _hosted(handler)
    session = provider.authenticate("ana@example.com", "secret123")
    assert session.access_token == "jwt"
    assert session.identity_id == "uuid-1"
    with pytest.raises(InvalidCredentialsError):
        provider.authenticate("ana@example.com", "wrong")


def test_hosted_create_rejects_non_json_success_body():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>proxy ok</html>")

    with pytest.raises(IdentityError, match="invalid response"):
        _hosted(handler).create_identity("ana@example.com", "secret123", {})


def test_hosted_authenticate_rejects_non_object_body():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=["not", "a", "session"])

    with pytest.raises(IdentityError, match="invalid response") as exc:
        _hosted(handler).authenticate("ana@example.com", "secret123")
    assert not isinstance(exc.value, InvalidCredentialsError)


def test_build_identity_provider_follows_settings(monkeypatch):
    monkeypatch.setenv("IDENTITY_BACKEND", "hosted")
    monkeypatch.setenv("SUPABASE_URL", "https://auth.example.test/")
    monkeypatch.setenv("SUPABASE_SERVICE_KEY", "key")
    core_config.get_settings.cache_clear()
    try:
        provider = build_identity_provider(core_config.get_settings())
        assert isinstance(provider, HostedIdentityProvider)
        provider.close()

        monkeypatch.setenv("IDENTITY_BACKEND", "carrier-pigeon")
        core_config.get_settings.cache_clear()
        with pytest.raises(RuntimeError):
            build_identity_provider(core_config.get_settings())
    finally:
        core_config.get_settings.cache_clear()
