from __future__ import annotations

import itertools
import sys
from pathlib import Path

import pytest

# Garante que o pacote chatlead seja importável sem instalação
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from chatlead.core import config as core_config  # noqa: E402
from chatlead.db import models  # noqa: E402
from chatlead.db import session as db_session  # noqa: E402
from chatlead.repositories.sql_repository import RecordConflictError  # noqa: E402
from chatlead.services.identity_provider import (  # noqa: E402
    IdentityConflictError,
    IdentityRecord,
    IdentitySession,
    InvalidCredentialsError,
)


@pytest.fixture()
def db_env(tmp_path, monkeypatch):
    """Temporary SQLite database with settings/engine caches reset."""
    db_file = tmp_path / "test.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{db_file}")
    monkeypatch.setenv("APP_ENV", "test")
    core_config.get_settings.cache_clear()
    db_session.get_engine.cache_clear()
    db_session._get_sessionmaker.cache_clear()  # type: ignore[attr-defined]

    engine = db_session.get_engine()
    models.Base.metadata.drop_all(bind=engine)
    models.Base.metadata.create_all(bind=engine)

    yield db_file

    models.Base.metadata.drop_all(bind=engine)
    engine.dispose()
    core_config.get_settings.cache_clear()
    db_session.get_engine.cache_clear()
    db_session._get_sessionmaker.cache_clear()  # type: ignore[attr-defined]


class FakeIdentityProvider:
    """In-memory identity provider that records every call."""

    def __init__(self) -> None:
        self.identities: dict[str, dict] = {}
        self.calls: list[tuple] = []
        self.fail_create: Exception | None = None
        self.fail_delete: Exception | None = None
        self._ids = itertools.count(1)

    def create_identity(self, email, password, metadata):
        self.calls.append(("create_identity", email))
        if self.fail_create:
            raise self.fail_create
        if any(item["email"] == email for item in self.identities.values()):
            raise IdentityConflictError("A user with this email address has already been registered")
        identity_id = f"auth-{next(self._ids)}"
        self.identities[identity_id] = {"email": email, "password": password, "metadata": dict(metadata)}
        return IdentityRecord(id=identity_id, email=email, metadata=dict(metadata), confirmed=True)

    def delete_identity(self, identity_id):
        self.calls.append(("delete_identity", identity_id))
        if self.fail_delete:
            raise self.fail_delete
        self.identities.pop(identity_id, None)

    def authenticate(self, email, password):
        self.calls.append(("authenticate", email))
        for identity_id, item in self.identities.items():
            if item["email"] == email and item["password"] == password:
                return IdentitySession(access_token=f"token-{identity_id}", identity_id=identity_id)
        raise InvalidCredentialsError("Invalid login credentials")


class FakeRecordStore:
    """In-memory record store with per-table failure injection."""

    UNIQUE = {"clients": ("email",), "users": ("email", "id_auth")}

    def __init__(self) -> None:
        self.tables: dict[str, dict[str, dict]] = {}
        self.calls: list[tuple] = []
        self.fail_insert: dict[str, Exception] = {}
        self.fail_delete: dict[str, Exception] = {}
        self._ids = itertools.count(1)

    def rows(self, table):
        return list(self.tables.get(table, {}).values())

    def insert(self, table, row):
        self.calls.append(("insert", table))
        if table in self.fail_insert:
            raise self.fail_insert[table]
        existing = self.tables.setdefault(table, {})
        for field in self.UNIQUE.get(table, ()):
            if any(item.get(field) == row.get(field) for item in existing.values()):
                raise RecordConflictError(f"A {table} record with the same data already exists.")
        record = dict(row, id=f"{table}-{next(self._ids)}")
        existing[record["id"]] = record
        return dict(record)

    def delete_by_id(self, table, record_id):
        self.calls.append(("delete", table, record_id))
        if table in self.fail_delete:
            raise self.fail_delete[table]
        self.tables.get(table, {}).pop(record_id, None)

    def select_one_by(self, table, field, value):
        self.calls.append(("select", table, field))
        matches = [item for item in self.tables.get(table, {}).values() if item.get(field) == value]
        return dict(matches[0]) if len(matches) == 1 else None


@pytest.fixture()
def fake_identity():
    return FakeIdentityProvider()


@pytest.fixture()
def fake_store():
    return FakeRecordStore()


@pytest.fixture()
def individual_payload():
    return {
        "client_type": "individual",
        "full_name": "Joao Silva",
        "document": "123.456.789-00",
        "email": "joao@example.com",
        "password": "secret123",
        "phone": "(11) 98888-7777",
    }


@pytest.fixture()
def company_payload():
    return {
        "client_type": "company",
        "full_name": "Maria Souza",
        "company_name": "XPTO LTDA",
        "document": "12.345.678/0001-99",
        "email": "maria@xpto.com",
        "password": "secret123",
        "phone": "(11) 99999-9999",
    }
