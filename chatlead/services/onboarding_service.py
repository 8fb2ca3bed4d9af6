"""
Client onboarding use case.

A single request creates, in order: the auth identity, the client row, the
user row and then the business records for the client type (a contact for
individuals; company, contact and their link for companies). Each committed
step registers an undo action; when a later step fails the undo log runs
newest first and the caller gets the failing step's message.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Protocol, TypeVar

from chatlead.core.security import hash_password
from chatlead.domain.clients import (
    CompanySignup,
    IndividualSignup,
    Signup,
    SignupValidationError,
    parse_signup,
)
from chatlead.repositories.sql_repository import RecordConflictError, RecordStoreError
from chatlead.services.compensation import UndoLog
from chatlead.services.identity_provider import IdentityConflictError, IdentityError, IdentityProvider

logger = logging.getLogger(__name__)

SUCCESS_MESSAGE = "Cadastro realizado com sucesso! Confira seu e-mail para confirmação."

T = TypeVar("T")


class OnboardingError(Exception):
    """Base class for client-facing onboarding failures."""

    code = "invalid"

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class ValidationError(OnboardingError):
    """Payload rejected before any external call."""

    code = "validation"


class ConflictError(OnboardingError):
    """Uniqueness violation at the identity provider or record store."""

    code = "conflict"


class DependencyError(OnboardingError):
    """A collaborator call failed for any other reason (or the deadline ran out)."""

    code = "dependency"


@dataclass
class OnboardingResult:
    client_id: str
    user_id: str
    contact_id: str
    company_id: Optional[str] = None
    message: str = SUCCESS_MESSAGE

    def as_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "message": self.message,
            "client_id": self.client_id,
            "user_id": self.user_id,
            "contact_id": self.contact_id,
        }
        if self.company_id is not None:
            body["company_id"] = self.company_id
        return body


class RecordStore(Protocol):
    """Record store calls used here; SQLRepository implements them."""

    def insert(self, table: str, row: dict[str, Any]) -> dict[str, Any]: ...

    def delete_by_id(self, table: str, record_id: str) -> None: ...

    def select_one_by(self, table: str, field: str, value: Any) -> Optional[dict[str, Any]]: ...


class OnboardingService:
    """Drives the identity provider and record store through one onboarding."""

    def __init__(
        self,
        identity: IdentityProvider,
        store: RecordStore,
        *,
        hasher: Callable[[str], str] = hash_password,
        deadline_seconds: float = 30,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.identity = identity
        self.store = store
        self.hasher = hasher
        self.deadline_seconds = deadline_seconds
        self._clock = clock

    # -------------------------------------- entry points --------------------------------------
    def onboard(self, payload: Mapping[str, Any]) -> OnboardingResult:
        try:
            signup = parse_signup(payload)
        except SignupValidationError as exc:
            raise ValidationError(exc.message) from None
        return self.run(signup)

    def run(self, signup: Signup) -> OnboardingResult:
        undo = UndoLog()
        deadline = self._clock() + self.deadline_seconds
        logger.info("onboarding started type=%s", signup.client_type.value)
        try:
            result = self._execute(signup, undo, deadline)
        except OnboardingError as exc:
            logger.warning("onboarding failed (%s): %s; undoing %d step(s)", exc.code, exc.message, len(undo))
            undo.rollback()
            raise
        except Exception:
            logger.exception("unexpected onboarding failure; undoing %d step(s)", len(undo))
            undo.rollback()
            raise
        undo.discard()
        logger.info("onboarding completed client=%s user=%s", result.client_id, result.user_id)
        return result

    # -------------------------------------- steps --------------------------------------
    def _call(self, label: str, deadline: float, fn: Callable[[], T]) -> T:
        if self._clock() > deadline:
            logger.warning("deadline exceeded before %s", label)
            raise DependencyError("Onboarding deadline exceeded.")
        try:
            return fn()
        except (IdentityConflictError, RecordConflictError) as exc:
            raise ConflictError(exc.message) from exc
        except (IdentityError, RecordStoreError) as exc:
            raise DependencyError(exc.message) from exc

    def _insert(self, undo: UndoLog, deadline: float, table: str, row: dict[str, Any]) -> dict[str, Any]:
        created = self._call(table, deadline, lambda: self.store.insert(table, row))
        record_id = created["id"]
        undo.record(f"{table}/{record_id}", lambda: self.store.delete_by_id(table, record_id))
        logger.info("created %s/%s", table, record_id)
        return created

    def _execute(self, signup: Signup, undo: UndoLog, deadline: float) -> OnboardingResult:
        identity = self._call(
            "auth identity",
            deadline,
            lambda: self.identity.create_identity(signup.email, signup.password, {"full_name": signup.full_name}),
        )
        undo.record(f"auth identity/{identity.id}", lambda: self.identity.delete_identity(identity.id))
        logger.info("created auth identity %s", identity.id)

        client = self._insert(
            undo,
            deadline,
            "clients",
            {
                "full_name": signup.full_name,
                "company_name": signup.company_name,
                "document": signup.document,
                "email": signup.email,
                "phone": signup.phone,
                "client_type": signup.client_type.value,
            },
        )
        user = self._insert(
            undo,
            deadline,
            "users",
            {
                "client_id": client["id"],
                "full_name": signup.full_name,
                "email": signup.email,
                "password_hash": self.hasher(signup.password),
                "id_auth": identity.id,
            },
        )

        company_id = None
        if isinstance(signup, CompanySignup):
            contact_id, company_id = self._create_company_records(signup, client["id"], user["id"], undo, deadline)
        else:
            contact_id = self._create_individual_records(signup, client["id"], user["id"], undo, deadline)
        return OnboardingResult(client_id=client["id"], user_id=user["id"], contact_id=contact_id, company_id=company_id)

    def _contact_row(self, signup: Signup, client_id: str, user_id: str) -> dict[str, Any]:
        return {
            "client_id": client_id,
            "full_name": signup.full_name,
            "phone": signup.phone,
            "email": signup.email,
            "responsible_id": user_id,
        }

    def _create_individual_records(
        self, signup: IndividualSignup, client_id: str, user_id: str, undo: UndoLog, deadline: float
    ) -> str:
        contact = self._insert(undo, deadline, "contacts", self._contact_row(signup, client_id, user_id))
        return contact["id"]

    def _create_company_records(
        self, signup: CompanySignup, client_id: str, user_id: str, undo: UndoLog, deadline: float
    ) -> tuple[str, str]:
        company = self._insert(
            undo,
            deadline,
            "companies",
            {"client_id": client_id, "name": signup.company_name, "cnpj": signup.document, "responsible_id": user_id},
        )
        contact = self._insert(undo, deadline, "contacts", self._contact_row(signup, client_id, user_id))
        self._insert(undo, deadline, "contact_company", {"contact_id": contact["id"], "company_id": company["id"]})
        return contact["id"], company["id"]
