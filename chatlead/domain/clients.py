"""Domain helpers for client types, sign-up payloads and field normalization.

Everything here is pure: no I/O, no collaborators. The onboarding service
receives an already-validated ``IndividualSignup`` or ``CompanySignup`` and
dispatches on its type once.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Union

_NON_DIGITS = re.compile(r"\D")
_PHONE_STRIP = re.compile(r"[\s().\-]")


class ClientType(str, Enum):
    INDIVIDUAL = "individual"
    COMPANY = "company"


class SignupValidationError(ValueError):
    """Raised when a sign-up payload is rejected before any external call."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


def normalize_document(value: str | None) -> str:
    """Keep only the digits of a CPF/CNPJ. Idempotent."""
    return _NON_DIGITS.sub("", value or "")


def normalize_phone(value: str | None) -> str:
    """Strip whitespace and ``( ) - .`` from a phone number; no format checks."""
    return _PHONE_STRIP.sub("", value or "")


@dataclass(frozen=True)
class IndividualSignup:
    full_name: str
    document: str
    email: str
    password: str
    phone: str

    client_type = ClientType.INDIVIDUAL

    @property
    def company_name(self) -> None:
        return None


@dataclass(frozen=True)
class CompanySignup:
    full_name: str
    company_name: str
    document: str
    email: str
    password: str
    phone: str

    client_type = ClientType.COMPANY


Signup = Union[IndividualSignup, CompanySignup]

_REQUIRED_FIELDS = {
    ClientType.INDIVIDUAL: ("full_name", "document", "email", "password", "phone"),
    ClientType.COMPANY: ("full_name", "company_name", "document", "email", "password", "phone"),
}


def _text(payload: Mapping[str, Any], field: str) -> str:
    value = payload.get(field)
    if value is None:
        return ""
    return str(value).strip()


def parse_signup(payload: Mapping[str, Any]) -> Signup:
    """Validate a raw onboarding payload and build the matching variant.

    Missing and empty fields are both rejected. ``company_name`` is dropped
    for individuals.
    """
    raw_type = _text(payload, "client_type")
    try:
        client_type = ClientType(raw_type)
    except ValueError:
        raise SignupValidationError("Invalid client_type. Must be 'individual' or 'company'.") from None

    values = {field: _text(payload, field) for field in _REQUIRED_FIELDS[client_type]}
    values["document"] = normalize_document(values["document"])
    values["phone"] = normalize_phone(values["phone"])
    # passwords are taken as typed, surrounding whitespace included
    raw_password = payload.get("password")
    values["password"] = "" if raw_password is None else str(raw_password)
    if not all(values.values()):
        raise SignupValidationError(f"Missing required fields for {client_type.value}.")

    if client_type is ClientType.COMPANY:
        return CompanySignup(**values)
    return IndividualSignup(**values)
