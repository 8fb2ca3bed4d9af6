"""
Configuration helpers for the ChatLead backend.

Routers and services read a single Settings object instead of touching
os.environ directly. Values come from the process environment, optionally
seeded from a local .env file.
"""

from dataclasses import dataclass
from functools import lru_cache
import os

from dotenv import load_dotenv


@dataclass(frozen=True)
class Settings:
    """Typed view of environment variables."""

    app_env: str
    database_url: str
    cors_origins: tuple[str, ...]
    identity_backend: str
    identity_auto_confirm: bool
    supabase_url: str
    supabase_service_key: str
    identity_timeout_seconds: int
    login_strategy: str
    session_ttl_seconds: int
    onboarding_deadline_seconds: int
    log_level: str
    port: int


@lru_cache
def get_settings() -> Settings:
    """Read the current environment and build a Settings instance."""
    load_dotenv(override=False)

    def _int(value: str, default: int = 0) -> int:
        try:
            return int(value)
        except (TypeError, ValueError):
            return default

    def _bool(value: str | None, default: bool = False) -> bool:
        if value is None:
            return default
        return value.strip().lower() in {"1", "true", "yes", "on"}

    def _list(value: str | None, default: tuple[str, ...]) -> tuple[str, ...]:
        if not value:
            return default
        return tuple(item.strip() for item in value.split(",") if item.strip())

    return Settings(
        app_env=(os.getenv("APP_ENV") or "dev").lower(),
        database_url=os.getenv("DATABASE_URL", "sqlite:///./chatlead.db"),
        cors_origins=_list(os.getenv("CORS_ORIGINS"), ("*",)),
        identity_backend=(os.getenv("IDENTITY_BACKEND") or "local").lower(),
        identity_auto_confirm=_bool(os.getenv("IDENTITY_AUTO_CONFIRM"), True),
        supabase_url=os.getenv("SUPABASE_URL", "").rstrip("/"),
        supabase_service_key=os.getenv("SUPABASE_SERVICE_KEY", ""),
        identity_timeout_seconds=_int(os.getenv("IDENTITY_TIMEOUT_SECONDS", "10"), 10),
        login_strategy=(os.getenv("LOGIN_STRATEGY") or "identity").lower(),
        session_ttl_seconds=_int(os.getenv("SESSION_TTL_SECONDS", "86400"), 86400),
        onboarding_deadline_seconds=_int(os.getenv("ONBOARDING_DEADLINE_SECONDS", "30"), 30),
        log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
        port=_int(os.getenv("PORT", "4000"), 4000),
    )
