"""
Runtime configuration.

Values come from the environment, optionally seeded from a `.env` file that
sits next to this module. Settings are read once per process.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv

env_path = Path(__file__).parent / ".env"
load_dotenv(dotenv_path=env_path)


def _get_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise RuntimeError(f"Environment variable {name} must be an integer, got {value!r}") from None


def _get_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError:
        raise RuntimeError(f"Environment variable {name} must be a number, got {value!r}") from None


@dataclass(frozen=True, slots=True)
class Settings:
    supabase_url: Optional[str]
    supabase_key: Optional[str]
    db_timeout_seconds: float

    smtp_host: Optional[str]
    smtp_port: int
    smtp_username: Optional[str]
    smtp_password: Optional[str]
    smtp_from_email: Optional[str]
    smtp_use_tls: bool
    smtp_timeout_seconds: float
    notifier_workers: int

    auth_cookie_name: str
    currency: str
    log_level: str
    cors_origins: Tuple[str, ...]
    reconcile_interval_minutes: int

    @property
    def email_enabled(self) -> bool:
        return bool(self.smtp_host and (self.smtp_from_email or self.smtp_username))


def load_settings() -> Settings:
    origins = os.getenv("CORS_ORIGINS", "*")
    return Settings(
        supabase_url=os.getenv("SUPABASE_URL"),
        supabase_key=os.getenv("SUPABASE_KEY"),
        db_timeout_seconds=_get_float("DB_TIMEOUT_SECONDS", 10.0),
        smtp_host=os.getenv("SMTP_HOST"),
        smtp_port=_get_int("SMTP_PORT", 587),
        smtp_username=os.getenv("SMTP_USERNAME"),
        smtp_password=os.getenv("SMTP_PASSWORD"),
        smtp_from_email=os.getenv("SMTP_FROM_EMAIL"),
        smtp_use_tls=_get_bool("SMTP_USE_TLS", True),
        smtp_timeout_seconds=_get_float("SMTP_TIMEOUT_SECONDS", 10.0),
        notifier_workers=_get_int("NOTIFIER_WORKERS", 2),
        auth_cookie_name=os.getenv("AUTH_COOKIE_NAME", "auth_session"),
        currency=os.getenv("CURRENCY", "INR"),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        cors_origins=tuple(o.strip() for o in origins.split(",") if o.strip()),
        reconcile_interval_minutes=_get_int("RECONCILE_INTERVAL_MINUTES", 15),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()


__all__ = ["Settings", "get_settings", "load_settings"]
