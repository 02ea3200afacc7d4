"""
UTC clock helpers shared by the domain model and the services.

Every instant this service stores or compares (created_at, valid_until,
session expiry) is UTC. Slot and booking dates are plain calendar dates
and never pass through here.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from .errors import ValidationError


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def require_utc_timestamp(name: str, value: datetime) -> None:
    """Raise ValueError unless `value` is timezone-aware with offset 0."""

    if value.tzinfo is None or value.utcoffset() is None:
        raise ValueError(f"{name} must be timezone-aware (UTC)")
    if value.utcoffset() != timedelta(0):
        raise ValueError(f"{name} must be a UTC timestamp (offset 0)")


def as_utc(value: datetime, label: str) -> datetime:
    """
    Convert caller input to UTC.

    Naive datetimes are rejected rather than guessed at: an operator in IST
    and a server in UTC would read them differently.
    """

    if value.tzinfo is None or value.utcoffset() is None:
        raise ValidationError(f"{label} must include a timezone")
    return value.astimezone(timezone.utc)
