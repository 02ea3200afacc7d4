"""
Shared row conversion and query execution helpers for repositories.

Supabase returns ISO-8601 strings for timestamps (sometimes with a trailing
'Z'), plain strings for dates and numbers or strings for numerics. These
helpers turn them into the types the domain model expects and turn client
failures into DataStoreError.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, List, Mapping, Optional

import httpx
from postgrest.exceptions import APIError

from domain.errors import DataStoreError
from domain.time import require_utc_timestamp

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"


class UniqueViolation(DataStoreError):
    """The datastore rejected a write because of a unique constraint."""


def to_iso_utc(dt: datetime, *, name: str) -> str:
    """Serialize a UTC datetime to ISO-8601 (timezone-aware, offset 0)."""

    require_utc_timestamp(name, dt)
    return dt.astimezone(timezone.utc).isoformat()


def parse_utc_datetime(value: Any) -> datetime:
    """
    Parse a Supabase timestamp into a timezone-aware UTC datetime.

    Supabase commonly returns ISO-8601 strings, sometimes with a trailing 'Z'.
    """

    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    else:
        raise TypeError(f"Unsupported timestamp type: {type(value)!r}")

    if dt.tzinfo is None or dt.utcoffset() is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_optional_datetime(value: Any) -> Optional[datetime]:
    return parse_utc_datetime(value) if value else None


def parse_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value[:10])
    raise TypeError(f"Unsupported date type: {type(value)!r}")


def to_decimal(value: Any, default: Optional[Decimal] = None) -> Optional[Decimal]:
    if value is None or value == "":
        return default
    return Decimal(str(value))


def money(value: Decimal) -> str:
    return str(value)


def execute(query: Any, action: str) -> List[Mapping[str, Any]]:
    """
    Execute a PostgREST query and return its rows.

    Raises:
    - UniqueViolation when a unique constraint rejected the write
    - DataStoreError for any other client or server failure
    """

    try:
        response = query.execute()
    except APIError as exc:
        code = getattr(exc, "code", None)
        if str(code) == UNIQUE_VIOLATION:
            raise UniqueViolation(f"Failed to {action}: duplicate key") from exc
        logger.error(
            f"Datastore call failed: {action}",
            extra={"action": action, "code": code, "detail": getattr(exc, "message", str(exc))},
        )
        raise DataStoreError(f"Failed to {action}") from exc
    except httpx.HTTPError as exc:
        # Transport failures (timeouts, connection resets) from the HTTP layer.
        logger.error(f"Datastore unreachable: {action}", extra={"action": action, "detail": str(exc)})
        raise DataStoreError(f"Failed to {action}") from exc

    error = getattr(response, "error", None)
    if error:
        if str(getattr(error, "code", None)) == UNIQUE_VIOLATION:
            raise UniqueViolation(f"Failed to {action}: duplicate key")
        raise DataStoreError(f"Failed to {action}: {error}")

    return list(getattr(response, "data", None) or [])


__all__ = [
    "UniqueViolation",
    "execute",
    "money",
    "parse_date",
    "parse_optional_datetime",
    "parse_utc_datetime",
    "to_decimal",
    "to_iso_utc",
]
