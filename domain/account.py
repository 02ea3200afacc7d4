"""
Domain: Customer accounts as seen by the booking flow.

Represents the authenticated caller behind a request session. Session
issuance itself happens elsewhere; this service only reads the result.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from .time import require_utc_timestamp

ADMIN_ROLE = "admin"


@dataclass(frozen=True, slots=True)
class Account:
    """
    Account resolved from a session.

    Supports:
    - Activation tracking (accounts must be activated before booking)
    - Role lookup (the admin role unlocks back office operations)
    """

    user_id: str
    email: str
    is_activated: bool = True
    role: Optional[str] = None
    session_expires_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.session_expires_at is not None:
            require_utc_timestamp("session_expires_at", self.session_expires_at)

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE

    def can_book(self) -> bool:
        """Check if the account may create bookings."""
        return self.is_activated
