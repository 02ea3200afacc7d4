"""
Account repository for resolving request sessions to accounts.

Provides the read side of authentication: session row -> user -> activation
flag -> latest role. Session issuance and login live outside this service.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from supabase import Client

from domain.account import Account
from repositories.rows import execute, parse_optional_datetime


class AccountRepository:
    def __init__(self, client: Client):
        self._client = client

    def get_session_user_id(self, session_id: str, *, now: datetime) -> Optional[str]:
        """
        Return the user_id behind a live session.

        Returns None when the session does not exist or has expired.
        """

        rows = execute(
            self._client.table("user_session").select("id, user_id, expires_at").eq("id", session_id).limit(1),
            "fetch session",
        )
        if not rows:
            return None

        row = rows[0]
        expires_at = parse_optional_datetime(row.get("expires_at"))
        if expires_at is not None and expires_at < now:
            return None
        return str(row["user_id"])

    def get_account(self, user_id: str) -> Optional[Account]:
        """
        Get an account by its user id.

        Example:
            account = repo.get_account("5d0c...")
            if account and account.can_book():
                # Account may create bookings
        """

        users = execute(
            self._client.table("auth_user").select("id, email").eq("id", user_id).limit(1),
            "fetch user",
        )
        if not users:
            return None

        activation = execute(
            self._client.table("user_activation").select("is_activated").eq("user_id", user_id).limit(1),
            "fetch user activation",
        )
        roles = execute(
            self._client.table("user_roles")
            .select("role, assigned_at")
            .eq("user_id", user_id)
            .order("assigned_at", desc=True)
            .limit(1),
            "fetch user role",
        )

        return Account(
            user_id=str(users[0]["id"]),
            email=str(users[0]["email"]),
            # No activation row means the account predates activation emails.
            is_activated=bool(activation[0].get("is_activated", True)) if activation else True,
            role=str(roles[0]["role"]) if roles else None,
        )


__all__ = ["AccountRepository"]
