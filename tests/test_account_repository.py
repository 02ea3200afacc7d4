"""
Tests for `repositories/account_repository.py`.
"""

from datetime import timedelta

from domain.account import ADMIN_ROLE
from factories import NOW, add_account


def test_live_session_resolves_user(db, account_repo) -> None:
    session_id = add_account(db, "user-7", expires_at=NOW + timedelta(days=1))

    assert account_repo.get_session_user_id(session_id, now=NOW) == "user-7"


def test_expired_or_unknown_session(db, account_repo) -> None:
    session_id = add_account(db, "user-7", expires_at=NOW - timedelta(minutes=1))

    assert account_repo.get_session_user_id(session_id, now=NOW) is None
    assert account_repo.get_session_user_id("nope", now=NOW) is None


def test_account_without_activation_row_is_activated(db, account_repo) -> None:
    add_account(db, "user-7", activated=None)

    account = account_repo.get_account("user-7")

    assert account is not None
    assert account.can_book()
    assert not account.is_admin


def test_inactive_account_cannot_book(db, account_repo) -> None:
    add_account(db, "user-7", activated=False)

    assert not account_repo.get_account("user-7").can_book()


def test_admin_role(db, account_repo) -> None:
    add_account(db, "admin-1", email="ops@example.com", role=ADMIN_ROLE)

    account = account_repo.get_account("admin-1")

    assert account.email == "ops@example.com"
    assert account.is_admin


def test_missing_user(account_repo) -> None:
    assert account_repo.get_account("ghost") is None
