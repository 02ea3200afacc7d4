"""
Dependency wiring for the API.

Routers never build repositories or services themselves; they ask for them
here through FastAPI `Depends`. Tests replace `get_services` and the session
lookup with `app.dependency_overrides`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from fastapi import Depends, Request
from supabase import Client

from domain.account import Account
from domain.errors import ForbiddenError, NotAuthenticatedError
from domain.time import utc_now
from repositories.account_repository import AccountRepository
from repositories.booking_repository import BookingRepository
from repositories.client import get_supabase_client
from repositories.slot_repository import SlotRepository
from repositories.trek_repository import TrekRepository
from repositories.voucher_repository import VoucherRepository
from services.booking_export_service import BookingExportService
from services.booking_service import BookingLifecycleManager
from services.notification_service import BackgroundNotifier, EmailNotifier, Notifier
from services.reconciliation_service import CapacityReconciler
from services.slot_service import SlotService
from services.voucher_service import VoucherEngine
from settings import get_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Services:
    accounts: AccountRepository
    reconciler: CapacityReconciler
    bookings: BookingLifecycleManager
    vouchers: VoucherEngine
    slots: SlotService
    exports: BookingExportService


def build_services(client: Client, notifier: Notifier) -> Services:
    """Assemble every service over one datastore client."""

    slot_repo = SlotRepository(client)
    booking_repo = BookingRepository(client)
    reconciler = CapacityReconciler(slot_repo, booking_repo)
    vouchers = VoucherEngine(VoucherRepository(client))
    return Services(
        accounts=AccountRepository(client),
        reconciler=reconciler,
        bookings=BookingLifecycleManager(
            slots=slot_repo,
            bookings=booking_repo,
            treks=TrekRepository(client),
            vouchers=vouchers,
            reconciler=reconciler,
            notifier=notifier,
        ),
        vouchers=vouchers,
        slots=SlotService(slot_repo, booking_repo, reconciler),
        exports=BookingExportService(booking_repo),
    )


@lru_cache(maxsize=1)
def get_notifier() -> BackgroundNotifier:
    settings = get_settings()
    return BackgroundNotifier(EmailNotifier(settings), max_workers=settings.notifier_workers)


def shutdown_notifier() -> None:
    """Drain queued notifications if the notifier was ever started."""

    if get_notifier.cache_info().currsize:
        get_notifier().shutdown(wait=True)
        get_notifier.cache_clear()


@lru_cache(maxsize=1)
def get_services() -> Services:
    return build_services(get_supabase_client(), get_notifier())


class SessionLookup:
    """
    Resolve the caller's account from the session cookie.

    Raises NotAuthenticatedError when the cookie is missing, the session is
    unknown or expired, or the user row is gone.
    """

    def __call__(self, request: Request, services: Services = Depends(get_services)) -> Account:
        session_id: Optional[str] = request.cookies.get(get_settings().auth_cookie_name)
        if not session_id:
            raise NotAuthenticatedError()

        user_id = services.accounts.get_session_user_id(session_id, now=utc_now())
        if user_id is None:
            raise NotAuthenticatedError("Session expired. Please log in again.")

        account = services.accounts.get_account(user_id)
        if account is None:
            logger.warning("Session refers to a missing user", extra={"user_id": user_id})
            raise NotAuthenticatedError()
        return account


get_current_account = SessionLookup()


def require_admin(account: Account = Depends(get_current_account)) -> Account:
    if not account.is_admin:
        raise ForbiddenError("Admin access required")
    return account


__all__ = [
    "Services",
    "SessionLookup",
    "build_services",
    "get_current_account",
    "get_notifier",
    "get_services",
    "require_admin",
    "shutdown_notifier",
]
