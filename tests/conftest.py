"""
Pytest configuration and shared fixtures.

This file adds the parent directory to the Python path so that tests
can import from the domain, repositories, services and api packages, and
wires every repository and service over an in-memory datastore.
"""

import sys
from pathlib import Path

import pytest

# Add the project root to the Python path
# so tests can import domain, repositories, etc.
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from factories import NOW, RecordingNotifier  # noqa: E402
from fake_supabase import FakeSupabase  # noqa: E402

from repositories.account_repository import AccountRepository  # noqa: E402
from repositories.booking_repository import BookingRepository  # noqa: E402
from repositories.slot_repository import SlotRepository  # noqa: E402
from repositories.trek_repository import TrekRepository  # noqa: E402
from repositories.voucher_repository import VoucherRepository  # noqa: E402
from services.booking_service import BookingLifecycleManager  # noqa: E402
from services.reconciliation_service import CapacityReconciler  # noqa: E402
from services.slot_service import SlotService  # noqa: E402
from services.voucher_service import VoucherEngine  # noqa: E402


@pytest.fixture
def db() -> FakeSupabase:
    return FakeSupabase(
        unique={
            "trek_slots": [("trek_slug", "date")],
            "vouchers": [("code",)],
        }
    )


@pytest.fixture
def slot_repo(db) -> SlotRepository:
    return SlotRepository(db)


@pytest.fixture
def booking_repo(db) -> BookingRepository:
    return BookingRepository(db)


@pytest.fixture
def voucher_repo(db) -> VoucherRepository:
    return VoucherRepository(db)


@pytest.fixture
def account_repo(db) -> AccountRepository:
    return AccountRepository(db)


@pytest.fixture
def reconciler(slot_repo, booking_repo) -> CapacityReconciler:
    return CapacityReconciler(slot_repo, booking_repo)


@pytest.fixture
def vouchers(voucher_repo) -> VoucherEngine:
    return VoucherEngine(voucher_repo, clock=lambda: NOW)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def manager(db, slot_repo, booking_repo, vouchers, reconciler, notifier) -> BookingLifecycleManager:
    return BookingLifecycleManager(
        slots=slot_repo,
        bookings=booking_repo,
        treks=TrekRepository(db),
        vouchers=vouchers,
        reconciler=reconciler,
        notifier=notifier,
    )


@pytest.fixture
def slot_service(slot_repo, booking_repo, reconciler) -> SlotService:
    return SlotService(slot_repo, booking_repo, reconciler)

