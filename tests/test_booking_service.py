"""
Tests for `services/booking_service.py`.

Covers contract rules:
- A new booking starts in pending_approval and the slot's booked count
  follows it; cancelling frees the places again.
- The capacity check is advisory; a concurrent race can overbook a slot and
  the audit then reports it.
- Terminal bookings never transition again.
- pending_approval -> confirmed (payment completion) sends exactly one
  confirmation notification.
- Reconciliation and notification failures never fail a committed change.
- A voucher redeemed for a booking that could not be stored is released.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

import pytest

from domain.account import Account
from domain.booking import Actor, BookingStatus, LegalConsent, PaymentStatus
from domain.errors import (
    AccountNotActivatedError,
    BookingNotFoundError,
    DataStoreError,
    ForbiddenError,
    InvalidTransitionError,
    SlotFullError,
    SlotNotFoundError,
    TrekNotFoundError,
    ValidationError,
    VoucherAlreadyUsedError,
)
from factories import (
    TREK,
    TREK_DATE,
    USER_ID,
    RecordingNotifier,
    add_booking,
    add_slot,
    add_trek,
    add_voucher,
    gate,
)
from repositories.trek_repository import TrekRepository
from services.booking_service import BookingLifecycleManager, BookingRequest

ACCOUNT = Account(user_id=USER_ID, email="asha@example.com")
CONSENT = LegalConsent(terms_accepted=True, liability_waiver_accepted=True, fitness_consent=True)


def _request(participants: int = 4, **kwargs) -> BookingRequest:
    values = {
        "trek_key": TREK,
        "date": TREK_DATE,
        "participants": participants,
        "customer_name": "Asha Rawat",
        "consent": CONSENT,
    }
    values.update(kwargs)
    return BookingRequest(**values)


@pytest.fixture(autouse=True)
def trek(db) -> None:
    add_trek(db, price="2500")


def test_booking_holds_and_cancellation_frees_capacity(db, manager, notifier) -> None:
    slot_id = add_slot(db, capacity=10, booked=0)

    booking = manager.create_booking(_request(participants=4), ACCOUNT)

    assert booking.status == BookingStatus.PENDING_APPROVAL
    assert booking.slot_id == slot_id
    assert booking.customer.email == "asha@example.com"
    assert booking.total_amount == Decimal("10000")
    assert db.row("trek_slots", slot_id)["booked"] == 4

    cancelled = manager.transition(booking.booking_id, BookingStatus.CANCELLED, Actor.customer(USER_ID))

    assert cancelled.status == BookingStatus.CANCELLED
    assert db.row("trek_slots", slot_id)["booked"] == 0
    assert notifier.events() == ["booking_received", "booking_cancelled"]
    assert notifier.messages[0].trek_name == "Kedarkantha Winter Trek"


def test_full_slot_rejects_booking(db, manager) -> None:
    add_slot(db, capacity=5, booked=5)

    with pytest.raises(SlotFullError) as exc_info:
        manager.create_booking(_request(participants=1), ACCOUNT)

    assert exc_info.value.status_code == 400
    assert "Requested: 1, Available: 0" in exc_info.value.message
    assert db.rows("bookings") == []


def test_missing_or_closed_slot_is_not_found(db, manager) -> None:
    with pytest.raises(SlotNotFoundError):
        manager.create_booking(_request(), ACCOUNT)

    add_slot(db, status="closed")
    with pytest.raises(SlotNotFoundError):
        manager.create_booking(_request(), ACCOUNT)


def test_unactivated_account_cannot_book(db, manager) -> None:
    add_slot(db)
    account = Account(user_id=USER_ID, email="asha@example.com", is_activated=False)

    with pytest.raises(AccountNotActivatedError):
        manager.create_booking(_request(), account)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"participants": 0},
        {"participants": 21},
        {"customer_name": "  "},
        {"consent": LegalConsent(terms_accepted=True)},
    ],
)
def test_invalid_requests_are_rejected_before_any_write(db, manager, kwargs: dict) -> None:
    add_slot(db)

    with pytest.raises(ValidationError):
        manager.create_booking(_request(**kwargs), ACCOUNT)

    assert db.rows("bookings") == []


def test_unknown_trek_price_is_not_found(db, manager) -> None:
    add_slot(db, trek="unpriced-trek")

    with pytest.raises(TrekNotFoundError):
        manager.create_booking(_request(trek_key="unpriced-trek"), ACCOUNT)


def test_voucher_discount_is_applied_and_voucher_consumed(db, manager) -> None:
    add_slot(db)
    voucher_id = add_voucher(db, "WINTER20", discount_percent=20, maximum_discount="1500")

    booking = manager.create_booking(_request(participants=4, voucher_code="winter20"), ACCOUNT)

    assert booking.total_amount == Decimal("8500")
    assert booking.discount_amount == Decimal("1500")
    assert booking.voucher_id == voucher_id
    voucher = db.row("vouchers", voucher_id)
    assert voucher["is_used"] is True
    assert voucher["used_by"] == USER_ID
    assert voucher["booking_id"] == booking.booking_id


def test_used_voucher_fails_the_whole_booking(db, manager) -> None:
    add_slot(db)
    add_voucher(db, "WINTER20", is_used=True, current_uses=1)

    with pytest.raises(VoucherAlreadyUsedError):
        manager.create_booking(_request(voucher_code="WINTER20"), ACCOUNT)

    assert db.rows("bookings") == []


def test_voucher_is_released_when_booking_insert_fails(db, manager) -> None:
    add_slot(db)
    voucher_id = add_voucher(db, "WINTER20")
    db.fail("bookings", "insert")

    with pytest.raises(DataStoreError):
        manager.create_booking(_request(voucher_code="WINTER20"), ACCOUNT)

    voucher = db.row("vouchers", voucher_id)
    assert voucher["is_used"] is False
    assert voucher["current_uses"] == 0


def test_reconcile_failure_does_not_fail_booking(db, manager, reconciler) -> None:
    slot_id = add_slot(db, booked=0)
    db.fail("trek_slots", "update")

    booking = manager.create_booking(_request(participants=3), ACCOUNT)

    assert db.row("bookings", booking.booking_id) is not None
    assert db.row("trek_slots", slot_id)["booked"] == 0

    report = reconciler.audit_all()
    assert report.out_of_sync == 1


def test_notifier_failure_does_not_fail_transition(db, slot_repo, booking_repo, vouchers, reconciler) -> None:
    slot_id = add_slot(db)
    booking_id = add_booking(db, slot_id, participants=2)
    manager = BookingLifecycleManager(
        slots=slot_repo,
        bookings=booking_repo,
        treks=TrekRepository(db),
        vouchers=vouchers,
        reconciler=reconciler,
        notifier=RecordingNotifier(fail=True),
    )

    approved = manager.transition(booking_id, BookingStatus.APPROVED, Actor.admin())

    assert approved.status == BookingStatus.APPROVED


def test_terminal_bookings_cannot_transition(db, manager) -> None:
    slot_id = add_slot(db)
    cancelled_id = add_booking(db, slot_id, participants=2, status="cancelled")
    completed_id = add_booking(db, slot_id, participants=2, status="completed")

    for booking_id in (cancelled_id, completed_id):
        for target in (BookingStatus.APPROVED, BookingStatus.CONFIRMED, BookingStatus.CANCELLED):
            with pytest.raises(InvalidTransitionError):
                manager.transition(booking_id, target, Actor.admin())

    assert db.writes("bookings") == 0


def test_payment_confirmation_notifies_exactly_once(db, manager, notifier) -> None:
    slot_id = add_slot(db)
    booking_id = add_booking(db, slot_id, participants=2, status="pending_approval")

    confirmed = manager.transition(booking_id, BookingStatus.CONFIRMED, Actor.payment())

    assert confirmed.status == BookingStatus.CONFIRMED
    assert confirmed.payment_status == PaymentStatus.PAID
    assert notifier.events() == ["booking_confirmed"]

    with pytest.raises(InvalidTransitionError):
        manager.transition(booking_id, BookingStatus.CONFIRMED, Actor.payment())
    assert notifier.events() == ["booking_confirmed"]


def test_full_lifecycle_to_completed(db, manager, notifier) -> None:
    slot_id = add_slot(db, booked=3)
    booking_id = add_booking(db, slot_id, participants=3)

    manager.transition(booking_id, BookingStatus.APPROVED, Actor.admin())
    manager.transition(booking_id, BookingStatus.CONFIRMED, Actor.admin(), payment_status=PaymentStatus.PAID)
    assert db.row("trek_slots", slot_id)["booked"] == 3

    completed = manager.transition(booking_id, BookingStatus.COMPLETED, Actor.admin())

    assert completed.status == BookingStatus.COMPLETED
    assert completed.payment_status == PaymentStatus.PAID
    assert db.row("trek_slots", slot_id)["booked"] == 0
    assert notifier.events() == ["booking_approved", "booking_confirmed"]


def test_customer_cannot_approve_or_cancel_someone_elses_booking(db, manager) -> None:
    slot_id = add_slot(db)
    booking_id = add_booking(db, slot_id, participants=2, user_id="someone-else")

    with pytest.raises(ForbiddenError):
        manager.transition(booking_id, BookingStatus.CANCELLED, Actor.customer(USER_ID))
    with pytest.raises(ForbiddenError):
        manager.transition(booking_id, BookingStatus.APPROVED, Actor.customer("someone-else"))


def test_racing_transition_loses_without_side_effects(db, manager, notifier) -> None:
    slot_id = add_slot(db)
    booking_id = add_booking(db, slot_id, participants=2)
    raced = []

    def cancel_first() -> None:
        if not raced:
            raced.append(True)
            db.set("bookings", booking_id, status="cancelled")

    db.add_hook("bookings", "update", cancel_first)

    with pytest.raises(InvalidTransitionError, match="modified by another request"):
        manager.transition(booking_id, BookingStatus.APPROVED, Actor.admin())

    assert notifier.events() == []


def test_unknown_booking_is_not_found(manager) -> None:
    with pytest.raises(BookingNotFoundError):
        manager.transition("missing", BookingStatus.APPROVED, Actor.admin())
    with pytest.raises(BookingNotFoundError):
        manager.get_booking("missing")


def test_delete_booking_frees_capacity(db, manager) -> None:
    slot_id = add_slot(db, booked=5)
    booking_id = add_booking(db, slot_id, participants=5)

    manager.delete_booking(booking_id)

    assert db.rows("bookings") == []
    assert db.row("trek_slots", slot_id)["booked"] == 0


def test_list_bookings_by_user_and_status(db, manager) -> None:
    slot_id = add_slot(db)
    add_booking(db, slot_id, participants=1, user_id=USER_ID)
    add_booking(db, slot_id, participants=1, user_id="other", status="approved")

    assert len(manager.list_for_user(USER_ID)) == 1
    assert len(manager.list_all()) == 2
    assert [b.status for b in manager.list_all(BookingStatus.APPROVED)] == [BookingStatus.APPROVED]


def test_concurrent_bookings_can_overbook_and_audit_reports_it(db, manager, reconciler) -> None:
    slot_id = add_slot(db, capacity=1, booked=0)
    # Both requests pass the advisory check before either insert lands.
    db.add_hook("bookings", "insert", gate(2))

    with ThreadPoolExecutor(max_workers=2) as pool:
        futures = [pool.submit(manager.create_booking, _request(participants=1), ACCOUNT) for _ in range(2)]
        bookings = [f.result() for f in futures]

    assert len(bookings) == 2
    report = reconciler.audit_all()
    assert report.over_capacity == 1
    assert report.slots[0].computed == 2
    assert db.row("trek_slots", slot_id)["booked"] == 2


def test_concurrent_bookings_cannot_share_a_single_use_voucher(db, manager) -> None:
    add_slot(db, capacity=10)
    add_voucher(db, "WINTER20")
    db.add_hook("vouchers", "update", gate(2))

    def attempt():
        try:
            return manager.create_booking(_request(participants=1, voucher_code="WINTER20"), ACCOUNT)
        except VoucherAlreadyUsedError as exc:
            return exc

    with ThreadPoolExecutor(max_workers=2) as pool:
        outcomes = list(pool.map(lambda _: attempt(), range(2)))

    assert sum(isinstance(o, VoucherAlreadyUsedError) for o in outcomes) == 1
    assert len(db.rows("bookings")) == 1
