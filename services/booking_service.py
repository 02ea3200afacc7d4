"""
Booking lifecycle manager.

Owns the booking status state machine:

    pending_approval -> approved -> confirmed -> completed
    pending_approval -> confirmed              (payment completion)
    pending          -> approved               (legacy entry status)
    any non-terminal -> cancelled

Handles:
- Admission of new bookings (participant bounds, consent, account
  activation, slot resolution, advisory capacity check, voucher redemption)
- Status transitions applied with a conditional update, so side effects of
  a transition fire at most once
- Reconciliation of the affected slot whenever counting membership changes
- Customer notifications, handed off fire-and-forget

Failure policy:
- Validation, not-found, conflict and datastore-write errors reach the caller.
- Reconciliation and notification failures are logged only. A committed
  booking or status change is never rolled back because of them; the audit
  report and the reconciliation sweep correct any leftover drift.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import List, Optional

from domain.account import Account
from domain.booking import (
    INITIAL_STATUS,
    Actor,
    ActorRole,
    Booking,
    BookingDraft,
    BookingStatus,
    CustomerDetails,
    LegalConsent,
    PaymentStatus,
    changes_counting_membership,
    check_transition,
    validate_participants,
)
from domain.errors import (
    AccountNotActivatedError,
    BookingNotFoundError,
    DataStoreError,
    InvalidTransitionError,
    SlotFullError,
    SlotNotFoundError,
    TrekNotFoundError,
    ValidationError,
)
from repositories.booking_repository import BookingRepository
from repositories.slot_repository import SlotRepository
from repositories.trek_repository import TrekRepository
from services.notification_service import Notification, NotificationEvent, Notifier
from services.reconciliation_service import CapacityReconciler
from services.voucher_service import AppliedVoucher, VoucherEngine

logger = logging.getLogger(__name__)

_TRANSITION_EVENTS = {
    BookingStatus.APPROVED: NotificationEvent.BOOKING_APPROVED,
    BookingStatus.CONFIRMED: NotificationEvent.BOOKING_CONFIRMED,
    BookingStatus.CANCELLED: NotificationEvent.BOOKING_CANCELLED,
}


@dataclass(frozen=True, slots=True)
class BookingRequest:
    """
    Validated input for creating a booking.

    customer_email is not part of the request: it always comes from the
    caller's account.
    """

    trek_key: str
    date: date
    participants: int
    customer_name: str
    customer_phone: Optional[str] = None
    special_requirements: Optional[str] = None
    pickup_location: Optional[str] = None
    consent: LegalConsent = field(default_factory=LegalConsent)
    voucher_code: Optional[str] = None


class BookingLifecycleManager:
    def __init__(
        self,
        *,
        slots: SlotRepository,
        bookings: BookingRepository,
        treks: TrekRepository,
        vouchers: VoucherEngine,
        reconciler: CapacityReconciler,
        notifier: Notifier,
    ):
        self._slots = slots
        self._bookings = bookings
        self._treks = treks
        self._vouchers = vouchers
        self._reconciler = reconciler
        self._notifier = notifier

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_booking(self, request: BookingRequest, account: Account) -> Booking:
        """
        Admit and store a new booking in pending_approval.

        Process:
        1. Validate participants (1-20), customer name and mandatory consent
        2. Require an activated account
        3. Resolve the open slot for trek + date (SlotNotFoundError otherwise)
        4. Advisory capacity check against the cached counter (SlotFullError)
        5. Price the booking and redeem the voucher, if any
        6. Insert the booking (the voucher use is given back if this fails)
        7. Reconcile the slot and emit booking_received

        The capacity check reads the cached counter without a lock. Under
        concurrent load two bookings can both pass it; reconciliation then
        records the overbooking and the audit report surfaces it.
        """

        validate_participants(request.participants)
        if not request.customer_name or not request.customer_name.strip():
            raise ValidationError("Customer name is required")
        request.consent.require_mandatory()

        if not account.can_book():
            raise AccountNotActivatedError()

        slot = self._slots.find_by_trek_and_date(request.trek_key, request.date)
        if slot is None or not slot.is_open:
            raise SlotNotFoundError("Selected date is not available for booking.")
        if not slot.has_room_for(request.participants):
            raise SlotFullError(requested=request.participants, available=slot.available)

        trek = self._treks.get(request.trek_key)
        if trek is None:
            raise TrekNotFoundError(request.trek_key)
        amount = trek.price * request.participants

        applied: Optional[AppliedVoucher] = None
        if request.voucher_code:
            applied = self._vouchers.apply(request.voucher_code, amount, account.user_id)

        draft = BookingDraft(
            trek_key=request.trek_key,
            slot_id=slot.slot_id,
            booking_date=slot.date,
            participants=request.participants,
            total_amount=applied.discount.final_amount if applied else amount,
            discount_amount=applied.discount.discount_amount if applied else Decimal("0"),
            voucher_id=applied.voucher.voucher_id if applied else None,
            customer=CustomerDetails(
                name=request.customer_name.strip(),
                email=account.email,
                phone=request.customer_phone,
                special_requirements=request.special_requirements,
                pickup_location=request.pickup_location,
            ),
            consent=request.consent,
            user_id=account.user_id,
            status=INITIAL_STATUS,
            payment_status=PaymentStatus.NOT_REQUIRED,
        )

        try:
            booking = self._bookings.insert(draft)
        except Exception:
            if applied is not None:
                self._release_quietly(applied)
            raise

        logger.info(
            f"Created booking {booking.booking_id} for {booking.participants} on slot {slot.slot_id}",
            extra={
                "booking_id": booking.booking_id,
                "slot_id": slot.slot_id,
                "trek_key": booking.trek_key,
                "participants": booking.participants,
                "voucher_id": booking.voucher_id,
            },
        )

        if applied is not None:
            try:
                self._vouchers.attach_booking(applied.voucher, booking.booking_id)
            except DataStoreError:
                logger.warning(
                    "Could not link voucher to booking",
                    extra={"voucher_id": applied.voucher.voucher_id, "booking_id": booking.booking_id},
                )

        self._reconcile(slot.slot_id, booking.booking_id)
        self._notify(NotificationEvent.BOOKING_RECEIVED, booking, trek_name=trek.name)
        return booking

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def transition(
        self,
        booking_id: str,
        target: BookingStatus,
        actor: Actor,
        *,
        payment_status: Optional[PaymentStatus] = None,
    ) -> Booking:
        """
        Move a booking to `target`.

        Raises:
        - BookingNotFoundError for an unknown id
        - InvalidTransitionError when the pair is not in the table, or when a
          concurrent request changed the status first
        - ForbiddenError when the actor may not perform the transition

        When counting membership changes the slot is reconciled before this
        returns, so the caller observes consistent capacity.
        """

        booking = self.get_booking(booking_id)
        check_transition(booking, target, actor)

        if target == BookingStatus.CONFIRMED and payment_status is None and actor.role == ActorRole.PAYMENT:
            payment_status = PaymentStatus.PAID
        if target != BookingStatus.CONFIRMED and payment_status is not None and actor.role != ActorRole.ADMIN:
            raise ValidationError("Payment status can only change when a booking is confirmed")

        updated = self._bookings.update_status(
            booking_id, expected=booking.status, status=target, payment_status=payment_status
        )
        if updated is None:
            latest = self._bookings.get(booking_id)
            current = latest.status.value if latest else booking.status.value
            raise InvalidTransitionError(current, target.value, "booking was modified by another request")

        logger.info(
            f"Booking {booking_id}: {booking.status.value} -> {target.value}",
            extra={
                "booking_id": booking_id,
                "from_status": booking.status.value,
                "to_status": target.value,
                "actor": actor.role.value,
                "actor_id": actor.user_id,
            },
        )

        if changes_counting_membership(booking.status, target):
            self._reconcile(updated.slot_id, booking_id)

        event = _TRANSITION_EVENTS.get(target)
        if event is not None:
            self._notify(event, updated)
        return updated

    def delete_booking(self, booking_id: str) -> Booking:
        """Remove a booking row, then let the reconciler free its capacity."""

        deleted = self._bookings.delete(booking_id)
        if deleted is None:
            raise BookingNotFoundError(booking_id)
        logger.info(
            f"Deleted booking {booking_id}",
            extra={"booking_id": booking_id, "slot_id": deleted.slot_id, "status": deleted.status.value},
        )
        if deleted.holds_inventory:
            self._reconcile(deleted.slot_id, booking_id)
        return deleted

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_booking(self, booking_id: str) -> Booking:
        booking = self._bookings.get(booking_id)
        if booking is None:
            raise BookingNotFoundError(booking_id)
        return booking

    def list_for_user(self, user_id: str) -> List[Booking]:
        return self._bookings.list_by_user(user_id)

    def list_all(self, status: Optional[BookingStatus] = None) -> List[Booking]:
        return self._bookings.list_all(status)

    # ------------------------------------------------------------------
    # Side effects
    # ------------------------------------------------------------------

    def _reconcile(self, slot_id: str, booking_id: str) -> None:
        result = self._reconciler.reconcile_one(slot_id)
        if not result.success:
            logger.warning(
                f"Slot {slot_id} not reconciled after booking change: {result.error}",
                extra={"slot_id": slot_id, "booking_id": booking_id},
            )

    def _notify(self, event: NotificationEvent, booking: Booking, trek_name: Optional[str] = None) -> None:
        if trek_name is None:
            trek_name = self._trek_name(booking.trek_key)
        message = Notification(event=event, booking=booking, trek_name=trek_name)
        try:
            self._notifier.send(message)
        except Exception as exc:
            logger.warning(
                f"Notifier rejected {event.value}: {exc}",
                extra={"event": event.value, "booking_id": booking.booking_id},
            )

    def _trek_name(self, trek_key: str) -> str:
        try:
            trek = self._treks.get(trek_key)
        except DataStoreError:
            return trek_key
        return trek.name if trek else trek_key

    def _release_quietly(self, applied: AppliedVoucher) -> None:
        try:
            self._vouchers.release(applied.voucher)
        except DataStoreError:
            logger.error(
                "Could not release voucher after failed booking insert",
                extra={"voucher_id": applied.voucher.voucher_id},
            )


__all__ = ["BookingLifecycleManager", "BookingRequest"]
