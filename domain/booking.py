"""
Domain: Bookings and the booking status state machine.

Rules implemented here:
- A Booking references exactly one Slot (resolved by trek + date at creation)
  and never stores capacity itself.
- participants is a positive integer between 1 and 20.
- Counting set: bookings in pending, pending_approval, approved or confirmed
  hold inventory. cancelled and completed do not.
- Terminal statuses (cancelled, completed) admit no outgoing transition.

Transition table:

    (none)                     -> pending_approval
    pending_approval / pending -> approved
    approved / pending_approval -> confirmed
    any non-terminal           -> cancelled
    confirmed                  -> completed

This module contains only pure domain entities: no I/O, no database, no frameworks.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import FrozenSet, Iterable, Mapping, Optional

from .errors import ForbiddenError, InvalidTransitionError, ValidationError
from .time import require_utc_timestamp

MIN_PARTICIPANTS = 1
MAX_PARTICIPANTS = 20


class BookingStatus(str, Enum):
    PENDING = "pending"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"

    @property
    def holds_inventory(self) -> bool:
        return self in COUNTING_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


class PaymentStatus(str, Enum):
    NOT_REQUIRED = "not_required"
    PENDING = "pending"
    PAID = "paid"
    REFUNDED = "refunded"
    FAILED = "failed"


class ActorRole(str, Enum):
    ADMIN = "admin"
    CUSTOMER = "customer"
    PAYMENT = "payment"


INITIAL_STATUS = BookingStatus.PENDING_APPROVAL

COUNTING_STATUSES: FrozenSet[BookingStatus] = frozenset(
    {
        BookingStatus.PENDING,
        BookingStatus.PENDING_APPROVAL,
        BookingStatus.APPROVED,
        BookingStatus.CONFIRMED,
    }
)

TERMINAL_STATUSES: FrozenSet[BookingStatus] = frozenset(
    {BookingStatus.CANCELLED, BookingStatus.COMPLETED}
)

ALLOWED_TRANSITIONS: Mapping[BookingStatus, FrozenSet[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.APPROVED, BookingStatus.CANCELLED}),
    BookingStatus.PENDING_APPROVAL: frozenset(
        {BookingStatus.APPROVED, BookingStatus.CONFIRMED, BookingStatus.CANCELLED}
    ),
    BookingStatus.APPROVED: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED}),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.COMPLETED: frozenset(),
}


@dataclass(frozen=True, slots=True)
class Actor:
    """Who is asking for a transition."""

    role: ActorRole
    user_id: Optional[str] = None

    @staticmethod
    def admin(user_id: Optional[str] = None) -> "Actor":
        return Actor(role=ActorRole.ADMIN, user_id=user_id)

    @staticmethod
    def customer(user_id: str) -> "Actor":
        return Actor(role=ActorRole.CUSTOMER, user_id=user_id)

    @staticmethod
    def payment() -> "Actor":
        return Actor(role=ActorRole.PAYMENT)


@dataclass(frozen=True, slots=True)
class CustomerDetails:
    name: str
    email: str
    phone: Optional[str] = None
    special_requirements: Optional[str] = None
    pickup_location: Optional[str] = None


@dataclass(frozen=True, slots=True)
class LegalConsent:
    terms_accepted: bool = False
    liability_waiver_accepted: bool = False
    fitness_consent: bool = False

    def require_mandatory(self) -> None:
        missing = []
        if not self.terms_accepted:
            missing.append("terms_accepted")
        if not self.liability_waiver_accepted:
            missing.append("liability_waiver_accepted")
        if missing:
            raise ValidationError(f"Required consent not given: {', '.join(missing)}")


@dataclass(frozen=True, slots=True)
class Booking:
    """
    Immutable snapshot of a booking row.

    Once status is terminal the booking never re-enters the counting pool.
    """

    booking_id: str
    trek_key: str
    slot_id: str
    booking_date: date
    participants: int
    status: BookingStatus
    payment_status: PaymentStatus
    total_amount: Decimal
    customer: CustomerDetails
    consent: LegalConsent = field(default_factory=LegalConsent)
    discount_amount: Decimal = Decimal("0")
    voucher_id: Optional[str] = None
    user_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.created_at is not None:
            require_utc_timestamp("created_at", self.created_at)
        if self.updated_at is not None:
            require_utc_timestamp("updated_at", self.updated_at)

    @property
    def holds_inventory(self) -> bool:
        return self.status.holds_inventory

    def is_owned_by(self, user_id: Optional[str]) -> bool:
        return user_id is not None and self.user_id == user_id


@dataclass(frozen=True, slots=True)
class BookingDraft:
    """A booking that passed admission and is about to be inserted."""

    trek_key: str
    slot_id: str
    booking_date: date
    participants: int
    total_amount: Decimal
    customer: CustomerDetails
    consent: LegalConsent
    user_id: Optional[str]
    discount_amount: Decimal = Decimal("0")
    voucher_id: Optional[str] = None
    status: BookingStatus = BookingStatus.PENDING_APPROVAL
    payment_status: PaymentStatus = PaymentStatus.NOT_REQUIRED


def validate_participants(participants: int) -> None:
    if isinstance(participants, bool) or not isinstance(participants, int):
        raise ValidationError("Number of participants must be a whole number")
    if participants < MIN_PARTICIPANTS or participants > MAX_PARTICIPANTS:
        raise ValidationError(
            f"Number of participants must be between {MIN_PARTICIPANTS} and {MAX_PARTICIPANTS}"
        )


def is_transition_allowed(current: BookingStatus, target: BookingStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def check_transition(booking: Booking, target: BookingStatus, actor: Actor) -> None:
    """
    Raise unless `actor` may move `booking` to `target`.

    - InvalidTransitionError when the pair is not in the transition table
      (this covers every attempt to leave a terminal status).
    - ForbiddenError when the pair is valid but the actor may not perform it:
      customers may only cancel their own bookings and the payment actor may
      only confirm.
    """

    current = booking.status
    if current.is_terminal:
        raise InvalidTransitionError(current.value, target.value, "booking is in a terminal status")
    if not is_transition_allowed(current, target):
        raise InvalidTransitionError(current.value, target.value)

    if actor.role == ActorRole.ADMIN:
        return
    if actor.role == ActorRole.PAYMENT:
        if target != BookingStatus.CONFIRMED:
            raise ForbiddenError("Payment completion can only confirm a booking")
        return
    if actor.role == ActorRole.CUSTOMER:
        if target != BookingStatus.CANCELLED:
            raise ForbiddenError("Customers may only cancel their bookings")
        if not booking.is_owned_by(actor.user_id):
            raise ForbiddenError("You can only cancel your own bookings")
        return
    raise ForbiddenError(f"Unknown actor role: {actor.role}")


def changes_counting_membership(current: BookingStatus, target: BookingStatus) -> bool:
    return current.holds_inventory != target.holds_inventory


def compute_booked_count(rows: Iterable[tuple[BookingStatus, int]]) -> int:
    """
    Sum participants over bookings whose status is in the counting set.

    This is the single source of truth for a slot's booked value.
    """

    return sum(max(0, participants) for status, participants in rows if status in COUNTING_STATUSES)


__all__ = [
    "ALLOWED_TRANSITIONS",
    "COUNTING_STATUSES",
    "INITIAL_STATUS",
    "MAX_PARTICIPANTS",
    "MIN_PARTICIPANTS",
    "TERMINAL_STATUSES",
    "Actor",
    "ActorRole",
    "Booking",
    "BookingDraft",
    "BookingStatus",
    "CustomerDetails",
    "LegalConsent",
    "PaymentStatus",
    "changes_counting_membership",
    "check_transition",
    "compute_booked_count",
    "is_transition_allowed",
    "validate_participants",
]
