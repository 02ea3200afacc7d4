"""
Domain: error taxonomy for slots, bookings and vouchers.

Every error carries the HTTP status the API layer should answer with, so the
routers never have to re-classify failures:

- Validation errors (400): reported synchronously, never retried.
- Not-found errors (404): surfaced verbatim to the caller.
- Conflict errors (400/409): must name the conflicting rule.
- Dependency errors (500): datastore failures on the critical path.

Drift between a slot's stored and computed booked count is deliberately not
represented here; it is a normal condition surfaced only by audit reports.
"""

from __future__ import annotations

from typing import Optional


class BookingError(Exception):
    """Base class for every error this service reports to callers."""

    status_code: int = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(BookingError):
    status_code = 400


class NotAuthenticatedError(BookingError):
    status_code = 401

    def __init__(self, message: str = "Not authenticated."):
        super().__init__(message)


class ForbiddenError(BookingError):
    status_code = 403


class AccountNotActivatedError(ForbiddenError):
    def __init__(self) -> None:
        super().__init__("Please activate your account via the email link before booking.")


class NotFoundError(BookingError):
    status_code = 404


class SlotNotFoundError(NotFoundError):
    pass


class BookingNotFoundError(NotFoundError):
    def __init__(self, booking_id: str):
        self.booking_id = booking_id
        super().__init__(f"Booking not found: {booking_id}")


class VoucherNotFoundError(NotFoundError):
    def __init__(self, message: str = "Invalid voucher code"):
        super().__init__(message)


class TrekNotFoundError(NotFoundError):
    def __init__(self, trek_key: str):
        self.trek_key = trek_key
        super().__init__(f"Trek not found: {trek_key}")


class ConflictError(BookingError):
    status_code = 409


class InvalidTransitionError(ConflictError):
    def __init__(self, current: str, target: str, reason: Optional[str] = None):
        self.current = current
        self.target = target
        message = f"Invalid status transition from '{current}' to '{target}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class SlotFullError(ConflictError):
    """Raised by the advisory admission check when a slot has no room left."""

    status_code = 400

    def __init__(self, requested: int, available: int):
        self.requested = requested
        self.available = available
        super().__init__(
            f"Not enough places left on this date. Requested: {requested}, Available: {available}"
        )


class SlotInUseError(ConflictError):
    pass


class DuplicateSlotError(ConflictError):
    def __init__(self, trek_key: str, date: str):
        super().__init__(f"A slot already exists for {trek_key} on {date}")


class VoucherRejectedError(ConflictError):
    """Voucher exists but fails an eligibility rule (owner, expiry, minimum amount)."""

    status_code = 400


class VoucherAlreadyUsedError(ConflictError):
    def __init__(self, message: str = "This voucher has already been used"):
        super().__init__(message)


class DuplicateVoucherError(ConflictError):
    status_code = 400

    def __init__(self, code: str):
        super().__init__(f"Voucher code already exists: {code}")


class DataStoreError(BookingError):
    status_code = 500


__all__ = [
    "AccountNotActivatedError",
    "BookingError",
    "BookingNotFoundError",
    "ConflictError",
    "DataStoreError",
    "DuplicateSlotError",
    "DuplicateVoucherError",
    "ForbiddenError",
    "InvalidTransitionError",
    "NotAuthenticatedError",
    "NotFoundError",
    "SlotFullError",
    "SlotInUseError",
    "SlotNotFoundError",
    "TrekNotFoundError",
    "ValidationError",
    "VoucherAlreadyUsedError",
    "VoucherNotFoundError",
    "VoucherRejectedError",
]
