"""
Voucher engine: eligibility, discount math and redemption.

Handles:
- Validation of a code against owner, usage, expiry and minimum amount
- Discount calculation with maximum_discount clamping
- Redemption as a single conditional update, so two concurrent bookings can
  never both consume a single-use voucher
- Compensation (release) when the booking that consumed a voucher could not
  be stored
- Operator management of vouchers
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional

from domain.errors import (
    BookingError,
    ConflictError,
    DuplicateVoucherError,
    ValidationError,
    VoucherAlreadyUsedError,
    VoucherNotFoundError,
)
from domain.time import as_utc, utc_now
from domain.voucher import (
    DiscountCalculation,
    Voucher,
    calculate_discount,
    check_eligibility,
    normalize_code,
)
from repositories.rows import UniqueViolation
from repositories.voucher_repository import VoucherRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class VoucherValidation:
    """
    Result of validating a voucher code.

    valid: True if the voucher can be applied
    discount_amount / final_amount: set when an amount was supplied
    error: human-readable reason when valid is False
    """

    valid: bool
    voucher: Optional[Voucher] = None
    discount_amount: Optional[Decimal] = None
    final_amount: Optional[Decimal] = None
    error: Optional[str] = None


@dataclass(frozen=True, slots=True)
class AppliedVoucher:
    """A voucher that has been redeemed for a booking being created."""

    voucher: Voucher
    discount: DiscountCalculation


class VoucherEngine:
    def __init__(self, vouchers: VoucherRepository, clock: Callable[[], datetime] = utc_now):
        self._vouchers = vouchers
        self._clock = clock

    def validate(self, code: str, amount: Optional[Decimal], user_id: Optional[str]) -> VoucherValidation:
        """
        Check whether `code` may be applied by `user_id` to `amount`.

        Passing amount=None checks eligibility only (no minimum amount rule,
        no discount figures). Business rejections are returned, not raised;
        datastore failures still raise DataStoreError.

        Example:
            result = engine.validate("TREK20", Decimal("10000"), user_id)
            # result.discount_amount == Decimal("1500") when capped at 1500
        """

        voucher = self._vouchers.get_by_code(code)
        if voucher is None:
            return VoucherValidation(valid=False, error=VoucherNotFoundError().message)

        try:
            check_eligibility(voucher, amount=amount, user_id=user_id, now=self._clock())
        except BookingError as exc:
            return VoucherValidation(valid=False, voucher=voucher, error=exc.message)

        if amount is None:
            return VoucherValidation(valid=True, voucher=voucher)

        discount = calculate_discount(voucher, amount)
        return VoucherValidation(
            valid=True,
            voucher=voucher,
            discount_amount=discount.discount_amount,
            final_amount=discount.final_amount,
        )

    def apply(self, code: str, amount: Decimal, user_id: Optional[str]) -> AppliedVoucher:
        """
        Validate and redeem `code` in one step for a booking being created.

        Raises VoucherNotFoundError, VoucherRejectedError or
        VoucherAlreadyUsedError; the booking must then fail as a whole.
        """

        voucher = self._vouchers.get_by_code(code)
        if voucher is None:
            raise VoucherNotFoundError()

        check_eligibility(voucher, amount=amount, user_id=user_id, now=self._clock())
        discount = calculate_discount(voucher, amount)
        redeemed = self._mark_used(voucher, user_id=user_id, booking_id=None)
        return AppliedVoucher(voucher=redeemed, discount=discount)

    def redeem(self, voucher_id: str, booking_id: Optional[str], user_id: Optional[str]) -> Voucher:
        """
        Mark a voucher used for `booking_id`, if it is still eligible right now.

        Of two concurrent redeemers of a single-use voucher exactly one
        succeeds; the other gets VoucherAlreadyUsedError.
        """

        voucher = self._vouchers.get(voucher_id)
        if voucher is None:
            raise VoucherNotFoundError(f"Voucher not found: {voucher_id}")

        check_eligibility(voucher, amount=None, user_id=user_id, now=self._clock())
        return self._mark_used(voucher, user_id=user_id, booking_id=booking_id)

    def attach_booking(self, redeemed: Voucher, booking_id: str) -> None:
        self._vouchers.attach_booking(redeemed.voucher_id, booking_id)

    def release(self, redeemed: Voucher) -> None:
        """Give back a use taken by `apply` when the booking was not stored."""

        if self._vouchers.release(redeemed):
            logger.info(
                f"Released voucher {redeemed.code} after failed booking",
                extra={"voucher_id": redeemed.voucher_id},
            )
        else:
            logger.warning(
                f"Could not release voucher {redeemed.code}; usage changed since redemption",
                extra={"voucher_id": redeemed.voucher_id},
            )

    def _mark_used(self, voucher: Voucher, *, user_id: Optional[str], booking_id: Optional[str]) -> Voucher:
        redeemed = self._vouchers.mark_used(
            voucher, used_by=user_id, used_at=self._clock(), booking_id=booking_id
        )
        if redeemed is None:
            logger.info(
                f"Voucher {voucher.code} lost a redemption race",
                extra={"voucher_id": voucher.voucher_id, "user_id": user_id},
            )
            raise VoucherAlreadyUsedError()
        return redeemed

    # ------------------------------------------------------------------
    # Operator management
    # ------------------------------------------------------------------

    def list_vouchers(self) -> List[Voucher]:
        return self._vouchers.list_all()

    def create_voucher(
        self,
        *,
        code: str,
        discount_percent: int,
        valid_until: Optional[datetime] = None,
        user_id: Optional[str] = None,
        description: Optional[str] = None,
        minimum_amount: Optional[Decimal] = None,
        maximum_discount: Optional[Decimal] = None,
        max_uses: int = 1,
        is_active: bool = True,
    ) -> Voucher:
        normalized = normalize_code(code)
        if not normalized:
            raise ValidationError("Voucher code is required")
        if discount_percent < 1 or discount_percent > 100:
            raise ValidationError("Discount percentage must be between 1 and 100")
        if max_uses < 1:
            raise ValidationError("Max uses must be at least 1")
        if valid_until is not None:
            valid_until = as_utc(valid_until, "Valid until date")
            if valid_until <= self._clock():
                raise ValidationError("Valid until date must be in the future")
        if minimum_amount is not None and minimum_amount < 0:
            raise ValidationError("Minimum amount must be >= 0")
        if maximum_discount is not None and maximum_discount < 0:
            raise ValidationError("Maximum discount must be >= 0")

        try:
            return self._vouchers.create(
                code=normalized,
                discount_percent=discount_percent,
                valid_until=valid_until,
                user_id=user_id,
                description=description,
                minimum_amount=minimum_amount,
                maximum_discount=maximum_discount,
                max_uses=max_uses,
                is_active=is_active,
            )
        except UniqueViolation:
            raise DuplicateVoucherError(normalized) from None

    def set_active(self, voucher_id: str, is_active: bool) -> Voucher:
        updated = self._vouchers.set_active(voucher_id, is_active)
        if updated is None:
            raise VoucherNotFoundError(f"Voucher not found: {voucher_id}")
        return updated

    def delete_voucher(self, voucher_id: str) -> None:
        voucher = self._vouchers.get(voucher_id)
        if voucher is None:
            raise VoucherNotFoundError(f"Voucher not found: {voucher_id}")
        if voucher.has_been_used:
            raise ConflictError("A voucher that has been used cannot be deleted; deactivate it instead")
        self._vouchers.delete(voucher_id)


__all__ = [
    "AppliedVoucher",
    "VoucherEngine",
    "VoucherValidation",
]
