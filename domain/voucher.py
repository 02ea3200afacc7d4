"""
Domain: Discount vouchers.

Rules implemented here:
- code is case-insensitive and stored normalized upper-case.
- A voucher bound to a user_id is rejected for any other user.
- A used voucher (is_used, or current_uses reached max_uses) is never reapplied.
- An expired voucher (valid_until in the past) is rejected.
- minimum_amount, when set, must be met by the booking amount.
- discount = amount * discount_percent / 100, rounded half-up to a whole
  currency unit, clamped to maximum_discount, and final_amount never drops
  below zero.
- discount_percent <= 0 marks an informational voucher: its text is shown to
  the customer but it never acts as a numeric multiplier.

This module contains only pure domain entities: no I/O, no database, no frameworks.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from .errors import VoucherAlreadyUsedError, VoucherRejectedError
from .time import require_utc_timestamp

_WHOLE_UNIT = Decimal("1")


def normalize_code(code: str) -> str:
    return code.strip().upper()


@dataclass(frozen=True, slots=True)
class Voucher:
    voucher_id: str
    code: str
    discount_percent: int
    valid_until: Optional[datetime] = None
    user_id: Optional[str] = None
    is_active: bool = True
    is_used: bool = False
    max_uses: int = 1
    current_uses: int = 0
    minimum_amount: Optional[Decimal] = None
    maximum_discount: Optional[Decimal] = None
    description: Optional[str] = None
    used_at: Optional[datetime] = None
    used_by: Optional[str] = None
    booking_id: Optional[str] = None
    created_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.code != normalize_code(self.code):
            raise ValueError("code must be stored normalized upper-case")
        if self.max_uses < 1:
            raise ValueError("max_uses must be >= 1")
        if self.current_uses < 0:
            raise ValueError("current_uses must be >= 0")
        for name in ("valid_until", "used_at", "created_at"):
            value = getattr(self, name)
            if value is not None:
                require_utc_timestamp(name, value)

    @property
    def is_informational(self) -> bool:
        return self.discount_percent <= 0

    @property
    def is_exhausted(self) -> bool:
        return self.is_used or self.current_uses >= self.max_uses

    @property
    def has_been_used(self) -> bool:
        return self.is_used or self.current_uses > 0

    def is_expired(self, now: datetime) -> bool:
        return self.valid_until is not None and self.valid_until < now


@dataclass(frozen=True, slots=True)
class DiscountCalculation:
    amount: Decimal
    discount_amount: Decimal
    final_amount: Decimal


def check_eligibility(voucher: Voucher, *, amount: Optional[Decimal], user_id: Optional[str], now: datetime) -> None:
    """
    Raise when `voucher` may not be applied by `user_id` to `amount` at `now`.

    Checks run in a fixed order so callers always see the same reason for the
    same voucher: active flag, owner, usage, expiry, minimum amount. When
    `amount` is None the minimum amount rule is skipped (eligibility preview).
    """

    require_utc_timestamp("now", now)

    if not voucher.is_active:
        raise VoucherRejectedError("This voucher is no longer active")
    if voucher.user_id and voucher.user_id != user_id:
        raise VoucherRejectedError("This voucher is not valid for your account")
    if voucher.is_exhausted:
        raise VoucherAlreadyUsedError()
    if voucher.is_expired(now):
        raise VoucherRejectedError("This voucher has expired")
    if amount is not None and voucher.minimum_amount is not None and amount < voucher.minimum_amount:
        raise VoucherRejectedError(
            f"Minimum order amount of {voucher.minimum_amount} required for this voucher"
        )


def calculate_discount(voucher: Voucher, amount: Decimal) -> DiscountCalculation:
    if amount < 0:
        raise ValueError("amount must be >= 0")

    if voucher.is_informational:
        return DiscountCalculation(amount=amount, discount_amount=Decimal("0"), final_amount=amount)

    raw = (amount * Decimal(voucher.discount_percent) / Decimal(100)).quantize(
        _WHOLE_UNIT, rounding=ROUND_HALF_UP
    )
    discount = raw
    if voucher.maximum_discount is not None and discount > voucher.maximum_discount:
        discount = voucher.maximum_discount
    final = max(Decimal("0"), amount - discount)
    return DiscountCalculation(amount=amount, discount_amount=amount - final, final_amount=final)


__all__ = [
    "DiscountCalculation",
    "Voucher",
    "calculate_discount",
    "check_eligibility",
    "normalize_code",
]
