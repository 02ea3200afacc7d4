"""
Voucher repository (persistence).

This module provides *only* persistence operations for the Voucher domain
entity. Redemption is a single conditional update keyed on the usage count
the caller read, so of two concurrent redeemers exactly one matches a row.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, List, Mapping, Optional

from supabase import Client

from domain.time import utc_now
from domain.voucher import Voucher, normalize_code
from repositories.rows import (
    execute,
    money,
    parse_optional_datetime,
    to_decimal,
    to_iso_utc,
)

# Supabase table name for vouchers.
# Keep this aligned with your database schema.
_VOUCHERS_TABLE: str = "vouchers"


def _row_to_voucher(row: Mapping[str, Any]) -> Voucher:
    """Convert a Supabase row into a Voucher."""

    return Voucher(
        voucher_id=str(row["id"]),
        code=normalize_code(str(row["code"])),
        discount_percent=int(row.get("discount_percent") or 0),
        valid_until=parse_optional_datetime(row.get("valid_until")),
        user_id=str(row["user_id"]) if row.get("user_id") else None,
        is_active=bool(row.get("is_active", True)),
        is_used=bool(row.get("is_used", False)),
        max_uses=int(row.get("max_uses") or 1),
        current_uses=int(row.get("current_uses") or 0),
        minimum_amount=to_decimal(row.get("minimum_amount")),
        maximum_discount=to_decimal(row.get("maximum_discount")),
        description=row.get("description"),
        used_at=parse_optional_datetime(row.get("used_at")),
        used_by=str(row["used_by"]) if row.get("used_by") else None,
        booking_id=str(row["booking_id"]) if row.get("booking_id") else None,
        created_at=parse_optional_datetime(row.get("created_at")),
    )


class VoucherRepository:
    def __init__(self, client: Client):
        self._client = client

    def _table(self):
        return self._client.table(_VOUCHERS_TABLE)

    def get(self, voucher_id: str) -> Optional[Voucher]:
        rows = execute(self._table().select("*").eq("id", voucher_id).limit(1), "fetch voucher")
        return _row_to_voucher(rows[0]) if rows else None

    def get_by_code(self, code: str) -> Optional[Voucher]:
        rows = execute(
            self._table().select("*").eq("code", normalize_code(code)).limit(1),
            "fetch voucher by code",
        )
        return _row_to_voucher(rows[0]) if rows else None

    def list_all(self) -> List[Voucher]:
        rows = execute(self._table().select("*").order("created_at", desc=True), "list vouchers")
        return [_row_to_voucher(row) for row in rows]

    def create(
        self,
        *,
        code: str,
        discount_percent: int,
        valid_until: Optional[datetime],
        user_id: Optional[str],
        description: Optional[str],
        minimum_amount: Optional[Decimal],
        maximum_discount: Optional[Decimal],
        max_uses: int,
        is_active: bool,
    ) -> Voucher:
        """Insert a new voucher. Raises UniqueViolation when the code exists."""

        payload: dict[str, Any] = {
            "code": normalize_code(code),
            "discount_percent": discount_percent,
            "valid_until": to_iso_utc(valid_until, name="valid_until") if valid_until else None,
            "user_id": user_id,
            "description": description,
            "minimum_amount": money(minimum_amount) if minimum_amount is not None else None,
            "maximum_discount": money(maximum_discount) if maximum_discount is not None else None,
            "max_uses": max_uses,
            "current_uses": 0,
            "is_active": is_active,
            "is_used": False,
            "created_at": utc_now().isoformat(),
        }
        rows = execute(self._table().insert(payload), "create voucher")
        if not rows:
            raise RuntimeError("Voucher insert returned no row")
        return _row_to_voucher(rows[0])

    def mark_used(
        self,
        voucher: Voucher,
        *,
        used_by: Optional[str],
        used_at: datetime,
        booking_id: Optional[str] = None,
    ) -> Optional[Voucher]:
        """
        Record one use of `voucher`, only if nobody else used it since it was read.

        Conditions: is_used = false and current_uses still equals the value
        on `voucher`. Returns None when the condition did not match.
        """

        uses = voucher.current_uses + 1
        payload: dict[str, Any] = {
            "current_uses": uses,
            "is_used": uses >= voucher.max_uses,
            "used_at": to_iso_utc(used_at, name="used_at"),
            "used_by": used_by,
        }
        if booking_id is not None:
            payload["booking_id"] = booking_id

        rows = execute(
            self._table()
            .update(payload)
            .eq("id", voucher.voucher_id)
            .eq("is_used", False)
            .eq("current_uses", voucher.current_uses),
            "redeem voucher",
        )
        return _row_to_voucher(rows[0]) if rows else None

    def attach_booking(self, voucher_id: str, booking_id: str) -> None:
        execute(
            self._table().update({"booking_id": booking_id}).eq("id", voucher_id),
            "link voucher to booking",
        )

    def release(self, redeemed: Voucher) -> bool:
        """
        Undo the use recorded by `mark_used`, given the row it returned.

        Conditional on current_uses still matching so later uses are never undone.
        The used_at / used_by / booking_id stamps are only cleared once no use
        remains.
        """

        uses = max(0, redeemed.current_uses - 1)
        payload: dict[str, Any] = {"current_uses": uses, "is_used": False}
        if uses == 0:
            payload.update(used_at=None, used_by=None, booking_id=None)
        rows = execute(
            self._table()
            .update(payload)
            .eq("id", redeemed.voucher_id)
            .eq("current_uses", redeemed.current_uses),
            "release voucher",
        )
        return bool(rows)

    def set_active(self, voucher_id: str, is_active: bool) -> Optional[Voucher]:
        rows = execute(
            self._table().update({"is_active": is_active}).eq("id", voucher_id),
            "update voucher",
        )
        return _row_to_voucher(rows[0]) if rows else None

    def delete(self, voucher_id: str) -> bool:
        rows = execute(self._table().delete().eq("id", voucher_id), "delete voucher")
        return bool(rows)


__all__ = ["VoucherRepository"]
