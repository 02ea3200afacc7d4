"""
Booking repository (persistence).

This module provides *only* persistence operations for the Booking domain
entity. It does not decide which transitions are legal; it applies status
changes conditionally on the status the caller last observed so that two
racing writers cannot both succeed.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from supabase import Client

from domain.booking import (
    COUNTING_STATUSES,
    Booking,
    BookingDraft,
    BookingStatus,
    CustomerDetails,
    LegalConsent,
    PaymentStatus,
)
from domain.time import utc_now
from repositories.rows import (
    execute,
    money,
    parse_date,
    parse_optional_datetime,
    to_decimal,
)

# Supabase table name for bookings.
# Keep this aligned with your database schema.
_BOOKINGS_TABLE: str = "bookings"

_COUNTING_VALUES: List[str] = sorted(s.value for s in COUNTING_STATUSES)


def _row_to_booking(row: Mapping[str, Any]) -> Booking:
    """Convert a Supabase row into a Booking."""

    return Booking(
        booking_id=str(row["id"]),
        trek_key=str(row["trek_slug"]),
        slot_id=str(row["slot_id"]),
        booking_date=parse_date(row["booking_date"]),
        participants=int(row.get("participants") or 0),
        status=BookingStatus(str(row["status"])),
        payment_status=PaymentStatus(str(row.get("payment_status") or PaymentStatus.NOT_REQUIRED.value)),
        total_amount=to_decimal(row.get("total_amount"), default=to_decimal(0)),
        discount_amount=to_decimal(row.get("discount_amount"), default=to_decimal(0)),
        voucher_id=str(row["voucher_id"]) if row.get("voucher_id") else None,
        user_id=str(row["user_id"]) if row.get("user_id") else None,
        customer=CustomerDetails(
            name=str(row.get("customer_name") or ""),
            email=str(row.get("customer_email") or ""),
            phone=row.get("customer_phone"),
            special_requirements=row.get("special_requirements"),
            pickup_location=row.get("pickup_location"),
        ),
        consent=LegalConsent(
            terms_accepted=bool(row.get("terms_accepted", False)),
            liability_waiver_accepted=bool(row.get("liability_waiver_accepted", False)),
            fitness_consent=bool(row.get("fitness_consent", False)),
        ),
        created_at=parse_optional_datetime(row.get("created_at")),
        updated_at=parse_optional_datetime(row.get("updated_at")),
    )


def _status_rows(rows: Iterable[Mapping[str, Any]]) -> List[Tuple[BookingStatus, int]]:
    return [(BookingStatus(str(r["status"])), int(r.get("participants") or 0)) for r in rows]


class BookingRepository:
    def __init__(self, client: Client):
        self._client = client

    def _table(self):
        return self._client.table(_BOOKINGS_TABLE)

    def insert(self, draft: BookingDraft) -> Booking:
        now = utc_now().isoformat()
        payload: dict[str, Any] = {
            "trek_slug": draft.trek_key,
            "slot_id": draft.slot_id,
            "booking_date": draft.booking_date.isoformat(),
            "participants": draft.participants,
            "total_amount": money(draft.total_amount),
            "discount_amount": money(draft.discount_amount),
            "voucher_id": draft.voucher_id,
            "customer_name": draft.customer.name,
            "customer_email": draft.customer.email,
            "customer_phone": draft.customer.phone,
            "special_requirements": draft.customer.special_requirements,
            "pickup_location": draft.customer.pickup_location,
            "terms_accepted": draft.consent.terms_accepted,
            "liability_waiver_accepted": draft.consent.liability_waiver_accepted,
            "fitness_consent": draft.consent.fitness_consent,
            "status": draft.status.value,
            "payment_status": draft.payment_status.value,
            "user_id": draft.user_id,
            "created_at": now,
            "updated_at": now,
        }
        rows = execute(self._table().insert(payload), "create booking")
        if not rows:
            raise RuntimeError("Booking insert returned no row")
        return _row_to_booking(rows[0])

    def get(self, booking_id: str) -> Optional[Booking]:
        rows = execute(
            self._table().select("*").eq("id", booking_id).limit(1),
            "fetch booking",
        )
        return _row_to_booking(rows[0]) if rows else None

    def list_by_user(self, user_id: str) -> List[Booking]:
        rows = execute(
            self._table().select("*").eq("user_id", user_id).order("created_at", desc=True),
            "list bookings for user",
        )
        return [_row_to_booking(row) for row in rows]

    def list_all(self, status: Optional[BookingStatus] = None) -> List[Booking]:
        query = self._table().select("*")
        if status is not None:
            query = query.eq("status", status.value)
        rows = execute(query.order("created_at", desc=True), "list bookings")
        return [_row_to_booking(row) for row in rows]

    def list_for_export(
        self,
        *,
        booking_date: Optional[date] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        slot_id: Optional[str] = None,
        trek_key: Optional[str] = None,
        user_id: Optional[str] = None,
        customer_email: Optional[str] = None,
    ) -> List[Booking]:
        """Bookings matching every given filter, newest first. No filter means all bookings."""

        query = self._table().select("*")
        if booking_date is not None:
            query = query.eq("booking_date", booking_date.isoformat())
        if date_from is not None:
            query = query.gte("booking_date", date_from.isoformat())
        if date_to is not None:
            query = query.lte("booking_date", date_to.isoformat())
        if slot_id is not None:
            query = query.eq("slot_id", slot_id)
        if trek_key is not None:
            query = query.eq("trek_slug", trek_key)
        if user_id is not None:
            query = query.eq("user_id", user_id)
        if customer_email is not None:
            query = query.eq("customer_email", customer_email)
        rows = execute(query.order("created_at", desc=True), "list bookings for export")
        return [_row_to_booking(row) for row in rows]

    def counting_rows_for_slot(self, slot_id: str) -> List[Tuple[BookingStatus, int]]:
        """(status, participants) of every booking holding inventory on a slot."""

        rows = execute(
            self._table()
            .select("status, participants")
            .eq("slot_id", slot_id)
            .in_("status", _COUNTING_VALUES),
            "fetch bookings for slot",
        )
        return _status_rows(rows)

    def counting_rows_for_slots(self, slot_ids: List[str]) -> Dict[str, List[Tuple[BookingStatus, int]]]:
        """Same as counting_rows_for_slot, for many slots in one round trip."""

        grouped: Dict[str, List[Tuple[BookingStatus, int]]] = defaultdict(list)
        if not slot_ids:
            return grouped
        rows = execute(
            self._table()
            .select("slot_id, status, participants")
            .in_("slot_id", slot_ids)
            .in_("status", _COUNTING_VALUES),
            "fetch bookings for slots",
        )
        for row in rows:
            grouped[str(row["slot_id"])].extend(_status_rows([row]))
        return grouped

    def statuses_for_slot(self, slot_id: str) -> List[BookingStatus]:
        """Status of every booking referencing a slot, terminal ones included."""

        rows = execute(
            self._table().select("id, status").eq("slot_id", slot_id),
            "fetch booking references for slot",
        )
        return [BookingStatus(str(r["status"])) for r in rows]

    def update_status(
        self,
        booking_id: str,
        *,
        expected: BookingStatus,
        status: BookingStatus,
        payment_status: Optional[PaymentStatus] = None,
    ) -> Optional[Booking]:
        """
        Move a booking from `expected` to `status` in one conditional update.

        Returns None when the booking no longer has status `expected`.
        """

        payload: dict[str, Any] = {"status": status.value, "updated_at": utc_now().isoformat()}
        if payment_status is not None:
            payload["payment_status"] = payment_status.value

        rows = execute(
            self._table().update(payload).eq("id", booking_id).eq("status", expected.value),
            "update booking status",
        )
        return _row_to_booking(rows[0]) if rows else None

    def delete(self, booking_id: str) -> Optional[Booking]:
        rows = execute(self._table().delete().eq("id", booking_id), "delete booking")
        return _row_to_booking(rows[0]) if rows else None


__all__ = ["BookingRepository"]
