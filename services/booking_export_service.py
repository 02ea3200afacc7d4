"""
CSV export of bookings for operators.

Exports bookings for one of five scopes:
- all: every booking
- date: one booking date (value) or a date range (from / to)
- slot: one slot id
- trek: one trek slug
- user: a user id or a customer email

Security:
- CSV Injection Prevention: customer-supplied text is sanitized so a
  spreadsheet never evaluates it as a formula
- Security Logging: logs when dangerous characters are stripped

Access control is the router's job (admin only).
"""

from __future__ import annotations

import csv
import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from io import StringIO
from typing import Dict, List, Optional

from domain.booking import Booking
from domain.errors import ValidationError
from repositories.booking_repository import BookingRepository

logger = logging.getLogger(__name__)

_DANGEROUS_LEADING_CHARS = {"=", "+", "-", "@", "\t", "\r"}
_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9@._-]+")
_OLDEST = datetime.min.replace(tzinfo=timezone.utc)
# Plain international numbers ("+91 98100 00000") are exported verbatim.
_PLAIN_PHONE = re.compile(r"^\+[0-9][0-9 ()-]*$")

HEADER = [
    "Booking ID",
    "Trek",
    "Slot ID",
    "Booking Date",
    "Participants",
    "Status",
    "Payment Status",
    "Total Amount",
    "Discount Amount",
    "Voucher ID",

    # Customer
    "Customer Name",
    "Customer Email",
    "Customer Phone",
    "Pickup Location",
    "Special Requirements",

    # Consent
    "Terms Accepted",
    "Liability Waiver Accepted",
    "Fitness Consent",

    # Metadata
    "User ID",
    "Created At",
]


class ExportScope(str, Enum):
    ALL = "all"
    DATE = "date"
    SLOT = "slot"
    TREK = "trek"
    USER = "user"


@dataclass(frozen=True, slots=True)
class BookingExport:
    filename: str
    content: str
    row_count: int


def sanitize_csv_field(value: Optional[str], field_name: str = "unknown") -> str:
    """
    Strip leading characters that make Excel/Sheets evaluate a cell.

    Strips =, +, -, @, tab and carriage return from the start of the value
    and logs a warning when anything was removed.

    Example:
        sanitize_csv_field("=HYPERLINK(...)", "customer_name")
        # Returns "HYPERLINK(...)" and logs the stripped "="
    """
    if value is None or value == "":
        return ""

    text = str(value).strip()
    original_text = text

    stripped_chars = []
    while text and text[0] in _DANGEROUS_LEADING_CHARS:
        stripped_chars.append(text[0])
        text = text[1:]

    if stripped_chars:
        logger.warning(
            f"CSV injection character(s) stripped from field '{field_name}'",
            extra={
                "field_name": field_name,
                "stripped_characters": "".join(stripped_chars),
                "original_value": original_text[:100],
                "sanitized_value": text[:100],
                "modification_type": "csv_injection_prevention",
            },
        )

    return text


def _phone(value: Optional[str]) -> str:
    if value and _PLAIN_PHONE.match(value.strip()):
        return value.strip()
    return sanitize_csv_field(value, "customer_phone")


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"Invalid date '{value}'. Use YYYY-MM-DD") from None


def _row(booking: Booking) -> List[str]:
    customer = booking.customer
    return [
        booking.booking_id,
        booking.trek_key,
        booking.slot_id,
        booking.booking_date.isoformat(),
        str(booking.participants),
        booking.status.value,
        booking.payment_status.value,
        str(booking.total_amount),
        str(booking.discount_amount),
        booking.voucher_id or "",

        # Customer (sanitized with field names for logging)
        sanitize_csv_field(customer.name, "customer_name"),
        sanitize_csv_field(customer.email, "customer_email"),
        _phone(customer.phone),
        sanitize_csv_field(customer.pickup_location, "pickup_location"),
        sanitize_csv_field(customer.special_requirements, "special_requirements"),

        # Consent
        "yes" if booking.consent.terms_accepted else "no",
        "yes" if booking.consent.liability_waiver_accepted else "no",
        "yes" if booking.consent.fitness_consent else "no",

        # Metadata
        booking.user_id or "",
        booking.created_at.isoformat() if booking.created_at else "",
    ]


def render_csv(bookings: List[Booking]) -> str:
    """CSV text with a header row, one row per booking."""

    output = StringIO()
    writer = csv.writer(output)
    writer.writerow(HEADER)
    for booking in bookings:
        writer.writerow(_row(booking))
    return output.getvalue()


class BookingExportService:
    def __init__(self, bookings: BookingRepository):
        self._bookings = bookings

    def export_csv(
        self,
        scope: ExportScope = ExportScope.ALL,
        value: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> BookingExport:
        """
        Export the bookings in `scope` as CSV, newest first.

        Raises ValidationError when the scope is missing its value.

        Example:
            export = service.export_csv(ExportScope.TREK, "kedarkantha")
            # export.filename == "bookings_trek_kedarkantha.csv"
        """

        value = value.strip() if value and value.strip() else None
        bookings = self._fetch(scope, value, date_from, date_to)

        suffix = f"_{_UNSAFE_FILENAME_CHARS.sub('_', value)}" if value else ""
        export = BookingExport(
            filename=f"bookings_{scope.value}{suffix}.csv",
            content=render_csv(bookings),
            row_count=len(bookings),
        )
        logger.info(
            f"Exported {export.row_count} bookings",
            extra={"scope": scope.value, "value": value, "row_count": export.row_count},
        )
        return export

    def _fetch(
        self,
        scope: ExportScope,
        value: Optional[str],
        date_from: Optional[date],
        date_to: Optional[date],
    ) -> List[Booking]:
        if scope == ExportScope.DATE:
            if value:
                return self._bookings.list_for_export(booking_date=_parse_date(value))
            if date_from is None:
                raise ValidationError('Provide date "value" or range "from"/"to"')
            if date_to is not None and date_to < date_from:
                raise ValidationError('"from" must not be after "to"')
            return self._bookings.list_for_export(date_from=date_from, date_to=date_to)

        if scope == ExportScope.SLOT:
            if not value:
                raise ValidationError("slot scope requires value=slot_id")
            return self._bookings.list_for_export(slot_id=value)

        if scope == ExportScope.TREK:
            if not value:
                raise ValidationError("trek scope requires value=trek_slug")
            return self._bookings.list_for_export(trek_key=value)

        if scope == ExportScope.USER:
            if not value:
                raise ValidationError("user scope requires value=user_id or email")
            # The value may be either; bookings match on whichever fits.
            merged: Dict[str, Booking] = {}
            for booking in self._bookings.list_for_export(user_id=value):
                merged[booking.booking_id] = booking
            for booking in self._bookings.list_for_export(customer_email=value):
                merged.setdefault(booking.booking_id, booking)
            return sorted(merged.values(), key=lambda b: b.created_at or _OLDEST, reverse=True)

        return self._bookings.list_for_export()


__all__ = [
    "BookingExport",
    "BookingExportService",
    "ExportScope",
    "render_csv",
    "sanitize_csv_field",
]
