"""
Tests for `services/booking_export_service.py`.

Covers contract rules:
- Each scope (all, date, slot, trek, user) selects the matching bookings.
- Scopes that need a value reject a missing one.
- Customer-entered text is sanitized against formula injection.
"""

from __future__ import annotations

import csv
import logging
from datetime import date
from io import StringIO

import pytest

from domain.errors import ValidationError
from factories import TREK, add_booking, add_slot
from services.booking_export_service import (
    HEADER,
    BookingExportService,
    ExportScope,
    sanitize_csv_field,
)


@pytest.fixture
def exports(booking_repo) -> BookingExportService:
    return BookingExportService(booking_repo)


def _rows(content: str) -> list[dict]:
    return list(csv.DictReader(StringIO(content)))


@pytest.fixture
def seeded(db) -> dict:
    december = add_slot(db, on=date(2026, 12, 21))
    january = add_slot(db, on=date(2027, 1, 10))
    other = add_slot(db, trek="har-ki-dun", on=date(2026, 12, 21))
    ids = {
        "december": add_booking(db, december, participants=2, on=date(2026, 12, 21)),
        "january": add_booking(db, january, participants=3, on=date(2027, 1, 10), user_id="user-2"),
        "other": add_booking(db, other, participants=1, trek="har-ki-dun", on=date(2026, 12, 21), user_id=None),
        "december_slot": december,
    }
    db.set("bookings", ids["january"], created_at="2026-10-20T09:00:00+00:00", customer_email="ravi@example.com")
    db.set("bookings", ids["other"], customer_email="guest@example.com")
    return ids


def test_export_all_is_newest_first(exports, seeded) -> None:
    export = exports.export_csv()

    rows = _rows(export.content)
    assert export.filename == "bookings_all.csv"
    assert export.row_count == 3
    assert list(rows[0]) == HEADER
    assert rows[0]["Booking ID"] == seeded["january"]


@pytest.mark.parametrize(
    "scope, value, expected",
    [
        (ExportScope.SLOT, None, ["december"]),
        (ExportScope.TREK, "har-ki-dun", ["other"]),
        (ExportScope.DATE, "2027-01-10", ["january"]),
        (ExportScope.USER, "user-2", ["january"]),
        (ExportScope.USER, "guest@example.com", ["other"]),
    ],
)
def test_export_scopes(exports, seeded, scope: ExportScope, value, expected: list) -> None:
    value = value or seeded["december_slot"]

    export = exports.export_csv(scope, value)

    assert [r["Booking ID"] for r in _rows(export.content)] == [seeded[k] for k in expected]


def test_export_date_range(exports, seeded) -> None:
    export = exports.export_csv(ExportScope.DATE, date_from=date(2026, 12, 1), date_to=date(2026, 12, 31))

    assert {r["Booking ID"] for r in _rows(export.content)} == {seeded["december"], seeded["other"]}
    assert export.filename == "bookings_date.csv"


def test_user_scope_matches_id_or_email_once(db, exports) -> None:
    slot_id = add_slot(db)
    booking_id = add_booking(db, slot_id, participants=2, user_id="asha@example.com")

    export = exports.export_csv(ExportScope.USER, "asha@example.com")

    assert [r["Booking ID"] for r in _rows(export.content)] == [booking_id]


@pytest.mark.parametrize(
    "scope, kwargs, error",
    [
        (ExportScope.DATE, {}, 'Provide date "value" or range "from"/"to"'),
        (ExportScope.DATE, {"value": "21-12-2026"}, "Invalid date"),
        (ExportScope.DATE, {"date_from": date(2027, 1, 2), "date_to": date(2027, 1, 1)}, "must not be after"),
        (ExportScope.SLOT, {}, "slot scope requires value"),
        (ExportScope.TREK, {"value": "  "}, "trek scope requires value"),
        (ExportScope.USER, {}, "user scope requires value"),
    ],
)
def test_export_requires_scope_value(exports, scope: ExportScope, kwargs: dict, error: str) -> None:
    with pytest.raises(ValidationError, match=error):
        exports.export_csv(scope, **kwargs)


def test_export_sanitizes_customer_text(db, exports, caplog) -> None:
    slot_id = add_slot(db)
    booking_id = add_booking(db, slot_id, participants=2)
    db.set(
        "bookings",
        booking_id,
        customer_name='=HYPERLINK("http://evil.example","x")',
        customer_phone="+91 98100 00000",
        special_requirements="@SUM(1+1)",
    )

    with caplog.at_level(logging.WARNING):
        export = exports.export_csv(ExportScope.TREK, TREK)

    row = _rows(export.content)[0]
    assert row["Customer Name"] == 'HYPERLINK("http://evil.example","x")'
    assert row["Customer Phone"] == "+91 98100 00000"
    assert row["Special Requirements"] == "SUM(1+1)"
    assert "CSV injection character(s) stripped from field 'customer_name'" in caplog.text


def test_export_filename_is_safe(db, exports) -> None:
    export = exports.export_csv(ExportScope.TREK, "../etc/passwd; rm")

    assert export.filename == "bookings_trek_.._etc_passwd_rm.csv"
    assert export.row_count == 0


@pytest.mark.parametrize(
    "value, expected",
    [
        (None, ""),
        ("Normal Name", "Normal Name"),
        ("-+=cmd", "cmd"),
        ("  @user  ", "user"),
    ],
)
def test_sanitize_csv_field(value, expected: str) -> None:
    assert sanitize_csv_field(value, "customer_name") == expected
