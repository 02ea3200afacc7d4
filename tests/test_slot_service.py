"""
Tests for `services/slot_service.py`.

Covers contract rules:
- Listings recompute booked from bookings and fall back to stored counts.
- (trek, date) is unique.
- Capacity cannot drop below the participants already booked.
- A slot's date cannot move while active bookings reference it.
- A slot referenced by any booking cannot be deleted.
- Generated slots are evenly spaced and skip past and existing dates.
"""

from __future__ import annotations

from datetime import date

import pytest

from domain.errors import ConflictError, DuplicateSlotError, SlotInUseError, SlotNotFoundError, ValidationError
from domain.slot import SlotStatus
from factories import TREK, add_booking, add_slot
from services.slot_service import spread_dates


def test_list_slots_recomputes_booked(db, slot_service) -> None:
    later = add_slot(db, on=date(2026, 12, 21), capacity=10, booked=0)
    earlier = add_slot(db, on=date(2026, 12, 1), capacity=4, booked=0)
    add_booking(db, later, participants=3)
    add_booking(db, later, participants=5, status="cancelled")
    add_booking(db, earlier, participants=4, status="confirmed")

    slots = slot_service.list_slots(TREK)

    assert [s.slot_id for s in slots] == [earlier, later]
    assert [(s.booked, s.available) for s in slots] == [(4, 0), (3, 7)]

    available = slot_service.list_slots(TREK, available_only=True)
    assert [s.slot_id for s in available] == [later]


def test_list_slots_falls_back_to_stored_counts(db, slot_service) -> None:
    slot_id = add_slot(db, booked=6)
    db.fail("bookings", "select")

    slots = slot_service.list_slots(TREK)

    assert [(s.slot_id, s.booked) for s in slots] == [(slot_id, 6)]


def test_available_only_excludes_closed_slots(db, slot_service) -> None:
    add_slot(db, status="closed")

    assert slot_service.list_slots(TREK, available_only=True) == []


def test_create_slot_rejects_duplicates(slot_service) -> None:
    slot = slot_service.create_slot(TREK, date(2026, 12, 21), 12)

    assert slot.booked == 0
    assert slot.status == SlotStatus.OPEN

    with pytest.raises(DuplicateSlotError):
        slot_service.create_slot(TREK, date(2026, 12, 21), 8)


@pytest.mark.parametrize("capacity", [0, -1])
def test_create_slot_requires_positive_capacity(slot_service, capacity: int) -> None:
    with pytest.raises(ValidationError):
        slot_service.create_slot(TREK, date(2026, 12, 21), capacity)


def test_capacity_cannot_drop_below_booked(db, slot_service) -> None:
    slot_id = add_slot(db, capacity=10, booked=6)
    add_booking(db, slot_id, participants=6)

    with pytest.raises(ConflictError, match="6 participants"):
        slot_service.update_slot(slot_id, capacity=5)

    updated = slot_service.update_slot(slot_id, capacity=6, status=SlotStatus.CLOSED)
    assert updated.capacity == 6
    assert updated.status == SlotStatus.CLOSED


def test_date_cannot_move_with_active_bookings(db, slot_service) -> None:
    slot_id = add_slot(db)
    add_booking(db, slot_id, participants=2)

    with pytest.raises(SlotInUseError):
        slot_service.update_slot(slot_id, on=date(2026, 12, 28))


def test_date_can_move_when_only_cancelled_bookings_remain(db, slot_service) -> None:
    slot_id = add_slot(db)
    add_booking(db, slot_id, participants=2, status="cancelled")

    updated = slot_service.update_slot(slot_id, on=date(2026, 12, 28))

    assert updated.date == date(2026, 12, 28)


def test_update_unknown_slot(slot_service) -> None:
    with pytest.raises(SlotNotFoundError):
        slot_service.update_slot("missing", capacity=4)


def test_delete_slot_with_bookings_is_rejected(db, slot_service) -> None:
    slot_id = add_slot(db)
    add_booking(db, slot_id, participants=2, status="cancelled")

    with pytest.raises(SlotInUseError, match="0 active, 1 total"):
        slot_service.delete_slot(slot_id)

    assert db.row("trek_slots", slot_id) is not None


def test_delete_unreferenced_slot(db, slot_service) -> None:
    slot_id = add_slot(db)

    slot_service.delete_slot(slot_id)

    assert db.row("trek_slots", slot_id) is None


def test_spread_dates_are_evenly_spaced() -> None:
    assert spread_dates(2026, 11, 3) == [date(2026, 11, 1), date(2026, 11, 11), date(2026, 11, 21)]
    assert spread_dates(2027, 2, 4) == [date(2027, 2, 1), date(2027, 2, 8), date(2027, 2, 15), date(2027, 2, 22)]


def test_generate_slots_skips_past_and_existing_dates(db, slot_service) -> None:
    add_slot(db, on=date(2026, 11, 11))

    result = slot_service.generate_slots(
        TREK,
        start=date(2026, 10, 19),
        months=2,
        per_month=3,
        capacity=12,
        today=date(2026, 10, 19),
    )

    assert result.skipped_past == [date(2026, 10, 1), date(2026, 10, 11)]
    assert result.skipped_existing == [date(2026, 11, 11)]
    assert [s.date for s in result.created] == [date(2026, 10, 21), date(2026, 11, 1), date(2026, 11, 21)]
    assert all(s.capacity == 12 for s in result.created)
    assert len(db.rows("trek_slots")) == 4


def test_generate_slots_dry_run_writes_nothing(db, slot_service) -> None:
    result = slot_service.generate_slots(
        TREK,
        start=date(2026, 12, 1),
        months=1,
        per_month=2,
        capacity=12,
        today=date(2026, 10, 19),
        dry_run=True,
    )

    assert result.created == []
    assert db.rows("trek_slots") == []
