"""
Slot administration.

Operators create, edit, close and delete trek slots here. Capacity is the
only operator-owned number on a slot; `booked` is never accepted as input
and only ever changes through the capacity reconciler.

Rules:
- (trek, date) is unique.
- Capacity cannot be lowered below the participants already held.
- A slot's date cannot move while active bookings reference it.
- A slot referenced by any booking (terminal ones included) cannot be
  deleted; close it instead.
"""

from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional

from domain.booking import compute_booked_count
from domain.errors import (
    ConflictError,
    DataStoreError,
    DuplicateSlotError,
    SlotInUseError,
    SlotNotFoundError,
    ValidationError,
)
from domain.slot import Slot, SlotStatus
from repositories.booking_repository import BookingRepository
from repositories.rows import UniqueViolation
from repositories.slot_repository import SlotRepository
from services.reconciliation_service import CapacityReconciler

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class GenerationResult:
    created: List[Slot] = field(default_factory=list)
    skipped_existing: List[date] = field(default_factory=list)
    skipped_past: List[date] = field(default_factory=list)


def _add_months(start: date, months: int) -> tuple[int, int]:
    index = start.month - 1 + months
    return start.year + index // 12, index % 12 + 1


def spread_dates(year: int, month: int, per_month: int) -> List[date]:
    """
    Evenly spaced days within a month.

    Example:
        spread_dates(2026, 11, 3) -> [2026-11-01, 2026-11-11, 2026-11-21]
    """

    days = calendar.monthrange(year, month)[1]
    step = days // per_month
    return [date(year, month, 1 + i * step) for i in range(per_month)]


class SlotService:
    def __init__(self, slots: SlotRepository, bookings: BookingRepository, reconciler: CapacityReconciler):
        self._slots = slots
        self._bookings = bookings
        self._reconciler = reconciler

    def get_slot(self, slot_id: str) -> Slot:
        slot = self._slots.get(slot_id)
        if slot is None:
            raise SlotNotFoundError(f"Slot not found: {slot_id}")
        return slot

    def list_slots(self, trek_key: Optional[str] = None, available_only: bool = False) -> List[Slot]:
        """
        Slots ordered by date, with booked recomputed from bookings.

        The recount is one query for all listed slots. If it fails the
        stored counters are returned as they are.
        """

        slots = self._slots.list_by_trek(trek_key) if trek_key else self._slots.list_all()

        try:
            grouped = self._bookings.counting_rows_for_slots([s.slot_id for s in slots])
        except DataStoreError:
            logger.warning(
                "Could not recount bookings for slot listing; using stored counters",
                extra={"trek_key": trek_key, "slot_count": len(slots)},
            )
        else:
            slots = [s.with_booked(compute_booked_count(grouped.get(s.slot_id, []))) for s in slots]

        if available_only:
            slots = [s for s in slots if s.is_open and s.available > 0]
        return slots

    def create_slot(
        self,
        trek_key: str,
        on: date,
        capacity: int,
        status: SlotStatus = SlotStatus.OPEN,
    ) -> Slot:
        if not trek_key or not trek_key.strip():
            raise ValidationError("Trek is required")
        if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity < 1:
            raise ValidationError("Capacity must be a positive integer")

        try:
            slot = self._slots.create(trek_key.strip(), on, capacity, status)
        except UniqueViolation:
            raise DuplicateSlotError(trek_key, on.isoformat()) from None

        logger.info(
            f"Created slot {slot.slot_id} for {slot.trek_key} on {slot.date.isoformat()}",
            extra={"slot_id": slot.slot_id, "trek_key": slot.trek_key, "capacity": capacity},
        )
        return slot

    def update_slot(
        self,
        slot_id: str,
        *,
        capacity: Optional[int] = None,
        on: Optional[date] = None,
        status: Optional[SlotStatus] = None,
    ) -> Slot:
        slot = self.get_slot(slot_id)

        if capacity is not None:
            if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity < 1:
                raise ValidationError("Capacity must be a positive integer")
            held = self._reconciler.compute_booked_count(slot_id)
            if capacity < held:
                raise ConflictError(
                    f"Capacity cannot be lower than the {held} participants already booked"
                )

        if on is not None and on != slot.date:
            if any(s.holds_inventory for s in self._bookings.statuses_for_slot(slot_id)):
                raise SlotInUseError("Cannot change the date of a slot with active bookings")

        try:
            updated = self._slots.update(slot_id, capacity=capacity, on=on, status=status)
        except UniqueViolation:
            raise DuplicateSlotError(slot.trek_key, on.isoformat() if on else slot.date.isoformat()) from None
        if updated is None:
            raise SlotNotFoundError(f"Slot not found: {slot_id}")

        logger.info(
            f"Updated slot {slot_id}",
            extra={
                "slot_id": slot_id,
                "capacity": updated.capacity,
                "date": updated.date.isoformat(),
                "status": updated.status.value,
            },
        )
        return updated

    def delete_slot(self, slot_id: str) -> None:
        self.get_slot(slot_id)

        statuses = self._bookings.statuses_for_slot(slot_id)
        if statuses:
            active = sum(1 for s in statuses if s.holds_inventory)
            raise SlotInUseError(
                f"Cannot delete slot with existing bookings ({active} active, {len(statuses)} total); "
                "close it instead"
            )

        if not self._slots.delete(slot_id):
            raise SlotNotFoundError(f"Slot not found: {slot_id}")
        logger.info(f"Deleted slot {slot_id}", extra={"slot_id": slot_id})

    def generate_slots(
        self,
        trek_key: str,
        *,
        start: date,
        months: int,
        per_month: int,
        capacity: int,
        today: date,
        dry_run: bool = False,
    ) -> GenerationResult:
        """
        Create evenly spaced slots for `months` months starting at `start`'s month.

        Dates before `start` or `today` are skipped, as are dates that already
        have a slot for the trek. With dry_run nothing is written and
        `created` is empty.
        """

        if months < 1:
            raise ValidationError("Months must be at least 1")
        if per_month < 1 or per_month > 28:
            raise ValidationError("Slots per month must be between 1 and 28")
        if capacity < 1:
            raise ValidationError("Capacity must be a positive integer")

        existing = {s.date for s in self._slots.list_by_trek(trek_key)}
        result = GenerationResult()

        for offset in range(months):
            year, month = _add_months(start, offset)
            for day in spread_dates(year, month, per_month):
                if day < start or day < today:
                    result.skipped_past.append(day)
                    continue
                if day in existing:
                    result.skipped_existing.append(day)
                    continue
                if not dry_run:
                    result.created.append(self.create_slot(trek_key, day, capacity))
                existing.add(day)

        return result


__all__ = ["GenerationResult", "SlotService", "spread_dates"]
