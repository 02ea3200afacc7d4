"""
Domain: Trek slots (date-specific, fixed-capacity inventory).

Rules implemented here:
- A Slot is identified by an opaque id and belongs to exactly one trek on one
  calendar date (no time component).
- capacity is a positive integer fixed at creation or edited by an operator.
- booked is a denormalized cache of the participants held by counting-set
  bookings. It is never incremented or decremented in place; the capacity
  reconciler recomputes it from booking rows.
- After every reconciliation 0 <= booked <= capacity must hold. A transient
  overbooking between an insert and its reconciliation is tolerated, and a
  computed value above capacity is reported by the audit, never hidden.

This module contains only pure domain entities: no I/O, no database, no frameworks.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date
from enum import Enum


class SlotStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


@dataclass(frozen=True, slots=True)
class Slot:
    """
    Immutable snapshot of a trek slot row.
    """

    slot_id: str
    trek_key: str
    date: date
    capacity: int
    booked: int
    status: SlotStatus

    def __post_init__(self) -> None:
        if not self.trek_key:
            raise ValueError("trek_key must be a non-empty string")
        if self.capacity < 1:
            raise ValueError("capacity must be a positive integer")
        if self.booked < 0:
            raise ValueError("booked must be >= 0")

    @property
    def available(self) -> int:
        return max(0, self.capacity - self.booked)

    @property
    def is_open(self) -> bool:
        return self.status == SlotStatus.OPEN

    @property
    def is_overbooked(self) -> bool:
        return self.booked > self.capacity

    def has_room_for(self, participants: int) -> bool:
        """
        Advisory admission check against the cached counter.

        Two concurrent requests may both pass this check; the reconciler and the
        audit report are what catch the resulting overbooking.
        """

        return self.is_open and participants <= self.available

    def with_booked(self, booked: int) -> "Slot":
        return replace(self, booked=booked)


__all__ = ["Slot", "SlotStatus"]
