"""
Slot repository (persistence).

This module provides *only* persistence operations for the Slot domain
entity. It contains no capacity rules; it only enforces simple persistence
constraints (uniqueness per trek + date, conditional updates).

The `booked` column is written exclusively through `write_booked`, which the
capacity reconciler calls with the value it read beforehand so that a
concurrent reconciliation is never overwritten with a staler count.
"""

from __future__ import annotations

from datetime import date
from typing import Any, List, Mapping, Optional

from supabase import Client

from domain.slot import Slot, SlotStatus
from repositories.rows import execute, parse_date

# Supabase table name for slot records.
# Keep this aligned with your database schema.
_SLOTS_TABLE: str = "trek_slots"


def _row_to_slot(row: Mapping[str, Any]) -> Slot:
    """Convert a Supabase row into a Slot."""

    return Slot(
        slot_id=str(row["id"]),
        trek_key=str(row["trek_slug"]),
        date=parse_date(row["date"]),
        capacity=int(row["capacity"]),
        booked=int(row.get("booked") or 0),
        status=SlotStatus(str(row.get("status") or SlotStatus.OPEN.value)),
    )


class SlotRepository:
    def __init__(self, client: Client):
        self._client = client

    def _table(self):
        return self._client.table(_SLOTS_TABLE)

    def get(self, slot_id: str) -> Optional[Slot]:
        rows = execute(
            self._table().select("*").eq("id", slot_id).limit(1),
            "fetch slot",
        )
        return _row_to_slot(rows[0]) if rows else None

    def find_by_trek_and_date(self, trek_key: str, on: date) -> Optional[Slot]:
        rows = execute(
            self._table().select("*").eq("trek_slug", trek_key).eq("date", on.isoformat()).limit(1),
            "look up slot by trek and date",
        )
        return _row_to_slot(rows[0]) if rows else None

    def list_by_trek(self, trek_key: str) -> List[Slot]:
        rows = execute(
            self._table().select("*").eq("trek_slug", trek_key).order("date"),
            "list slots for trek",
        )
        return [_row_to_slot(row) for row in rows]

    def list_all(self) -> List[Slot]:
        rows = execute(
            self._table().select("*").order("date"),
            "list slots",
        )
        slots = [_row_to_slot(row) for row in rows]
        return sorted(slots, key=lambda s: (s.trek_key, s.date))

    def create(self, trek_key: str, on: date, capacity: int, status: SlotStatus) -> Slot:
        """
        Insert a new slot with booked = 0.

        Raises UniqueViolation when (trek_slug, date) already exists.
        """

        payload: dict[str, Any] = {
            "trek_slug": trek_key,
            "date": on.isoformat(),
            "capacity": capacity,
            "booked": 0,
            "status": status.value,
        }
        rows = execute(self._table().insert(payload), "create slot")
        if not rows:
            raise RuntimeError("Slot insert returned no row")
        return _row_to_slot(rows[0])

    def update(
        self,
        slot_id: str,
        *,
        capacity: Optional[int] = None,
        on: Optional[date] = None,
        status: Optional[SlotStatus] = None,
    ) -> Optional[Slot]:
        """Update operator-editable fields. Returns None when the slot does not exist."""

        payload: dict[str, Any] = {}
        if capacity is not None:
            payload["capacity"] = capacity
        if on is not None:
            payload["date"] = on.isoformat()
        if status is not None:
            payload["status"] = status.value
        if not payload:
            return self.get(slot_id)

        rows = execute(self._table().update(payload).eq("id", slot_id), "update slot")
        return _row_to_slot(rows[0]) if rows else None

    def write_booked(self, slot_id: str, *, expected: int, booked: int) -> bool:
        """
        Conditionally set booked, only if it still holds `expected`.

        Returns False when no row matched (the slot vanished or another
        writer changed the counter in the meantime).
        """

        rows = execute(
            self._table().update({"booked": booked}).eq("id", slot_id).eq("booked", expected),
            "update slot booked count",
        )
        return bool(rows)

    def delete(self, slot_id: str) -> bool:
        rows = execute(self._table().delete().eq("id", slot_id), "delete slot")
        return bool(rows)


__all__ = ["SlotRepository"]
