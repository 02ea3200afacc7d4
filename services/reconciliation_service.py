"""
Capacity reconciliation for trek slots.

A slot's `booked` column is a cache. The truth is the sum of participants
over bookings in the counting set (pending, pending_approval, approved,
confirmed). This service:

- recomputes that truth for one slot and writes it back when it differs
  (reactive path, called after every booking mutation that changes counting
  membership)
- repairs every slot of a trek, or every slot, best-effort
- audits every slot without writing anything, reporting drift and
  overbooking

Failure policy:
- If the booking query fails, nothing is written (a stale cache is safer
  than a wrong one) and a failed result is returned.
- Bulk repairs never abort on a single slot; failures are reported per slot.
- Overbooking is reported, never resolved automatically. Cancelling a
  paying customer's booking is an operator decision.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional

from domain.booking import compute_booked_count
from domain.errors import DataStoreError
from domain.slot import Slot
from repositories.booking_repository import BookingRepository
from repositories.slot_repository import SlotRepository

logger = logging.getLogger(__name__)

# Retries when another writer changed the counter between our read and write.
_MAX_WRITE_ATTEMPTS = 3


@dataclass(frozen=True, slots=True)
class ReconcileResult:
    """
    Outcome of reconciling one slot.

    success: True when the stored counter now matches the computed count
    booked_count: computed count (None when it could not be computed)
    previous: stored counter before reconciliation
    changed: True when a write was performed
    not_found: True when the slot does not exist
    """

    slot_id: str
    success: bool
    booked_count: Optional[int] = None
    previous: Optional[int] = None
    changed: bool = False
    error: Optional[str] = None
    not_found: bool = False
    trek_key: Optional[str] = None
    date: Optional[date] = None
    capacity: Optional[int] = None

    @property
    def over_capacity(self) -> bool:
        return (
            self.booked_count is not None
            and self.capacity is not None
            and self.booked_count > self.capacity
        )


@dataclass(frozen=True, slots=True)
class BulkReconcileResult:
    success: bool
    total_slots: int
    updated_slots: int
    results: List[ReconcileResult] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def errors(self) -> List[str]:
        return [f"Slot {r.slot_id}: {r.error}" for r in self.results if not r.success]


@dataclass(frozen=True, slots=True)
class SlotAudit:
    slot_id: str
    trek_key: str
    date: date
    capacity: int
    stored: int
    computed: int

    @property
    def in_sync(self) -> bool:
        return self.stored == self.computed

    @property
    def over_capacity(self) -> bool:
        return self.computed > self.capacity

    @property
    def available(self) -> int:
        return max(0, self.capacity - self.computed)


@dataclass(frozen=True, slots=True)
class AuditReport:
    slots: List[SlotAudit]

    @property
    def total_slots(self) -> int:
        return len(self.slots)

    @property
    def out_of_sync(self) -> int:
        return sum(1 for s in self.slots if not s.in_sync)

    @property
    def in_sync(self) -> int:
        return self.total_slots - self.out_of_sync

    @property
    def over_capacity(self) -> int:
        return sum(1 for s in self.slots if s.over_capacity)

    def recommendations(self) -> List[str]:
        notes: List[str] = []
        if self.out_of_sync:
            notes.append(f"{self.out_of_sync} slots are out of sync and need synchronization")
        if self.out_of_sync > self.total_slots * 0.5:
            notes.append("Consider running a full synchronization")
        if self.over_capacity:
            notes.append(
                f"{self.over_capacity} slots hold more participants than their capacity; "
                "review their bookings manually"
            )
        if not self.out_of_sync and not self.over_capacity:
            notes.append("All slots are in sync")
        return notes


class CapacityReconciler:
    def __init__(self, slots: SlotRepository, bookings: BookingRepository):
        self._slots = slots
        self._bookings = bookings

    def compute_booked_count(self, slot_id: str) -> int:
        """
        Participants held on `slot_id` by counting-set bookings.

        Raises DataStoreError when bookings cannot be read.
        """

        return compute_booked_count(self._bookings.counting_rows_for_slot(slot_id))

    def reconcile_one(self, slot_id: str) -> ReconcileResult:
        """
        Make the slot's stored booked value equal to the computed count.

        Performs no write when they already agree, so a second call with no
        intervening booking change is a no-op. Never raises for datastore
        failures; they are reported on the result.
        """

        for _attempt in range(_MAX_WRITE_ATTEMPTS):
            try:
                slot = self._slots.get(slot_id)
            except DataStoreError as exc:
                return ReconcileResult(slot_id=slot_id, success=False, error=str(exc))
            if slot is None:
                return ReconcileResult(slot_id=slot_id, success=False, error="Slot not found", not_found=True)

            try:
                computed = self.compute_booked_count(slot_id)
            except DataStoreError as exc:
                logger.error(
                    f"Could not count bookings for slot {slot_id}; leaving stored value",
                    extra={"slot_id": slot_id, "stored": slot.booked},
                )
                return self._result(slot, success=False, error=str(exc))

            if computed == slot.booked:
                return self._result(slot, success=True, booked_count=computed)

            try:
                written = self._slots.write_booked(slot_id, expected=slot.booked, booked=computed)
            except DataStoreError as exc:
                return self._result(slot, success=False, booked_count=computed, error=str(exc))

            if written:
                logger.info(
                    f"Corrected booked count for slot {slot_id}: {slot.booked} -> {computed}",
                    extra={"slot_id": slot_id, "stored": slot.booked, "computed": computed},
                )
                if computed > slot.capacity:
                    logger.warning(
                        f"Slot {slot_id} is overbooked: {computed} of {slot.capacity}",
                        extra={"slot_id": slot_id, "computed": computed, "capacity": slot.capacity},
                    )
                return self._result(slot, success=True, booked_count=computed, changed=True)

            # The counter moved under us; read it again and recompute.

        return ReconcileResult(
            slot_id=slot_id,
            success=False,
            error="Slot counter kept changing during reconciliation",
        )

    def reconcile_trek(self, trek_key: str) -> BulkReconcileResult:
        try:
            slots = self._slots.list_by_trek(trek_key)
        except DataStoreError as exc:
            return BulkReconcileResult(success=False, total_slots=0, updated_slots=0, error=str(exc))
        return self._reconcile_many(slots)

    def reconcile_all(self) -> BulkReconcileResult:
        try:
            slots = self._slots.list_all()
        except DataStoreError as exc:
            return BulkReconcileResult(success=False, total_slots=0, updated_slots=0, error=str(exc))
        return self._reconcile_many(slots)

    def audit_all(self, trek_key: Optional[str] = None) -> AuditReport:
        """
        Compare stored and computed counts for every slot. Read-only.

        Raises DataStoreError when slots or bookings cannot be read.
        """

        slots = self._slots.list_by_trek(trek_key) if trek_key else self._slots.list_all()
        grouped = self._bookings.counting_rows_for_slots([s.slot_id for s in slots])
        audits = [
            SlotAudit(
                slot_id=s.slot_id,
                trek_key=s.trek_key,
                date=s.date,
                capacity=s.capacity,
                stored=s.booked,
                computed=compute_booked_count(grouped.get(s.slot_id, [])),
            )
            for s in slots
        ]
        report = AuditReport(slots=audits)
        if report.out_of_sync or report.over_capacity:
            logger.warning(
                "Slot audit found drift",
                extra={
                    "total_slots": report.total_slots,
                    "out_of_sync": report.out_of_sync,
                    "over_capacity": report.over_capacity,
                },
            )
        return report

    def _reconcile_many(self, slots: List[Slot]) -> BulkReconcileResult:
        results = [self.reconcile_one(slot.slot_id) for slot in slots]
        failures = [r for r in results if not r.success]
        if failures:
            logger.error(
                f"{len(failures)} of {len(results)} slots failed to reconcile",
                extra={"failed_slots": [r.slot_id for r in failures]},
            )
        return BulkReconcileResult(
            success=not failures,
            total_slots=len(results),
            updated_slots=sum(1 for r in results if r.success),
            results=results,
            error=f"{len(failures)} slots failed to update" if failures else None,
        )

    @staticmethod
    def _result(
        slot: Slot,
        *,
        success: bool,
        booked_count: Optional[int] = None,
        changed: bool = False,
        error: Optional[str] = None,
    ) -> ReconcileResult:
        return ReconcileResult(
            slot_id=slot.slot_id,
            success=success,
            booked_count=booked_count,
            previous=slot.booked,
            changed=changed,
            error=error,
            trek_key=slot.trek_key,
            date=slot.date,
            capacity=slot.capacity,
        )


__all__ = [
    "AuditReport",
    "BulkReconcileResult",
    "CapacityReconciler",
    "ReconcileResult",
    "SlotAudit",
]
