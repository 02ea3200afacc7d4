#!/usr/bin/env python3
"""
Slot Reconciliation Sweep

Compares every slot's stored booked count with the participants actually
held by bookings, and optionally repairs the drift.

By default this is a read-only audit. With --fix every slot (or every slot of
one trek) is reconciled. Overbooked slots are only reported; cancelling a
booking stays an operator decision.

Usage:
    python reconcile_slots.py
    python reconcile_slots.py --fix
    python reconcile_slots.py --fix --trek kedarkantha
    python reconcile_slots.py --fix --loop

Schedule via cron (every 15 minutes):
    */15 * * * * cd /app/trek-bookings && python scripts/reconcile_slots.py --fix

Exit code is 1 when drift remains or any slot failed to reconcile.
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path
from typing import Optional

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from domain.errors import DataStoreError
from repositories.booking_repository import BookingRepository
from repositories.client import get_supabase_client
from repositories.slot_repository import SlotRepository
from services.reconciliation_service import AuditReport, BulkReconcileResult, CapacityReconciler
from settings import get_settings


def print_audit(report: AuditReport) -> None:
    """Print the audit table and summary."""
    print()
    print("=" * 70)
    print("SLOT AUDIT")
    print("=" * 70)
    print(f"{'Trek':<24} {'Date':<12} {'Capacity':>8} {'Stored':>8} {'Actual':>8}  Status")
    print("-" * 70)
    for s in report.slots:
        if s.over_capacity:
            status = "OVERBOOKED"
        elif not s.in_sync:
            status = "DRIFT"
        else:
            status = "ok"
        print(f"{s.trek_key:<24} {s.date.isoformat():<12} {s.capacity:>8} {s.stored:>8} {s.computed:>8}  {status}")
    print("-" * 70)
    print(f"Total Slots:              {report.total_slots}")
    print(f"In Sync:                  {report.in_sync}")
    print(f"Out Of Sync:              {report.out_of_sync}")
    print(f"Over Capacity:            {report.over_capacity}")
    print()
    for note in report.recommendations():
        print(f"  - {note}")
    print("=" * 70)


def print_repair(result: BulkReconcileResult) -> None:
    """Print the repair summary."""
    changed = [r for r in result.results if r.changed]
    overbooked = [r for r in result.results if r.over_capacity]

    print()
    print("=" * 70)
    print("SLOT RECONCILIATION SUMMARY")
    print("=" * 70)
    print(f"Total Slots:              {result.total_slots}")
    print(f"Reconciled:               {result.updated_slots}")
    print(f"Corrected:                {len(changed)}")
    print(f"Over Capacity:            {len(overbooked)}")
    for r in changed:
        print(f"  {r.trek_key} {r.date}: {r.previous} -> {r.booked_count}")
    for r in overbooked:
        print(f"  WARNING: {r.trek_key} {r.date} holds {r.booked_count} of {r.capacity} places")
    if result.error:
        print()
        print(f"ERROR: {result.error}")
        for line in result.errors:
            print(f"  {line}")
    print("=" * 70)


def run_once(reconciler: CapacityReconciler, *, fix: bool, trek: Optional[str]) -> int:
    """
    Run one audit or repair pass and return the exit code.

    A repair pass is followed by an audit so overbooking left after the
    repair still fails the run. Datastore failures end the pass with exit
    code 1 instead of raising, so a looping sweep carries on.
    """
    if fix:
        result = reconciler.reconcile_trek(trek) if trek else reconciler.reconcile_all()
        print_repair(result)
        if not result.success:
            return 1

    try:
        report = reconciler.audit_all(trek)
    except DataStoreError as e:
        print(f"\nERROR: audit failed: {e}", file=sys.stderr)
        return 1
    print_audit(report)
    return 1 if report.out_of_sync or report.over_capacity else 0


def main() -> int:
    """Main entry point for the CLI."""
    settings = get_settings()
    parser = argparse.ArgumentParser(
        description="Audit and repair trek slot booked counts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Report drift without writing anything
  python reconcile_slots.py

  # Repair every slot
  python reconcile_slots.py --fix

  # Repair one trek
  python reconcile_slots.py --fix --trek kedarkantha

  # Keep running, repairing every RECONCILE_INTERVAL_MINUTES minutes
  python reconcile_slots.py --fix --loop
        """
    )

    parser.add_argument(
        "--fix",
        action="store_true",
        help="Write corrected booked counts (default: audit only)"
    )

    parser.add_argument(
        "--trek",
        type=str,
        help="Only look at slots of this trek slug"
    )

    parser.add_argument(
        "--loop",
        action="store_true",
        help="Repeat forever instead of running once"
    )

    parser.add_argument(
        "--interval",
        type=int,
        default=settings.reconcile_interval_minutes,
        help=f"Minutes between passes with --loop (default: {settings.reconcile_interval_minutes})"
    )

    args = parser.parse_args()
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    try:
        client = get_supabase_client()
        reconciler = CapacityReconciler(SlotRepository(client), BookingRepository(client))

        while True:
            try:
                code = run_once(reconciler, fix=args.fix, trek=args.trek)
            except Exception as e:
                if not args.loop:
                    raise
                # One bad pass must not stop the sweep.
                print(f"\nERROR: pass failed: {e}", file=sys.stderr)
                code = 1
            if not args.loop:
                return code
            print(f"\nNext pass in {args.interval} minutes...")
            time.sleep(max(1, args.interval) * 60)

    except KeyboardInterrupt:
        print("\n\nReconciliation interrupted by user")
        return 130

    except Exception as e:
        print(f"\nFATAL ERROR: {e}", file=sys.stderr)
        import traceback
        traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
