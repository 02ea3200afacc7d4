#!/usr/bin/env python3
"""
Slot Generation Script

Creates evenly spaced future slots for a trek, skipping dates that already
have a slot and dates in the past.

Usage:
    python generate_slots.py kedarkantha
    python generate_slots.py kedarkantha --months 6 --per-month 4 --capacity 12
    python generate_slots.py kedarkantha --start 2026-12-01 --dry-run
"""

from __future__ import annotations

import argparse
import sys
from datetime import date
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from repositories.booking_repository import BookingRepository
from repositories.client import get_supabase_client
from repositories.slot_repository import SlotRepository
from services.reconciliation_service import CapacityReconciler
from services.slot_service import GenerationResult, SlotService


def print_summary(trek: str, result: GenerationResult, dry_run: bool) -> None:
    """Print slot generation summary."""
    print()
    print("=" * 60)
    print(f"SLOT GENERATION SUMMARY: {trek}")
    print("=" * 60)
    print(f"Created:                  {len(result.created)}")
    print(f"Already Exists:           {len(result.skipped_existing)}")
    print(f"In The Past:              {len(result.skipped_past)}")
    for slot in result.created:
        print(f"  + {slot.date.isoformat()} (capacity {slot.capacity})")
    print()

    if dry_run:
        print("** DRY RUN - No slots were inserted **")
    else:
        print(f"SUCCESS: Created {len(result.created)} slots")

    print("=" * 60)


def main() -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(description="Generate future slots for a trek")

    parser.add_argument("trek", type=str, help="Trek slug")
    parser.add_argument("--start", type=str, help="ISO date of the first month (default: today)")
    parser.add_argument("--months", type=int, default=3, help="Number of months to cover (default: 3)")
    parser.add_argument("--per-month", type=int, default=4, help="Slots per month (default: 4)")
    parser.add_argument("--capacity", type=int, default=20, help="Capacity of each slot (default: 20)")
    parser.add_argument("--dry-run", action="store_true", help="Simulate without inserting slots")

    args = parser.parse_args()

    try:
        today = date.today()
        start = date.fromisoformat(args.start) if args.start else today

        client = get_supabase_client()
        slot_repo = SlotRepository(client)
        booking_repo = BookingRepository(client)
        service = SlotService(slot_repo, booking_repo, CapacityReconciler(slot_repo, booking_repo))

        result = service.generate_slots(
            args.trek,
            start=start,
            months=args.months,
            per_month=args.per_month,
            capacity=args.capacity,
            today=today,
            dry_run=args.dry_run,
        )
        print_summary(args.trek, result, args.dry_run)
        return 0

    except KeyboardInterrupt:
        print("\n\nSlot generation interrupted by user")
        return 130

    except Exception as e:
        print(f"\nFATAL ERROR: {e}", file=sys.stderr)
        import traceback
        traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
