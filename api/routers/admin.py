"""
Admin API Endpoints.

Booking overview, CSV export and slot capacity reconciliation for operators.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from api.dependencies import Services, get_services, require_admin
from api.models import (
    AuditResponse,
    BookingListResponse,
    SlotAuditResponse,
    SlotSyncResult,
    SyncRequest,
    SyncResponse,
)
from api.routers.bookings import booking_list_response
from domain.account import Account
from domain.booking import BookingStatus
from domain.errors import SlotNotFoundError, ValidationError
from services.booking_export_service import ExportScope
from services.reconciliation_service import BulkReconcileResult, ReconcileResult

router = APIRouter()


def _sync_result(result: ReconcileResult) -> SlotSyncResult:
    return SlotSyncResult(
        slot_id=result.slot_id,
        success=result.success,
        trek_key=result.trek_key,
        date=result.date,
        previous=result.previous,
        booked_count=result.booked_count,
        changed=result.changed,
        over_capacity=result.over_capacity,
        error=result.error,
    )


def _bulk_response(bulk: BulkReconcileResult, message: str) -> SyncResponse:
    return SyncResponse(
        success=bulk.success,
        message=message if bulk.success else f"{message} with errors: {bulk.error}",
        total_slots=bulk.total_slots,
        updated_slots=bulk.updated_slots,
        results=[_sync_result(r) for r in bulk.results],
        errors=bulk.errors if bulk.results else ([bulk.error] if bulk.error else []),
    )


@router.get(
    "/admin/bookings",
    response_model=BookingListResponse,
    summary="List All Bookings",
)
def list_all_bookings(
    status: Optional[BookingStatus] = Query(None, description="Filter by booking status"),
    _admin: Account = Depends(require_admin),
    services: Services = Depends(get_services),
):
    return booking_list_response(services.bookings.list_all(status))


@router.get(
    "/admin/bookings/export",
    summary="Export Bookings as CSV",
    description="Download bookings as CSV, either all of them or those for a date, date range, slot, trek or user."
)
def export_bookings(
    scope: ExportScope = Query(ExportScope.ALL, description="all, date, slot, trek or user"),
    value: Optional[str] = Query(None, description="Date (YYYY-MM-DD), slot id, trek slug, user id or email"),
    date_from: Optional[date] = Query(None, alias="from", description="Range start for scope=date"),
    date_to: Optional[date] = Query(None, alias="to", description="Range end for scope=date"),
    _admin: Account = Depends(require_admin),
    services: Services = Depends(get_services),
):
    """
    Export bookings as a CSV download.

    **Example usage:**
    - Everything: `GET /api/admin/bookings/export`
    - One trek: `GET /api/admin/bookings/export?scope=trek&value=kedarkantha`
    - A month: `GET /api/admin/bookings/export?scope=date&from=2026-12-01&to=2026-12-31`

    Customer-entered text is sanitized against spreadsheet formula injection.
    """
    export = services.exports.export_csv(scope, value, date_from, date_to)
    return Response(
        content=export.content,
        media_type="text/csv; charset=utf-8",
        headers={
            "Content-Disposition": f"attachment; filename={export.filename}"
        }
    )


@router.post(
    "/admin/slots/sync",
    response_model=SyncResponse,
    summary="Synchronize Slot Booked Counts",
    description="Recompute booked counts from bookings for one slot, one trek, or every slot."
)
def sync_slots(
    request: SyncRequest,
    response: Response,
    _admin: Account = Depends(require_admin),
    services: Services = Depends(get_services),
):
    """
    Repair drift between stored and computed booked counts.

    **Example requests:**
    - One slot: `{"slotId": "..."}`
    - One trek: `{"trekSlug": "kedarkantha"}`
    - Everything: `{"syncAll": true}`

    Slots holding more participants than their capacity are reported with
    `overCapacity: true`; no booking is ever cancelled automatically.
    Responds 404 for an unknown slotId and 500 when any slot could not be
    reconciled.
    """
    if request.sync_all:
        result = _bulk_response(services.reconciler.reconcile_all(), "All slots synchronized")
    elif request.trek_slug:
        result = _bulk_response(
            services.reconciler.reconcile_trek(request.trek_slug),
            f"Trek slots synchronized for {request.trek_slug}",
        )
    elif request.slot_id:
        one = services.reconciler.reconcile_one(request.slot_id)
        if one.not_found:
            raise SlotNotFoundError(f"Slot not found: {request.slot_id}")
        result = SyncResponse(
            success=one.success,
            message="Slot synchronized" if one.success else f"Failed to sync slot: {one.error}",
            total_slots=1,
            updated_slots=1 if one.success else 0,
            results=[_sync_result(one)],
            errors=[] if one.success else [f"Slot {one.slot_id}: {one.error}"],
        )
    else:
        raise ValidationError("Please specify trekSlug, slotId, or set syncAll to true")

    if not result.success:
        response.status_code = 500
    return result


@router.get(
    "/admin/slots/sync",
    response_model=AuditResponse,
    summary="Slot Sync Status",
    description="Read-only comparison of stored and computed booked counts."
)
def slot_sync_status(
    trek: Optional[str] = Query(None, description="Limit the audit to one trek"),
    _admin: Account = Depends(require_admin),
    services: Services = Depends(get_services),
):
    report = services.reconciler.audit_all(trek)
    return AuditResponse(
        total_slots=report.total_slots,
        out_of_sync=report.out_of_sync,
        in_sync=report.in_sync,
        over_capacity=report.over_capacity,
        slots=[
            SlotAuditResponse(
                slot_id=s.slot_id,
                trek_key=s.trek_key,
                date=s.date,
                capacity=s.capacity,
                stored=s.stored,
                computed=s.computed,
                in_sync=s.in_sync,
                over_capacity=s.over_capacity,
                available=s.available,
            )
            for s in report.slots
        ],
        recommendations=report.recommendations(),
    )
