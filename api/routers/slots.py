"""
Slots API Endpoints.

Public slot listing plus operator slot management.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from api.dependencies import Services, get_services, require_admin
from api.models import SlotCreateRequest, SlotListResponse, SlotResponse, SlotUpdateRequest
from domain.account import Account
from domain.slot import Slot

router = APIRouter()


def slot_response(slot: Slot) -> SlotResponse:
    return SlotResponse(
        id=slot.slot_id,
        trek_key=slot.trek_key,
        date=slot.date,
        capacity=slot.capacity,
        booked=slot.booked,
        available=slot.available,
        status=slot.status,
    )


@router.get(
    "/slots",
    response_model=SlotListResponse,
    summary="List Slots",
    description="List slots ordered by date with booked counts recomputed from bookings."
)
def list_slots(
    trek: Optional[str] = Query(None, description="Trek slug (e.g., 'kedarkantha')"),
    available_only: bool = Query(False, description="Only open slots with places left"),
    services: Services = Depends(get_services),
):
    """
    List trek slots.

    **Example usage:**
    - All slots for a trek: `GET /api/slots?trek=kedarkantha`
    - Bookable dates only: `GET /api/slots?trek=kedarkantha&available_only=true`
    """
    slots = services.slots.list_slots(trek, available_only=available_only)
    return SlotListResponse(slots=[slot_response(s) for s in slots])


@router.post(
    "/slots",
    response_model=SlotResponse,
    status_code=201,
    summary="Create Slot",
)
def create_slot(
    request: SlotCreateRequest,
    _admin: Account = Depends(require_admin),
    services: Services = Depends(get_services),
):
    slot = services.slots.create_slot(request.trek_key, request.date, request.capacity, request.status)
    return slot_response(slot)


@router.patch(
    "/slots/{slot_id}",
    response_model=SlotResponse,
    summary="Update Slot",
    description="Edit capacity, date or status. The booked count cannot be set directly."
)
def update_slot(
    slot_id: str,
    request: SlotUpdateRequest,
    _admin: Account = Depends(require_admin),
    services: Services = Depends(get_services),
):
    slot = services.slots.update_slot(
        slot_id,
        capacity=request.capacity,
        on=request.date,
        status=request.status,
    )
    return slot_response(slot)


@router.delete(
    "/slots/{slot_id}",
    summary="Delete Slot",
    description="Delete a slot that no booking references."
)
def delete_slot(
    slot_id: str,
    _admin: Account = Depends(require_admin),
    services: Services = Depends(get_services),
):
    services.slots.delete_slot(slot_id)
    return {"success": True, "message": "Slot deleted"}
