"""
API Request and Response Models.

Pydantic models for validating API requests and serializing responses.
"""

import datetime as dt
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from domain.booking import BookingStatus, PaymentStatus
from domain.slot import SlotStatus


# ============================================================================
# Slot Models
# ============================================================================

class SlotResponse(BaseModel):
    """Single slot with a recomputed booked count."""
    id: str
    trek_key: str
    date: dt.date
    capacity: int
    booked: int
    available: int
    status: SlotStatus

    class Config:
        json_schema_extra = {
            "example": {
                "id": "9b2f6a0e-7d51-4c8e-a1f3-0c6c5e1d2b7a",
                "trek_key": "kedarkantha",
                "date": "2026-12-21",
                "capacity": 12,
                "booked": 4,
                "available": 8,
                "status": "open"
            }
        }


class SlotListResponse(BaseModel):
    """Response for slot listing."""
    slots: List[SlotResponse]


class SlotCreateRequest(BaseModel):
    """Request to create a slot. `booked` is never accepted."""
    trek_key: str = Field(..., min_length=1, description="Trek slug")
    date: dt.date
    capacity: int = Field(..., ge=1)
    status: SlotStatus = SlotStatus.OPEN

    class Config:
        json_schema_extra = {
            "example": {
                "trek_key": "kedarkantha",
                "date": "2026-12-21",
                "capacity": 12,
                "status": "open"
            }
        }


class SlotUpdateRequest(BaseModel):
    """Request to edit a slot. Omitted fields are left unchanged."""
    capacity: Optional[int] = Field(None, ge=1)
    date: Optional[dt.date] = None
    status: Optional[SlotStatus] = None


# ============================================================================
# Booking Models
# ============================================================================

class BookingCreateRequest(BaseModel):
    """Request to book a trek date. The customer email comes from the session."""
    trek_key: str = Field(..., min_length=1)
    date: dt.date
    participants: int = Field(..., description="Number of participants (1-20)")
    customer_name: str
    customer_phone: Optional[str] = None
    special_requirements: Optional[str] = None
    pickup_location: Optional[str] = None
    terms_accepted: bool = False
    liability_waiver_accepted: bool = False
    fitness_consent: bool = False
    voucher_code: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "trek_key": "kedarkantha",
                "date": "2026-12-21",
                "participants": 4,
                "customer_name": "Asha Rawat",
                "customer_phone": "+91 98100 00000",
                "pickup_location": "Dehradun ISBT",
                "terms_accepted": True,
                "liability_waiver_accepted": True,
                "fitness_consent": True,
                "voucher_code": "WINTER20"
            }
        }


class BookingUpdateRequest(BaseModel):
    """Request to move a booking to another status. An empty body is rejected."""
    status: Optional[BookingStatus] = None
    payment_status: Optional[PaymentStatus] = None

    class Config:
        json_schema_extra = {
            "example": {
                "status": "approved"
            }
        }


class BookingResponse(BaseModel):
    """Single booking."""
    id: str
    trek_key: str
    slot_id: str
    booking_date: dt.date
    participants: int
    status: BookingStatus
    payment_status: PaymentStatus
    total_amount: Decimal
    discount_amount: Decimal
    voucher_id: Optional[str] = None
    customer_name: str
    customer_email: str
    customer_phone: Optional[str] = None
    special_requirements: Optional[str] = None
    pickup_location: Optional[str] = None
    terms_accepted: bool
    liability_waiver_accepted: bool
    fitness_consent: bool
    user_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class BookingListResponse(BaseModel):
    bookings: List[BookingResponse]
    total_count: int


# ============================================================================
# Reconciliation Models
# ============================================================================

class SyncRequest(BaseModel):
    """Pick exactly one scope: a slot, a trek, or everything."""
    trek_slug: Optional[str] = Field(None, alias="trekSlug")
    slot_id: Optional[str] = Field(None, alias="slotId")
    sync_all: bool = Field(False, alias="syncAll")

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "trekSlug": "kedarkantha"
            }
        }


class SlotSyncResult(BaseModel):
    """Outcome for one slot."""
    slot_id: str = Field(..., alias="slotId")
    success: bool
    trek_key: Optional[str] = Field(None, alias="trekSlug")
    date: Optional[dt.date] = None
    previous: Optional[int] = Field(None, alias="oldBooked")
    booked_count: Optional[int] = Field(None, alias="newBooked")
    changed: bool = Field(False, alias="updated")
    over_capacity: bool = Field(False, alias="overCapacity")
    error: Optional[str] = None

    class Config:
        populate_by_name = True


class SyncResponse(BaseModel):
    """Reconciliation report."""
    success: bool
    message: str
    total_slots: int = Field(..., alias="totalSlots")
    updated_slots: int = Field(..., alias="updatedSlots")
    results: List[SlotSyncResult]
    errors: List[str] = []

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "success": True,
                "message": "Trek slots synchronized for kedarkantha",
                "totalSlots": 2,
                "updatedSlots": 2,
                "results": [],
                "errors": []
            }
        }


class SlotAuditResponse(BaseModel):
    slot_id: str = Field(..., alias="slotId")
    trek_key: str = Field(..., alias="trekSlug")
    date: dt.date
    capacity: int
    stored: int = Field(..., alias="currentBooked")
    computed: int = Field(..., alias="actualBooked")
    in_sync: bool = Field(..., alias="inSync")
    over_capacity: bool = Field(..., alias="overCapacity")
    available: int

    class Config:
        populate_by_name = True


class AuditResponse(BaseModel):
    """Read-only drift report."""
    total_slots: int = Field(..., alias="totalSlots")
    out_of_sync: int = Field(..., alias="outOfSync")
    in_sync: int = Field(..., alias="inSync")
    over_capacity: int = Field(..., alias="overCapacity")
    slots: List[SlotAuditResponse]
    recommendations: List[str]

    class Config:
        populate_by_name = True


# ============================================================================
# Voucher Models
# ============================================================================

class VoucherValidateRequest(BaseModel):
    """Request to check a voucher against an order amount."""
    code: str = Field(..., min_length=1)
    amount: Decimal = Field(..., ge=0)
    user_id: Optional[str] = Field(None, alias="userId")

    class Config:
        populate_by_name = True
        json_schema_extra = {
            "example": {
                "code": "winter20",
                "amount": "10000",
                "userId": "5d0c1c4e-92f6-4f57-8a59-5b1b3f0b0e11"
            }
        }


class VoucherResponse(BaseModel):
    id: str
    code: str
    discount_percent: int
    description: Optional[str] = None
    valid_until: Optional[datetime] = None
    user_id: Optional[str] = None
    is_active: bool
    is_used: bool
    max_uses: int
    current_uses: int
    minimum_amount: Optional[Decimal] = None
    maximum_discount: Optional[Decimal] = None
    used_at: Optional[datetime] = None
    used_by: Optional[str] = None
    booking_id: Optional[str] = None
    created_at: Optional[datetime] = None


class VoucherValidateResponse(BaseModel):
    valid: bool
    voucher: Optional[VoucherResponse] = None
    discount_amount: Optional[Decimal] = None
    final_amount: Optional[Decimal] = None
    error: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "valid": True,
                "discount_amount": "1500",
                "final_amount": "8500"
            }
        }


class VoucherListResponse(BaseModel):
    vouchers: List[VoucherResponse]


class VoucherCreateRequest(BaseModel):
    code: str = Field(..., min_length=1)
    discount_percent: int = Field(..., description="Percentage off (1-100)")
    description: Optional[str] = None
    valid_until: Optional[datetime] = None
    user_id: Optional[str] = None
    minimum_amount: Optional[Decimal] = None
    maximum_discount: Optional[Decimal] = None
    max_uses: int = 1
    is_active: bool = True

    class Config:
        json_schema_extra = {
            "example": {
                "code": "WINTER20",
                "discount_percent": 20,
                "maximum_discount": "1500",
                "valid_until": "2027-03-31T18:29:59Z",
                "max_uses": 1
            }
        }


class VoucherUpdateRequest(BaseModel):
    is_active: bool


# ============================================================================
# Error Models
# ============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str

    class Config:
        json_schema_extra = {
            "example": {
                "error": "Not enough places left on this date. Requested: 2, Available: 1"
            }
        }
