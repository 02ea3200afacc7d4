"""
Bookings API Endpoints.

Customers create and cancel their own bookings; administrators move them
through approval, confirmation and completion.
"""

from fastapi import APIRouter, Depends

from api.dependencies import Services, get_current_account, get_services, require_admin
from api.models import BookingCreateRequest, BookingListResponse, BookingResponse, BookingUpdateRequest
from domain.account import Account
from domain.booking import Actor, Booking, LegalConsent
from domain.errors import ForbiddenError, ValidationError
from services.booking_service import BookingRequest

router = APIRouter()


def booking_response(booking: Booking) -> BookingResponse:
    return BookingResponse(
        id=booking.booking_id,
        trek_key=booking.trek_key,
        slot_id=booking.slot_id,
        booking_date=booking.booking_date,
        participants=booking.participants,
        status=booking.status,
        payment_status=booking.payment_status,
        total_amount=booking.total_amount,
        discount_amount=booking.discount_amount,
        voucher_id=booking.voucher_id,
        customer_name=booking.customer.name,
        customer_email=booking.customer.email,
        customer_phone=booking.customer.phone,
        special_requirements=booking.customer.special_requirements,
        pickup_location=booking.customer.pickup_location,
        terms_accepted=booking.consent.terms_accepted,
        liability_waiver_accepted=booking.consent.liability_waiver_accepted,
        fitness_consent=booking.consent.fitness_consent,
        user_id=booking.user_id,
        created_at=booking.created_at,
        updated_at=booking.updated_at,
    )


def booking_list_response(bookings: list[Booking]) -> BookingListResponse:
    return BookingListResponse(
        bookings=[booking_response(b) for b in bookings],
        total_count=len(bookings),
    )


@router.post(
    "/bookings",
    response_model=BookingResponse,
    status_code=201,
    summary="Create Booking",
    description="Book places on a trek date. New bookings wait for approval."
)
def create_booking(
    request: BookingCreateRequest,
    account: Account = Depends(get_current_account),
    services: Services = Depends(get_services),
):
    """
    Create a booking for the signed-in customer.

    **Process:**
    1. Validates participants (1-20), name and required consents
    2. Requires an activated account
    3. Resolves the open slot for the trek and date
    4. Checks places left (advisory)
    5. Prices the booking and redeems the voucher, if given
    6. Stores the booking in `pending_approval` and recounts the slot

    **Failure response (slot full):**
    ```json
    {"error": "Not enough places left on this date. Requested: 2, Available: 1"}
    ```
    """
    booking = services.bookings.create_booking(
        BookingRequest(
            trek_key=request.trek_key,
            date=request.date,
            participants=request.participants,
            customer_name=request.customer_name,
            customer_phone=request.customer_phone,
            special_requirements=request.special_requirements,
            pickup_location=request.pickup_location,
            consent=LegalConsent(
                terms_accepted=request.terms_accepted,
                liability_waiver_accepted=request.liability_waiver_accepted,
                fitness_consent=request.fitness_consent,
            ),
            voucher_code=request.voucher_code,
        ),
        account,
    )
    return booking_response(booking)


@router.get(
    "/bookings",
    response_model=BookingListResponse,
    summary="List My Bookings",
)
def list_my_bookings(
    account: Account = Depends(get_current_account),
    services: Services = Depends(get_services),
):
    return booking_list_response(services.bookings.list_for_user(account.user_id))


@router.get(
    "/bookings/{booking_id}",
    response_model=BookingResponse,
    summary="Get Booking",
)
def get_booking(
    booking_id: str,
    account: Account = Depends(get_current_account),
    services: Services = Depends(get_services),
):
    booking = services.bookings.get_booking(booking_id)
    if not account.is_admin and not booking.is_owned_by(account.user_id):
        raise ForbiddenError("You can only view your own bookings")
    return booking_response(booking)


@router.patch(
    "/bookings/{booking_id}",
    response_model=BookingResponse,
    summary="Change Booking Status",
    description="Administrators may apply any allowed transition; customers may only cancel."
)
def update_booking_status(
    booking_id: str,
    request: BookingUpdateRequest,
    account: Account = Depends(get_current_account),
    services: Services = Depends(get_services),
):
    if request.status is None:
        raise ValidationError("Status is required")

    actor = Actor.admin(account.user_id) if account.is_admin else Actor.customer(account.user_id)
    booking = services.bookings.transition(
        booking_id,
        request.status,
        actor,
        payment_status=request.payment_status,
    )
    return booking_response(booking)


@router.delete(
    "/bookings/{booking_id}",
    summary="Delete Booking",
)
def delete_booking(
    booking_id: str,
    _admin: Account = Depends(require_admin),
    services: Services = Depends(get_services),
):
    services.bookings.delete_booking(booking_id)
    return {"success": True, "message": "Booking deleted"}
