"""
Vouchers API Endpoints.

Public voucher validation plus operator voucher management.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from api.dependencies import Services, get_services, require_admin
from api.models import (
    VoucherCreateRequest,
    VoucherListResponse,
    VoucherResponse,
    VoucherUpdateRequest,
    VoucherValidateRequest,
    VoucherValidateResponse,
)
from domain.account import Account
from domain.voucher import Voucher
from services.voucher_service import VoucherValidation

router = APIRouter()


def voucher_response(voucher: Voucher) -> VoucherResponse:
    return VoucherResponse(
        id=voucher.voucher_id,
        code=voucher.code,
        discount_percent=voucher.discount_percent,
        description=voucher.description,
        valid_until=voucher.valid_until,
        user_id=voucher.user_id,
        is_active=voucher.is_active,
        is_used=voucher.is_used,
        max_uses=voucher.max_uses,
        current_uses=voucher.current_uses,
        minimum_amount=voucher.minimum_amount,
        maximum_discount=voucher.maximum_discount,
        used_at=voucher.used_at,
        used_by=voucher.used_by,
        booking_id=voucher.booking_id,
        created_at=voucher.created_at,
    )


def _validation_response(result: VoucherValidation) -> VoucherValidateResponse:
    return VoucherValidateResponse(
        valid=result.valid,
        voucher=voucher_response(result.voucher) if result.valid and result.voucher else None,
        discount_amount=result.discount_amount,
        final_amount=result.final_amount,
        error=result.error,
    )


@router.post(
    "/vouchers/validate",
    response_model=VoucherValidateResponse,
    summary="Validate Voucher",
    description="Check a voucher code against an order amount without redeeming it."
)
def validate_voucher(request: VoucherValidateRequest, services: Services = Depends(get_services)):
    """
    Validate a voucher code.

    Rejections are reported in the body with `valid: false`, not as HTTP errors.

    **Example response:**
    ```json
    {"valid": true, "discount_amount": "1500", "final_amount": "8500"}
    ```
    """
    result = services.vouchers.validate(request.code, request.amount, request.user_id)
    return _validation_response(result)


@router.get(
    "/vouchers/validate",
    response_model=VoucherValidateResponse,
    summary="Check Voucher Eligibility",
    description="Check a voucher code for a user without an order amount."
)
def check_voucher(
    code: str = Query(..., min_length=1),
    user_id: Optional[str] = Query(None, alias="userId"),
    services: Services = Depends(get_services),
):
    result = services.vouchers.validate(code, None, user_id)
    return _validation_response(result)


@router.get(
    "/admin/vouchers",
    response_model=VoucherListResponse,
    summary="List Vouchers",
)
def list_vouchers(
    _admin: Account = Depends(require_admin),
    services: Services = Depends(get_services),
):
    return VoucherListResponse(vouchers=[voucher_response(v) for v in services.vouchers.list_vouchers()])


@router.post(
    "/admin/vouchers",
    response_model=VoucherResponse,
    status_code=201,
    summary="Create Voucher",
)
def create_voucher(
    request: VoucherCreateRequest,
    _admin: Account = Depends(require_admin),
    services: Services = Depends(get_services),
):
    voucher = services.vouchers.create_voucher(
        code=request.code,
        discount_percent=request.discount_percent,
        valid_until=request.valid_until,
        user_id=request.user_id,
        description=request.description,
        minimum_amount=request.minimum_amount,
        maximum_discount=request.maximum_discount,
        max_uses=request.max_uses,
        is_active=request.is_active,
    )
    return voucher_response(voucher)


@router.patch(
    "/admin/vouchers/{voucher_id}",
    response_model=VoucherResponse,
    summary="Activate or Deactivate Voucher",
)
def update_voucher(
    voucher_id: str,
    request: VoucherUpdateRequest,
    _admin: Account = Depends(require_admin),
    services: Services = Depends(get_services),
):
    return voucher_response(services.vouchers.set_active(voucher_id, request.is_active))


@router.delete(
    "/admin/vouchers/{voucher_id}",
    summary="Delete Voucher",
    description="Delete a voucher that has never been used."
)
def delete_voucher(
    voucher_id: str,
    _admin: Account = Depends(require_admin),
    services: Services = Depends(get_services),
):
    services.vouchers.delete_voucher(voucher_id)
    return {"success": True, "message": "Voucher deleted"}
