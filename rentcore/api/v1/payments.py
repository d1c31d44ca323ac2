"""Payment endpoints: cash voucher lookup and validation."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends

from rentcore.api.deps import DbSession, Now, get_current_admin, get_current_user
from rentcore.core.exceptions import ConflictError
from rentcore.models.payment import CashVoucher
from rentcore.models.user import User
from rentcore.schemas.payment import (
    VoucherResponse,
    VoucherValidateRequest,
    VoucherValidateResponse,
)
from rentcore.services.booking_service import booking_service
from rentcore.services.payment_service import payment_service

router = APIRouter()


@router.get("/vouchers/{booking_id}", response_model=VoucherResponse)
async def get_voucher(
    booking_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: DbSession,
    now: Now,
) -> CashVoucher:
    """Get the cash voucher of a booking."""
    booking = await booking_service.get(db, booking_id)
    booking_service.ensure_access(booking, current_user)
    voucher = await payment_service.get_voucher(db, booking_id=booking.id)
    if voucher.status == "pending":
        await payment_service.check_voucher_expiry(db, voucher, now)
    return voucher


@router.post("/vouchers/validate", response_model=VoucherValidateResponse)
async def validate_voucher(
    request: VoucherValidateRequest,
    current_user: Annotated[User, Depends(get_current_admin)],
    db: DbSession,
    now: Now,
) -> VoucherValidateResponse:
    """Record an agency cash receipt for a voucher (admin)."""
    result = await payment_service.validate_voucher(
        db,
        current_user,
        now,
        agency_code=request.agency_code,
        transaction_id=request.transaction_id,
        voucher_id=request.voucher_id,
        booking_id=request.booking_id,
        notes=request.notes,
    )
    if result.expired:
        # Keep the expiry, still report the failed validation
        await db.commit()
        raise ConflictError(f"Voucher {result.voucher.voucher_number} has expired")

    return VoucherValidateResponse(
        voucher=VoucherResponse.model_validate(result.voucher),
        booking_id=result.booking.id,
        booking_status=result.booking.status,
        captured=result.captured,
        already_validated=result.already_validated,
    )
