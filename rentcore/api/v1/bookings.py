"""Booking endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from rentcore.api.deps import DbSession, Now, get_current_host, get_current_user
from rentcore.gateways.base import CardHandle, PaymentHandle
from rentcore.models.booking import Booking
from rentcore.models.user import User
from rentcore.schemas.booking import (
    BookingCancelRequest,
    BookingCreate,
    BookingCreateResponse,
    BookingListResponse,
    BookingPriceBreakdown,
    BookingQuoteRequest,
    BookingQuoteResponse,
    BookingResponse,
    CardPaymentHandle,
    VoucherPaymentHandle,
)
from rentcore.services.booking_service import booking_service

router = APIRouter()


def _payment_handle(handle: PaymentHandle) -> CardPaymentHandle | VoucherPaymentHandle:
    if isinstance(handle, CardHandle):
        return CardPaymentHandle(
            intent_id=handle.intent_id,
            client_secret=handle.client_secret,
            amount=handle.amount,
            currency=handle.currency,
            expires_at=handle.expires_at,
        )
    return VoucherPaymentHandle(
        voucher_id=handle.voucher_id,
        voucher_number=handle.voucher_number,
        amount=handle.amount,
        currency=handle.currency,
        expires_at=handle.expires_at,
        instructions=handle.instructions,
    )


@router.post("/quote", response_model=BookingQuoteResponse)
async def quote_booking(
    request: BookingQuoteRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    db: DbSession,
    now: Now,
) -> BookingQuoteResponse:
    """Price a stay without creating a booking."""
    quote = await booking_service.quote(
        db,
        current_user,
        request.listing_id,
        request.start_date,
        request.end_date,
        now,
        adults=request.adults,
        children=request.children,
    )
    return BookingQuoteResponse(
        listing_id=quote.listing.id,
        start_date=quote.start_date,
        end_date=quote.end_date,
        check_in_at=quote.check_in_at,
        check_out_at=quote.check_out_at,
        commission_category=quote.commission_category,
        price_breakdown=BookingPriceBreakdown.model_validate(quote.pricing),
    )


@router.post("/", response_model=BookingCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    request: BookingCreate,
    current_user: Annotated[User, Depends(get_current_user)],
    db: DbSession,
    now: Now,
) -> BookingCreateResponse:
    """Create a booking and its payment vehicle."""
    booking, handle = await booking_service.create(
        db,
        current_user,
        request.listing_id,
        request.start_date,
        request.end_date,
        request.payment_method,
        now,
        adults=request.adults,
        children=request.children,
        infants=request.infants,
        contact=request.contact.model_dump(exclude_none=True) if request.contact else None,
    )
    return BookingCreateResponse(
        booking=BookingResponse.model_validate(booking),
        payment=_payment_handle(handle),
    )


@router.get("/", response_model=BookingListResponse)
async def list_bookings(
    current_user: Annotated[User, Depends(get_current_user)],
    db: DbSession,
    status_filter: str | None = Query(None, alias="status"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
) -> BookingListResponse:
    """List bookings where the user is guest or host."""
    bookings = await booking_service.list_for_user(db, current_user, status_filter, limit, offset)
    return BookingListResponse(
        items=[BookingResponse.model_validate(b) for b in bookings],
        limit=limit,
        offset=offset,
    )


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: DbSession,
    now: Now,
) -> Booking:
    """Get a booking. An unpaid booking past its window is expired on read."""
    booking = await booking_service.get(db, booking_id)
    booking_service.ensure_access(booking, current_user)
    await booking_service.expire_if_overdue(db, booking, now)
    return booking


@router.post("/{booking_id}/accept", response_model=BookingResponse)
async def accept_booking(
    booking_id: UUID,
    current_user: Annotated[User, Depends(get_current_host)],
    db: DbSession,
    now: Now,
) -> Booking:
    """Host accepts a paid booking request."""
    return await booking_service.accept(db, booking_id, current_user, now)


@router.post("/{booking_id}/reject", response_model=BookingResponse)
async def reject_booking(
    booking_id: UUID,
    request: BookingCancelRequest,
    current_user: Annotated[User, Depends(get_current_host)],
    db: DbSession,
    now: Now,
) -> Booking:
    """Host declines a paid booking request."""
    return await booking_service.reject(db, booking_id, current_user, now, request.reason)


@router.post("/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(
    booking_id: UUID,
    request: BookingCancelRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    db: DbSession,
    now: Now,
) -> Booking:
    """Cancel a booking before the stay starts."""
    return await booking_service.cancel(db, booking_id, current_user, now, request.reason)


@router.post("/{booking_id}/complete", response_model=BookingResponse)
async def complete_booking(
    booking_id: UUID,
    current_user: Annotated[User, Depends(get_current_host)],
    db: DbSession,
    now: Now,
) -> Booking:
    """Host marks an active stay as completed."""
    return await booking_service.complete(db, booking_id, current_user, now)
