"""Escrow endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from rentcore.api.deps import DbSession, Now, get_current_admin, get_current_user
from rentcore.models.escrow import Escrow
from rentcore.models.user import User
from rentcore.schemas.escrow import (
    EscrowDetailResponse,
    EscrowEventResponse,
    EscrowFreezeRequest,
    EscrowListResponse,
    EscrowReleaseRequest,
    EscrowResponse,
    EscrowSplitRequest,
    EscrowStatsResponse,
)
from rentcore.services.booking_service import booking_service
from rentcore.services.escrow_service import escrow_service

router = APIRouter()


@router.get("/", response_model=EscrowListResponse)
async def list_escrows(
    current_user: Annotated[User, Depends(get_current_admin)],
    db: DbSession,
    status_filter: str | None = Query(None, alias="status"),
    currency: str | None = Query(None, min_length=3, max_length=3),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
) -> EscrowListResponse:
    """List escrow entries across all bookings (admin)."""
    escrows, total = await escrow_service.list_escrows(db, status_filter, currency, limit, offset)
    return EscrowListResponse(
        items=[EscrowResponse.model_validate(e) for e in escrows],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/stats", response_model=EscrowStatsResponse)
async def get_escrow_stats(
    current_user: Annotated[User, Depends(get_current_admin)],
    db: DbSession,
) -> EscrowStatsResponse:
    """Escrow totals by status and currency (admin)."""
    return EscrowStatsResponse.model_validate(await escrow_service.stats(db))


@router.get("/{booking_id}", response_model=EscrowDetailResponse)
async def get_escrow(
    booking_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: DbSession,
) -> EscrowDetailResponse:
    """Get the escrow entry of a booking with its ledger."""
    booking = await booking_service.get(db, booking_id)
    booking_service.ensure_access(booking, current_user)
    escrow = await escrow_service.get_or_404(db, booking.id)
    events = await escrow_service.get_events(db, escrow.id)
    response = EscrowDetailResponse.model_validate(escrow)
    response.events = [EscrowEventResponse.model_validate(e) for e in events]
    return response


@router.post("/{booking_id}/release", response_model=EscrowResponse)
async def release_escrow(
    booking_id: UUID,
    request: EscrowReleaseRequest,
    current_user: Annotated[User, Depends(get_current_admin)],
    db: DbSession,
    now: Now,
) -> Escrow:
    """Release held funds to the host ahead of schedule (admin)."""
    return await escrow_service.manual_release(db, booking_id, current_user.id, now, request.note)


@router.post("/{booking_id}/freeze", response_model=EscrowResponse)
async def freeze_escrow(
    booking_id: UUID,
    request: EscrowFreezeRequest,
    current_user: Annotated[User, Depends(get_current_admin)],
    db: DbSession,
    now: Now,
) -> Escrow:
    """Stop automatic release (admin)."""
    return await escrow_service.freeze(db, booking_id, request.reason, now, current_user.id)


@router.post("/{booking_id}/unfreeze", response_model=EscrowResponse)
async def unfreeze_escrow(
    booking_id: UUID,
    request: EscrowReleaseRequest,
    current_user: Annotated[User, Depends(get_current_admin)],
    db: DbSession,
    now: Now,
) -> Escrow:
    """Return a frozen escrow to held (admin)."""
    return await escrow_service.unfreeze(db, booking_id, now, current_user.id, request.note)


@router.post("/{booking_id}/split", response_model=EscrowResponse)
async def split_escrow(
    booking_id: UUID,
    request: EscrowSplitRequest,
    current_user: Annotated[User, Depends(get_current_admin)],
    db: DbSession,
    now: Now,
) -> Escrow:
    """Divide a frozen escrow between host and guest (admin)."""
    return await escrow_service.split(
        db,
        booking_id,
        host_share=request.host_share,
        guest_share=request.guest_share,
        resolver_id=current_user.id,
        now=now,
        note=request.note,
    )
