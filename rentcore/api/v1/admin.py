"""Admin endpoints: commission settings."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from rentcore.api.deps import DbSession, get_current_admin
from rentcore.models.commission import CommissionRate, CommissionRateHistory
from rentcore.models.user import User
from rentcore.schemas.commission import (
    CommissionHistoryResponse,
    CommissionRateResponse,
    CommissionUpdateRequest,
)
from rentcore.services.commission_service import commission_service

router = APIRouter()


@router.get("/commissions", response_model=list[CommissionRateResponse])
async def get_commission_rates(
    current_user: Annotated[User, Depends(get_current_admin)],
    db: DbSession,
) -> list[CommissionRate]:
    """Current commission and guest fee rates."""
    return await commission_service.get_rates(db)


@router.put("/commissions", response_model=list[CommissionHistoryResponse])
async def update_commission_rates(
    data: CommissionUpdateRequest,
    current_user: Annotated[User, Depends(get_current_admin)],
    db: DbSession,
) -> list[CommissionRateHistory]:
    """Change one or more rates. Either every change applies or none does."""
    return await commission_service.bulk_update(db, data.rates, current_user.id, data.reason)


@router.get("/commissions/{category}/history", response_model=list[CommissionHistoryResponse])
async def get_commission_history(
    category: str,
    current_user: Annotated[User, Depends(get_current_admin)],
    db: DbSession,
    limit: int = Query(20, ge=1, le=100),
) -> list[CommissionRateHistory]:
    """Most recent changes to one rate."""
    return await commission_service.get_history(db, category, limit)
