"""Escrow-related Pydantic schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class EscrowEventResponse(BaseModel):
    """Schema for one escrow ledger entry."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    action: str
    from_status: str | None
    to_status: str
    amount: int
    actor_id: UUID | None
    reason: str | None
    details: dict | None
    created_at: datetime


class EscrowResponse(BaseModel):
    """Schema for escrow response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    booking_id: UUID
    host_id: UUID
    held_amount: int
    currency: str
    payment_method: str
    status: str
    held_at: datetime
    release_eligible_at: datetime
    release_reference: str | None
    release_type: str | None
    released_at: datetime | None
    freeze_reason: str | None
    frozen_at: datetime | None
    host_share: int | None
    guest_share: int | None
    resolved_at: datetime | None
    payout_id: UUID | None


class EscrowDetailResponse(EscrowResponse):
    """Escrow with its ledger."""

    events: list[EscrowEventResponse] = []


class EscrowReleaseRequest(BaseModel):
    """Schema for an admin release."""

    note: str | None = Field(None, max_length=1000)


class EscrowFreezeRequest(BaseModel):
    """Schema for an admin freeze."""

    reason: str = Field(..., min_length=1, max_length=50)


class EscrowSplitRequest(BaseModel):
    """Schema for an admin split of a frozen escrow."""

    host_share: int = Field(..., ge=0)
    guest_share: int = Field(..., ge=0)
    note: str | None = Field(None, max_length=1000)


class EscrowListResponse(BaseModel):
    """Schema for a page of escrow entries."""

    items: list[EscrowResponse]
    total: int
    limit: int
    offset: int


class EscrowStatusStats(BaseModel):
    status: str
    count: int
    total_amount: int
    average_amount: int


class EscrowCurrencyStats(BaseModel):
    currency: str
    count: int
    total_amount: int
    held_amount: int
    released_amount: int


class EscrowStatsResponse(BaseModel):
    """Schema for escrow totals by status and currency."""

    by_status: list[EscrowStatusStats]
    by_currency: list[EscrowCurrencyStats]
