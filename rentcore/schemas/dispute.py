"""Dispute-related Pydantic schemas."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class DisputeCreate(BaseModel):
    """Schema for opening a dispute."""

    booking_id: UUID
    reason: str = Field(..., min_length=1, max_length=50)
    description: str = Field(..., min_length=1, max_length=5000)


class DisputeResponse(BaseModel):
    """Schema for dispute response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    booking_id: UUID
    reporter_id: UUID
    reporter_role: str
    reason: str
    description: str
    status: str
    priority: str
    assigned_to: UUID | None
    resolution: str | None
    host_ratio: Decimal | None
    resolved_at: datetime | None
    closed_at: datetime | None
    created_at: datetime


class DisputeNoteCreate(BaseModel):
    """Schema for adding a note to a dispute."""

    message: str = Field(..., min_length=1, max_length=5000)


class DisputeNoteResponse(BaseModel):
    """Schema for dispute note response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    author_id: UUID
    body: str
    created_at: datetime


class DisputeEvidenceCreate(BaseModel):
    """Schema for attaching evidence."""

    url: str = Field(..., min_length=1, max_length=1000)
    evidence_type: str = Field(default="image", pattern="^(image|document|message)$")
    description: str | None = Field(None, max_length=1000)


class DisputeEvidenceResponse(BaseModel):
    """Schema for dispute evidence response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    uploaded_by: UUID
    evidence_type: str
    url: str
    description: str | None
    created_at: datetime


class DisputeDetailResponse(DisputeResponse):
    """Dispute with its notes and evidence."""

    notes: list[DisputeNoteResponse] = []
    evidence: list[DisputeEvidenceResponse] = []


class DisputeReviewRequest(BaseModel):
    """Schema for an admin taking a dispute under review."""

    priority: str | None = Field(None, pattern="^(low|normal|high|urgent)$")


class DisputeResolveRequest(BaseModel):
    """Schema for resolving a dispute."""

    resolution: str = Field(..., min_length=1, max_length=5000)
    host_share_ratio: Decimal = Field(..., ge=0, le=1)


class DisputeCloseRequest(BaseModel):
    """Schema for closing a dispute without a split."""

    note: str | None = Field(None, max_length=1000)
