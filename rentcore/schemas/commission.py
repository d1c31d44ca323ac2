"""Commission settings schemas."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class CommissionRateResponse(BaseModel):
    """Schema for one live rate."""

    model_config = ConfigDict(from_attributes=True)

    category: str
    rate: Decimal
    min_value: Decimal
    max_value: Decimal
    version: int
    updated_by: UUID | None
    updated_at: datetime


class CommissionUpdateRequest(BaseModel):
    """Schema for changing one or more rates at once."""

    rates: dict[str, Decimal] = Field(..., min_length=1)
    reason: str | None = Field(None, max_length=500)


class CommissionHistoryResponse(BaseModel):
    """Schema for a rate change history entry."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    category: str
    previous_value: Decimal
    new_value: Decimal
    version: int
    changed_by: UUID
    reason: str | None
    changed_at: datetime
