"""Payment-related Pydantic schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator


class VoucherResponse(BaseModel):
    """Schema for a cash voucher."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    booking_id: UUID
    voucher_number: str
    amount: int
    currency: str
    guest_full_name: str
    guest_phone: str
    status: str
    expires_at: datetime
    instructions: dict | None
    agency_code: str | None
    agency_transaction_id: str | None
    validated_at: datetime | None


class VoucherValidateRequest(BaseModel):
    """Schema for recording an agency cash receipt."""

    voucher_id: UUID | None = None
    booking_id: UUID | None = None
    agency_code: str = Field(..., min_length=1, max_length=50)
    transaction_id: str = Field(..., min_length=1, max_length=100)
    notes: str | None = Field(None, max_length=1000)

    @model_validator(mode="after")
    def require_reference(self) -> "VoucherValidateRequest":
        if self.voucher_id is None and self.booking_id is None:
            raise ValueError("voucher_id or booking_id is required")
        return self


class VoucherValidateResponse(BaseModel):
    """Schema for the outcome of a voucher validation."""

    voucher: VoucherResponse
    booking_id: UUID
    booking_status: str
    captured: bool
    already_validated: bool = False


class WebhookAck(BaseModel):
    """Acknowledgement returned to the card processor."""

    received: bool = True
    success: bool = True
    duplicate: bool = False
    message: str | None = None
