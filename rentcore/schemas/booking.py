"""Booking-related Pydantic schemas."""

from datetime import date, datetime
from decimal import Decimal
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class BookingBase(BaseModel):
    """Base booking schema."""

    listing_id: UUID
    start_date: date
    end_date: date
    adults: int = Field(default=1, ge=1, le=20)
    children: int = Field(default=0, ge=0, le=10)

    @field_validator("end_date")
    @classmethod
    def validate_end_date(cls, v: date, info) -> date:
        start_date = info.data.get("start_date")
        if start_date and v <= start_date:
            raise ValueError("end_date must be after start_date")
        return v


class BookingQuoteRequest(BookingBase):
    """Schema for pricing a stay without booking it."""


class GuestContact(BaseModel):
    """Contact details printed on a cash voucher."""

    full_name: str | None = Field(None, max_length=200)
    phone: str | None = Field(None, max_length=30)
    email: str | None = Field(None, max_length=255)


class BookingCreate(BookingBase):
    """Schema for creating a booking."""

    infants: int = Field(default=0, ge=0, le=5)
    payment_method: Literal["card", "cash_voucher"]
    contact: GuestContact | None = None


class BookingPriceBreakdown(BaseModel):
    """Schema for booking price breakdown."""

    model_config = ConfigDict(from_attributes=True)

    base_price: int
    nights: int
    subtotal: int
    cleaning_fee: int
    guest_service_fee: int
    host_commission: int
    service_fee: int
    total_amount: int
    host_payout: int
    platform_revenue: int
    security_deposit: int
    currency: str
    guest_fee_rate: Decimal
    host_commission_rate: Decimal


class BookingQuoteResponse(BaseModel):
    """Schema for a priced stay."""

    listing_id: UUID
    start_date: date
    end_date: date
    check_in_at: datetime
    check_out_at: datetime
    commission_category: str
    price_breakdown: BookingPriceBreakdown


class BookingResponse(BaseModel):
    """Schema for booking response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    booking_number: str
    listing_id: UUID
    guest_id: UUID
    host_id: UUID

    # Stay
    start_date: date
    end_date: date
    check_in_at: datetime
    check_out_at: datetime
    nights: int
    adults: int
    children: int
    infants: int

    # Pricing snapshot
    base_price: int
    subtotal: int
    cleaning_fee: int
    guest_service_fee: int
    host_commission: int
    service_fee: int
    total_amount: int
    host_payout: int
    security_deposit: int
    currency: str
    commission_category: str

    # Payment & status
    payment_method: str
    payment_status: str
    payment_expires_at: datetime
    status: str
    refund_amount: int
    cancellation_reason: str | None

    # Timestamps
    paid_at: datetime | None
    confirmed_at: datetime | None
    completed_at: datetime | None
    cancelled_at: datetime | None
    expired_at: datetime | None
    created_at: datetime


class BookingListResponse(BaseModel):
    """Schema for a page of bookings."""

    items: list[BookingResponse]
    limit: int
    offset: int


class CardPaymentHandle(BaseModel):
    """Card intent the client confirms with the processor."""

    method: Literal["card"] = "card"
    intent_id: str
    client_secret: str | None
    amount: int
    currency: str
    expires_at: datetime


class VoucherPaymentHandle(BaseModel):
    """Cash voucher the guest pays at an agency."""

    method: Literal["cash_voucher"] = "cash_voucher"
    voucher_id: UUID
    voucher_number: str
    amount: int
    currency: str
    expires_at: datetime
    instructions: dict | None = None


class BookingCreateResponse(BaseModel):
    """Schema for a newly created booking and how to pay for it."""

    booking: BookingResponse
    payment: CardPaymentHandle | VoucherPaymentHandle = Field(discriminator="method")


class BookingCancelRequest(BaseModel):
    """Schema for cancelling a booking."""

    reason: str | None = Field(None, max_length=1000)
