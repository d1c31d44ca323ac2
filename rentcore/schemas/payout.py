"""Payout and bank account schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class BankAccountCreate(BaseModel):
    """Schema for registering a payout bank account."""

    bank_name: str = Field(..., min_length=1, max_length=100)
    account_holder_name: str = Field(..., min_length=1, max_length=200)
    account_number: str = Field(..., min_length=4, max_length=34)
    is_default: bool = True


class BankAccountResponse(BaseModel):
    """Bank account with the number masked."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    bank_name: str
    account_holder_name: str
    account_last4: str
    is_default: bool
    created_at: datetime


class PayoutResponse(BaseModel):
    """Schema for host payout response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    reference: str
    host_id: UUID
    bank_account_id: UUID
    amount: int
    currency: str
    status: str
    booking_ids: list[str]
    created_at: datetime
