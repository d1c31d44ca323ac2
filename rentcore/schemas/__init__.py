"""Pydantic schemas for API validation."""

from rentcore.schemas.booking import (
    BookingCancelRequest,
    BookingCreate,
    BookingCreateResponse,
    BookingQuoteRequest,
    BookingQuoteResponse,
    BookingResponse,
)
from rentcore.schemas.commission import (
    CommissionHistoryResponse,
    CommissionRateResponse,
    CommissionUpdateRequest,
)
from rentcore.schemas.dispute import (
    DisputeCreate,
    DisputeDetailResponse,
    DisputeResolveRequest,
    DisputeResponse,
)
from rentcore.schemas.escrow import EscrowDetailResponse, EscrowResponse
from rentcore.schemas.payment import (
    VoucherResponse,
    VoucherValidateRequest,
    VoucherValidateResponse,
)
from rentcore.schemas.payout import BankAccountCreate, BankAccountResponse, PayoutResponse

__all__ = [
    "BankAccountCreate",
    "BankAccountResponse",
    "BookingCancelRequest",
    "BookingCreate",
    "BookingCreateResponse",
    "BookingQuoteRequest",
    "BookingQuoteResponse",
    "BookingResponse",
    "CommissionHistoryResponse",
    "CommissionRateResponse",
    "CommissionUpdateRequest",
    "DisputeCreate",
    "DisputeDetailResponse",
    "DisputeResolveRequest",
    "DisputeResponse",
    "EscrowDetailResponse",
    "EscrowResponse",
    "PayoutResponse",
    "VoucherResponse",
    "VoucherValidateRequest",
    "VoucherValidateResponse",
]
