"""Core utilities: errors, security, persistence guards."""

from rentcore.core.exceptions import (
    AppException,
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    DatesNotAvailable,
    DuplicateEscrowHold,
    EscrowFrozen,
    ExternalServiceError,
    InvalidDateRange,
    InvalidTransition,
    LedgerIntegrityError,
    ListingNotAvailable,
    NotFoundError,
    PaymentError,
    StayLengthError,
    ValidationError,
    VoucherIssuanceError,
)

__all__ = [
    "AppException",
    "AuthenticationError",
    "AuthorizationError",
    "ConflictError",
    "DatesNotAvailable",
    "DuplicateEscrowHold",
    "EscrowFrozen",
    "ExternalServiceError",
    "InvalidDateRange",
    "InvalidTransition",
    "LedgerIntegrityError",
    "ListingNotAvailable",
    "NotFoundError",
    "PaymentError",
    "StayLengthError",
    "ValidationError",
    "VoucherIssuanceError",
]
