"""Custom application exceptions.

Grouped by how callers are expected to react: validation errors are
user-correctable, conflict errors mean the record is not in a state that
allows the action, external errors come from a collaborator, and integrity
errors mean the request would unbalance money or settings.
"""

from typing import Any

from fastapi import HTTPException, status


class AppException(HTTPException):
    """Base application exception."""

    def __init__(
        self,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail: str = "An unexpected error occurred",
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(status_code=status_code, detail=detail, headers=headers)


# ============ Validation ============


class ValidationError(AppException):
    """Validation error exception."""

    def __init__(self, detail: str = "Validation failed", errors: list[dict[str, Any]] | None = None) -> None:
        self.errors = errors
        super().__init__(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail)


class InvalidDateRange(ValidationError):
    """Check-out is not after check-in."""

    def __init__(self, detail: str = "End date must be after start date") -> None:
        super().__init__(detail)


class StayLengthError(ValidationError):
    """Requested nights fall outside the listing's min/max stay."""


# ============ Access ============


class NotFoundError(AppException):
    """Resource not found exception."""

    def __init__(self, resource: str = "Resource", identifier: str | None = None) -> None:
        detail = f"{resource} not found"
        if identifier:
            detail = f"{resource} with ID '{identifier}' not found"
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class AuthenticationError(AppException):
    """Authentication failed exception."""

    def __init__(self, detail: str = "Authentication failed") -> None:
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class AuthorizationError(AppException):
    """Authorization denied exception."""

    def __init__(self, detail: str = "You don't have permission to access this resource") -> None:
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class ListingNotAvailable(AppException):
    """Listing not available exception."""

    def __init__(self, detail: str = "This listing is not available") -> None:
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


# ============ Conflict ============


class ConflictError(AppException):
    """The target record is not in a state that allows the operation."""

    def __init__(self, detail: str = "The resource is in a conflicting state") -> None:
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class DatesNotAvailable(ConflictError):
    """Dates not available exception."""

    def __init__(self, detail: str = "The selected dates are not available") -> None:
        super().__init__(detail)


class InvalidTransition(ConflictError):
    """A status transition was rejected or lost a concurrent race."""

    def __init__(self, entity: str, current: str | None, target: str) -> None:
        self.entity = entity
        self.current = current
        self.target = target
        super().__init__(f"Invalid {entity} transition: {current} → {target}")


class DuplicateEscrowHold(ConflictError):
    """An escrow entry already exists for the booking."""

    def __init__(self, booking_id: Any) -> None:
        super().__init__(f"Escrow already exists for booking {booking_id}")


class EscrowFrozen(ConflictError):
    """Escrow funds are blocked by an open dispute."""

    def __init__(self, detail: str = "Escrow is frozen by an open dispute") -> None:
        super().__init__(detail)


# ============ External dependencies ============


class PaymentError(AppException):
    """Payment processing error."""

    def __init__(self, detail: str = "Payment processing failed") -> None:
        super().__init__(status_code=status.HTTP_402_PAYMENT_REQUIRED, detail=detail)


class ExternalServiceError(AppException):
    """External service error."""

    def __init__(self, service: str, detail: str | None = None) -> None:
        message = f"External service '{service}' is unavailable"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=message)


class VoucherIssuanceError(ExternalServiceError):
    """The cash voucher could not be issued."""

    def __init__(self, detail: str | None = None) -> None:
        super().__init__("voucher_issuer", detail)


# ============ Integrity ============


class LedgerIntegrityError(AppException):
    """The operation would leave money or rate settings inconsistent."""

    def __init__(self, detail: str = "Ledger integrity check failed") -> None:
        super().__init__(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail)
