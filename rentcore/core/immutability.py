"""Immutability enforcement for financial records using SQLAlchemy events."""

import logging
from datetime import UTC, datetime

from sqlalchemy import event, inspect

from rentcore.core.exceptions import ValidationError

logger = logging.getLogger(__name__)

_registered = False


class ImmutabilityViolationError(ValidationError):
    """Raised when attempting to modify immutable financial records."""

    def __init__(self, model_name: str, operation: str, record_id: str):
        self.model_name = model_name
        self.operation = operation
        self.record_id = record_id
        super().__init__(
            f"Immutability violation: Cannot {operation} {model_name} record {record_id}. "
            "Financial records are immutable after creation."
        )


def _log_immutability_violation(model_name: str, operation: str, record_id: str) -> None:
    """Log immutability violation for audit purposes."""
    logger.error(
        f"IMMUTABILITY_VIOLATION: Attempted to {operation} {model_name} "
        f"record_id={record_id} at {datetime.now(UTC).isoformat()}"
    )


def _append_only(model) -> None:
    name = model.__name__

    @event.listens_for(model, "before_update")
    def prevent_update(mapper, connection, target):
        _log_immutability_violation(name, "UPDATE", str(target.id))
        raise ImmutabilityViolationError(name, "UPDATE", str(target.id))

    @event.listens_for(model, "before_delete")
    def prevent_delete(mapper, connection, target):
        _log_immutability_violation(name, "DELETE", str(target.id))
        raise ImmutabilityViolationError(name, "DELETE", str(target.id))


def register_immutability_enforcement() -> None:
    """Register SQLAlchemy event listeners for immutability enforcement.

    Safe to call more than once; listeners are attached on the first call.
    """
    global _registered
    if _registered:
        return

    from rentcore.models.admin import AuditLog
    from rentcore.models.booking import PRICING_SNAPSHOT_FIELDS, Booking
    from rentcore.models.commission import CommissionRateHistory
    from rentcore.models.escrow import EscrowEvent

    # ============ Append-only ledgers ============
    for model in (EscrowEvent, CommissionRateHistory, AuditLog):
        _append_only(model)

    # ============ Booking: pricing snapshot is frozen, rows are never deleted ============

    @event.listens_for(Booking, "before_update")
    def prevent_pricing_change(mapper, connection, target):
        state = inspect(target)
        changed = [
            field for field in PRICING_SNAPSHOT_FIELDS
            if state.attrs[field].history.has_changes()
        ]
        if changed:
            operation = f"UPDATE pricing fields {', '.join(changed)} of"
            _log_immutability_violation("Booking", operation, str(target.id))
            raise ImmutabilityViolationError("Booking", operation, str(target.id))

    @event.listens_for(Booking, "before_delete")
    def prevent_booking_delete(mapper, connection, target):
        # Bookings whose payment vehicle was never issued are removed in the
        # same transaction; anything that reached a payment is retained.
        if target.status != "pending_payment" or target.payment_status != "pending":
            _log_immutability_violation("Booking", "DELETE", str(target.id))
            raise ImmutabilityViolationError("Booking", "DELETE", str(target.id))

    _registered = True
    logger.info("Immutability enforcement registered for financial records")
