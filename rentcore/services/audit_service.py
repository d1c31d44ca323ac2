"""Administrative audit trail service."""

from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from rentcore.models.admin import AuditLog


class AuditService:
    """Service for immutable audit logging of admin and money-moving actions."""

    # Actions that require audit logging
    FINANCIAL_ACTIONS = {
        "escrow_manual_release",
        "escrow_freeze",
        "escrow_split",
        "voucher_validate",
        "booking_cancel",
        "dispute_resolve",
        "dispute_close",
        "commission_update",
        "payout_create",
    }

    async def log_financial_action(
        self,
        db: AsyncSession,
        user_id: UUID | None,
        action: str,
        resource_type: str,
        resource_id: UUID | None,
        old_values: dict[str, Any] | None = None,
        new_values: dict[str, Any] | None = None,
    ) -> AuditLog:
        """Log a financial action (immutable).

        Args:
            db: Database session
            user_id: User performing the action
            action: Action name (e.g., "escrow_manual_release")
            resource_type: Resource type (e.g., "escrow", "commission_rate")
            resource_id: Resource ID
            old_values: Previous state
            new_values: New state

        Returns:
            Created audit log entry
        """
        audit = AuditLog(
            user_id=user_id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            old_values=old_values,
            new_values=new_values,
        )
        db.add(audit)
        return audit

    async def log_status_change(
        self,
        db: AsyncSession,
        user_id: UUID | None,
        action: str,
        resource_type: str,
        resource_id: UUID,
        old_status: str | None,
        new_status: str,
        **extra: Any,
    ) -> AuditLog:
        """Log a status transition with optional extra fields on the new state."""
        new_values: dict[str, Any] = {"status": new_status}
        new_values.update({key: _jsonable(value) for key, value in extra.items() if value is not None})
        return await self.log_financial_action(
            db=db,
            user_id=user_id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            old_values={"status": old_status} if old_status else None,
            new_values=new_values,
        )


def _jsonable(value: Any) -> Any:
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return str(value)


audit_service = AuditService()
