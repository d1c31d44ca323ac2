"""Idempotency protection for financial operations."""

import hashlib
import json
import logging
from typing import Any
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from rentcore.models.payment import ProcessedPaymentEvent

logger = logging.getLogger(__name__)


def generate_idempotency_key(
    operation: str,
    entity_id: UUID | str,
    params: dict[str, Any] | None = None,
) -> str:
    """Generate a deterministic idempotency key.

    Args:
        operation: Operation name (e.g., "card_intent_create")
        entity_id: Primary entity ID
        params: Additional parameters to include in key

    Returns:
        SHA256 hash of operation + entity + params
    """
    key_data = {
        "operation": operation,
        "entity_id": str(entity_id),
        "params": params or {},
    }
    key_str = json.dumps(key_data, sort_keys=True, default=str)
    return hashlib.sha256(key_str.encode()).hexdigest()


async def claim_event(
    db: AsyncSession,
    event_id: str,
    source: str,
    booking_ref: str | None = None,
) -> bool:
    """Record an external payment event id as processed.

    The insert runs inside a SAVEPOINT so a duplicate only rolls back the
    claim, not the caller's transaction.

    Returns:
        True if this is the first time the event is seen, False on replay
    """
    try:
        async with db.begin_nested():
            db.add(
                ProcessedPaymentEvent(
                    event_id=event_id, source=source, booking_ref=booking_ref
                )
            )
    except IntegrityError:
        logger.info(f"Payment event {event_id} already processed, skipping")
        return False
    return True
