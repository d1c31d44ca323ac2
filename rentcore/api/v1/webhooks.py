"""Webhook endpoints for payment processors."""

import logging

from fastapi import APIRouter, Header, HTTPException, Request, status

from rentcore.api.deps import DbSession, Now
from rentcore.schemas.payment import WebhookAck
from rentcore.services.gateway_service import gateway_service
from rentcore.services.payment_service import payment_service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/card", response_model=WebhookAck, status_code=status.HTTP_200_OK)
async def card_webhook(
    request: Request,
    db: DbSession,
    now: Now,
    stripe_signature: str | None = Header(None, alias="Stripe-Signature"),
) -> WebhookAck:
    """Handle card processor events."""
    payload = await request.body()
    event = gateway_service.verify_card_webhook(payload, stripe_signature or "")
    if event is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid webhook signature",
        )

    event_type = event.get("type")
    data = event.get("data", {}).get("object", {})
    intent_id = data.get("id")
    if not event.get("id") or not intent_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid payload")

    if event_type == "payment_intent.succeeded":
        result = await payment_service.confirm_payment(db, event["id"], intent_id, now)
        return WebhookAck(success=result.success, duplicate=result.duplicate, message=result.message)

    if event_type == "payment_intent.payment_failed":
        error = data.get("last_payment_error") or {}
        recorded = await payment_service.record_card_failure(
            db, event["id"], intent_id, error.get("message") or "Payment failed"
        )
        return WebhookAck(success=recorded)

    logger.debug(f"Ignoring card event {event_type}")
    return WebhookAck(message=f"Ignored {event_type}")
