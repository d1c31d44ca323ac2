"""Stripe card processor."""

import json
import logging

import stripe

from rentcore.config import settings
from rentcore.gateways.base import CardProcessor, GatewayResult

logger = logging.getLogger(__name__)


class StripeGateway(CardProcessor):
    """Stripe payment intents, refunds and webhook verification."""

    def __init__(self, secret_key: str | None = None, webhook_secret: str | None = None):
        self.secret_key = secret_key or settings.stripe_secret_key
        self.webhook_secret = webhook_secret or settings.stripe_webhook_secret

    async def create_payment(
        self,
        amount: int,
        currency: str,
        reference_id: str,
        description: str,
        metadata: dict | None = None,
        idempotency_key: str | None = None,
    ) -> GatewayResult:
        """Create Stripe PaymentIntent."""
        if not self.secret_key:
            return GatewayResult(success=False, error_message="Stripe not configured")

        try:
            stripe.api_key = self.secret_key
            intent = stripe.PaymentIntent.create(
                amount=amount,
                currency=currency.lower(),
                description=description,
                metadata={"reference_id": reference_id, **(metadata or {})},
                idempotency_key=idempotency_key,
            )
            return GatewayResult(
                success=True,
                transaction_id=intent.id,
                raw_response={"client_secret": intent.client_secret, "id": intent.id},
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe intent creation failed for {reference_id}: {e}")
            return GatewayResult(success=False, error_message=str(e))

    async def cancel_payment(self, transaction_id: str) -> GatewayResult:
        """Cancel an uncaptured Stripe PaymentIntent."""
        if not self.secret_key:
            return GatewayResult(success=False, error_message="Stripe not configured")

        try:
            stripe.api_key = self.secret_key
            intent = stripe.PaymentIntent.cancel(transaction_id)
            return GatewayResult(
                success=intent.status == "canceled",
                transaction_id=transaction_id,
                raw_response={"status": intent.status},
            )
        except stripe.StripeError as e:
            logger.warning(f"Stripe intent cancel failed for {transaction_id}: {e}")
            return GatewayResult(success=False, error_message=str(e))

    async def process_refund(self, transaction_id: str, amount: int, reason: str) -> GatewayResult:
        """Process Stripe refund."""
        if not self.secret_key:
            return GatewayResult(success=False, error_message="Stripe not configured")

        try:
            stripe.api_key = self.secret_key
            refund = stripe.Refund.create(
                payment_intent=transaction_id,
                amount=amount,
                reason="requested_by_customer",
                metadata={"reason": reason[:500]},
            )
            return GatewayResult(
                success=refund.status in ("succeeded", "pending"),
                transaction_id=refund.id,
                raw_response={"status": refund.status, "id": refund.id},
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe refund failed for {transaction_id}: {e}")
            return GatewayResult(success=False, error_message=str(e))

    def verify_webhook(self, payload: bytes, signature: str) -> dict | None:
        """Verify Stripe webhook signature."""
        if not self.webhook_secret:
            return None

        try:
            stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except (ValueError, stripe.SignatureVerificationError) as e:
            logger.warning(f"Rejected Stripe webhook: {e}")
            return None
        return json.loads(payload)
