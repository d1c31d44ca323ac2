"""Notification and email delivery.

Both channels are fire-and-forget: failures are logged and never raised,
so a notification problem can not undo a booking or payment.
"""

import logging
from typing import Any
from uuid import UUID

import httpx

from rentcore.config import settings

logger = logging.getLogger(__name__)

SENDGRID_SEND_URL = "https://api.sendgrid.com/v3/mail/send"


class NotificationService:
    """Service for sending notifications and transactional emails."""

    # Notification types
    BOOKING_REQUESTED = "booking_requested"
    BOOKING_CONFIRMED = "booking_confirmed"
    BOOKING_PAID = "booking_paid"
    BOOKING_CANCELLED = "booking_cancelled"
    BOOKING_EXPIRED = "booking_expired"
    BOOKING_COMPLETED = "booking_completed"
    PAYMENT_RECEIVED = "payment_received"
    VOUCHER_ISSUED = "voucher_issued"
    ESCROW_RELEASED = "escrow_released"
    ESCROW_FROZEN = "escrow_frozen"
    DISPUTE_OPENED = "dispute_opened"
    DISPUTE_RESOLVED = "dispute_resolved"
    DISPUTE_CLOSED = "dispute_closed"
    PAYOUT_SCHEDULED = "payout_scheduled"

    def __init__(self) -> None:
        self._http_client: httpx.AsyncClient | None = None

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Lazy-load HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=10.0)
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def notify(
        self,
        recipient_id: UUID,
        notification_type: str,
        payload: dict[str, Any] | None = None,
    ) -> bool:
        """Send an in-app notification through the notification service.

        Returns:
            bool: True if the notification service accepted it
        """
        if not settings.notification_service_url:
            logger.info(f"Notification {notification_type} for user {recipient_id}: {payload}")
            return False

        try:
            response = await self.http_client.post(
                f"{settings.notification_service_url.rstrip('/')}/notifications",
                json={
                    "recipient_id": str(recipient_id),
                    "type": notification_type,
                    "payload": payload or {},
                },
            )
            response.raise_for_status()
            return True
        except Exception as e:
            logger.error(f"Failed to send {notification_type} to {recipient_id}: {e}")
            return False

    async def send_email(
        self,
        template: str,
        to_email: str | None,
        payload: dict[str, Any] | None = None,
    ) -> bool:
        """Send a templated email via SendGrid.

        Args:
            template: SendGrid dynamic template ID
            to_email: Recipient email
            payload: Dynamic template data

        Returns:
            bool: True if sent successfully
        """
        if not settings.sendgrid_api_key or not to_email:
            return False

        try:
            response = await self.http_client.post(
                SENDGRID_SEND_URL,
                headers={
                    "Authorization": f"Bearer {settings.sendgrid_api_key}",
                    "Content-Type": "application/json",
                },
                json={
                    "personalizations": [
                        {"to": [{"email": to_email}], "dynamic_template_data": payload or {}}
                    ],
                    "from": {
                        "email": settings.email_from_address,
                        "name": settings.email_from_name,
                    },
                    "template_id": template,
                },
            )
            return response.status_code in (200, 202)
        except Exception as e:
            logger.error(f"Failed to send {template} email to {to_email}: {e}")
            return False

    async def notify_many(
        self,
        recipient_ids: list[UUID],
        notification_type: str,
        payload: dict[str, Any] | None = None,
    ) -> None:
        for recipient_id in recipient_ids:
            await self.notify(recipient_id, notification_type, payload)


notification_service = NotificationService()
