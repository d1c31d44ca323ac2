"""Celery background tasks.

Every periodic sweep runs here:
- Expiry of unpaid bookings and unanswered requests
- Activation and completion of stays
- Escrow release
- Host payouts
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

from celery import shared_task
from sqlalchemy.ext.asyncio import AsyncSession

from rentcore.database import close_db, get_db_context, utcnow
from rentcore.services.automation_service import automation_service
from rentcore.services.payout_service import payout_service

logger = logging.getLogger(__name__)

Sweep = Callable[[AsyncSession, datetime], Awaitable[Any]]


def run_sweep(sweep: Sweep) -> Any:
    """Run one sweep in its own session and event loop."""

    async def _run() -> Any:
        try:
            async with get_db_context() as db:
                return await sweep(db, utcnow())
        finally:
            # Pooled connections are bound to this event loop
            await close_db()

    return asyncio.run(_run())


# ==================== BOOKING LIFECYCLE ====================


@shared_task(bind=True, max_retries=3)
def expire_unpaid_bookings(self):
    """Expire bookings whose payment window has passed."""
    try:
        count = run_sweep(automation_service.expire_overdue_payments)
        return {"status": "success", "expired": count}
    except Exception as exc:
        logger.exception("expire_unpaid_bookings failed")
        raise self.retry(exc=exc, countdown=60)


@shared_task(bind=True, max_retries=3)
def cancel_unanswered_requests(self):
    """Cancel paid requests the host did not answer in time."""
    try:
        count = run_sweep(automation_service.cancel_unanswered_requests)
        return {"status": "success", "cancelled": count}
    except Exception as exc:
        logger.exception("cancel_unanswered_requests failed")
        raise self.retry(exc=exc, countdown=60)


@shared_task(bind=True, max_retries=3)
def activate_bookings(self):
    """Move confirmed bookings to active at check-in."""
    try:
        count = run_sweep(automation_service.activate_due)
        return {"status": "success", "activated": count}
    except Exception as exc:
        logger.exception("activate_bookings failed")
        raise self.retry(exc=exc, countdown=60)


@shared_task(bind=True, max_retries=3)
def complete_bookings(self):
    """Complete active stays after checkout plus grace."""
    try:
        count = run_sweep(automation_service.complete_due)
        return {"status": "success", "completed": count}
    except Exception as exc:
        logger.exception("complete_bookings failed")
        raise self.retry(exc=exc, countdown=60)


# ==================== ESCROW & PAYOUT ====================


@shared_task(bind=True, max_retries=3)
def release_escrows(self):
    """Release held escrow past its eligibility time."""
    try:
        count = run_sweep(automation_service.release_eligible_escrows)
        return {"status": "success", "released": count}
    except Exception as exc:
        logger.exception("release_escrows failed")
        raise self.retry(exc=exc, countdown=300)


@shared_task(bind=True, max_retries=3)
def process_daily_payouts(self):
    """Batch released escrow into host payouts.

    Runs daily at the configured payout hour.
    """
    try:
        payouts = run_sweep(payout_service.run_payouts)
        return {"status": "success", "payouts": len(payouts)}
    except Exception as exc:
        logger.exception("process_daily_payouts failed")
        raise self.retry(exc=exc, countdown=300)
