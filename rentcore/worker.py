"""Celery worker configuration and periodic schedule."""

from celery import Celery
from celery.schedules import crontab

from rentcore.config import settings
from rentcore.core.immutability import register_immutability_enforcement
from rentcore.core.logging_config import configure_logging

configure_logging()
register_immutability_enforcement()

# Create Celery app
celery_app = Celery(
    "rentcore_tasks",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["rentcore.tasks"],
)

# Celery configuration
celery_app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    # Task execution settings
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_time_limit=300,  # 5 minutes max
    task_soft_time_limit=240,  # Soft limit at 4 minutes

    # Worker settings
    worker_prefetch_multiplier=1,
    worker_concurrency=4,

    # Result backend settings
    result_expires=3600,  # Results expire after 1 hour

    # Retry settings
    task_default_retry_delay=60,  # 1 minute
    task_max_retries=3,

    # Beat schedule for periodic tasks
    beat_schedule={
        "expire-unpaid-bookings": {
            "task": "rentcore.tasks.expire_unpaid_bookings",
            "schedule": crontab(minute="*/5"),
        },
        "cancel-unanswered-requests": {
            "task": "rentcore.tasks.cancel_unanswered_requests",
            "schedule": crontab(minute="*/15"),
        },
        "activate-bookings": {
            "task": "rentcore.tasks.activate_bookings",
            "schedule": crontab(minute="*/15"),
        },
        "complete-bookings": {
            "task": "rentcore.tasks.complete_bookings",
            "schedule": crontab(minute=0),
        },
        "release-escrows": {
            "task": "rentcore.tasks.release_escrows",
            "schedule": crontab(minute=30),
        },
        # Payouts once a day at the configured hour (UTC)
        "process-daily-payouts": {
            "task": "rentcore.tasks.process_daily_payouts",
            "schedule": crontab(hour=settings.payout_time_hour, minute=0),
        },
    },
)


if __name__ == "__main__":
    celery_app.start()
