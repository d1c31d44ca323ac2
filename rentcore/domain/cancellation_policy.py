"""Cancellation policy domain logic.

Policies (guest cancellations, share of the nightly subtotal refunded):
- flexible: 100% up to 24h before check-in, nothing after
- moderate: 100% up to 5 days before check-in, 50% after
- strict: 100% up to 14 days before, 50% up to 7 days, nothing after

The cleaning fee is always refunded before check-in. The guest service fee
is kept by the platform unless the booking is cancelled inside the grace
period (within 48h of booking and more than 14 days before check-in).
Host and admin cancellations refund the full amount paid.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum

from rentcore.domain.pricing import round_half_up

GRACE_PERIOD_AFTER_BOOKING = timedelta(hours=48)
GRACE_PERIOD_MIN_LEAD = timedelta(days=14)


class CancellationPolicy(str, Enum):
    """Cancellation policy types."""

    FLEXIBLE = "flexible"
    MODERATE = "moderate"
    STRICT = "strict"


# Refund rules: list of (min_hours_before_checkin, refund_percentage)
# Evaluated in order - first match wins
POLICY_RULES: dict[CancellationPolicy, list[tuple[int, Decimal]]] = {
    CancellationPolicy.FLEXIBLE: [
        (24, Decimal("100")),
        (0, Decimal("0")),
    ],
    CancellationPolicy.MODERATE: [
        (5 * 24, Decimal("100")),
        (0, Decimal("50")),
    ],
    CancellationPolicy.STRICT: [
        (14 * 24, Decimal("100")),
        (7 * 24, Decimal("50")),
        (0, Decimal("0")),
    ],
}


def _as_policy(policy: str | CancellationPolicy) -> CancellationPolicy:
    if isinstance(policy, CancellationPolicy):
        return policy
    try:
        return CancellationPolicy(policy)
    except ValueError:
        # Default to moderate for unknown policies
        return CancellationPolicy.MODERATE


def calculate_refund_percentage(
    policy: str | CancellationPolicy,
    check_in_at: datetime,
    cancelled_at: datetime,
) -> Decimal:
    """Share of the subtotal refunded to a guest who cancels.

    Returns:
        Decimal: Refund percentage (0-100)
    """
    hours_before = (check_in_at - cancelled_at).total_seconds() / 3600
    if hours_before < 0:
        return Decimal("0")

    for min_hours, refund_pct in POLICY_RULES[_as_policy(policy)]:
        if hours_before >= min_hours:
            return refund_pct

    return Decimal("0")


def in_grace_period(booked_at: datetime, check_in_at: datetime, cancelled_at: datetime) -> bool:
    return (
        cancelled_at - booked_at <= GRACE_PERIOD_AFTER_BOOKING
        and check_in_at - cancelled_at > GRACE_PERIOD_MIN_LEAD
    )


@dataclass(frozen=True)
class RefundBreakdown:
    subtotal_percent: Decimal
    subtotal: int
    cleaning_fee: int
    guest_service_fee: int
    grace_period: bool

    @property
    def total(self) -> int:
        return self.subtotal + self.cleaning_fee + self.guest_service_fee


def calculate_refund(
    policy: str | CancellationPolicy,
    cancelled_by: str,
    *,
    subtotal: int,
    cleaning_fee: int,
    guest_service_fee: int,
    booked_at: datetime,
    check_in_at: datetime,
    cancelled_at: datetime,
) -> RefundBreakdown:
    """Refund owed to the guest when a paid booking is cancelled.

    Args:
        policy: The listing's cancellation policy
        cancelled_by: "guest", "host" or "admin"
        subtotal: Snapshotted nightly subtotal
        cleaning_fee: Snapshotted cleaning fee
        guest_service_fee: Snapshotted guest service fee
        booked_at: When the booking was created
        check_in_at: Check-in datetime
        cancelled_at: When the cancellation was requested
    """
    if cancelled_by in ("host", "admin"):
        return RefundBreakdown(
            subtotal_percent=Decimal("100"),
            subtotal=subtotal,
            cleaning_fee=cleaning_fee,
            guest_service_fee=guest_service_fee,
            grace_period=False,
        )

    grace = in_grace_period(booked_at, check_in_at, cancelled_at)
    pct = Decimal("100") if grace else calculate_refund_percentage(policy, check_in_at, cancelled_at)
    before_check_in = cancelled_at < check_in_at

    return RefundBreakdown(
        subtotal_percent=pct,
        subtotal=round_half_up(Decimal(subtotal) * pct / Decimal("100")),
        cleaning_fee=cleaning_fee if before_check_in else 0,
        guest_service_fee=guest_service_fee if grace else 0,
        grace_period=grace,
    )


def get_policy_description(policy: str | CancellationPolicy) -> str:
    """Get human-readable policy description."""
    descriptions = {
        CancellationPolicy.FLEXIBLE: (
            "Full refund up to 24 hours before check-in. "
            "No refund if cancelled less than 24 hours before."
        ),
        CancellationPolicy.MODERATE: (
            "Full refund up to 5 days before check-in. "
            "50% refund if cancelled less than 5 days before."
        ),
        CancellationPolicy.STRICT: (
            "Full refund up to 14 days before check-in. "
            "50% refund if cancelled 7-14 days before. "
            "No refund if cancelled less than 7 days before."
        ),
    }
    return descriptions[_as_policy(policy)]
