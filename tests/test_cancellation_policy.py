"""Refund tiers per cancellation policy."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from rentcore.domain.cancellation_policy import (
    calculate_refund,
    calculate_refund_percentage,
    get_policy_description,
    in_grace_period,
)

CHECK_IN = datetime(2026, 4, 1, 14, 0, tzinfo=UTC)
BOOKED_LONG_AGO = CHECK_IN - timedelta(days=60)


@pytest.mark.parametrize(
    "policy, before, expected",
    [
        ("flexible", timedelta(hours=25), Decimal("100")),
        ("flexible", timedelta(hours=23), Decimal("0")),
        ("moderate", timedelta(days=6), Decimal("100")),
        ("moderate", timedelta(days=2), Decimal("50")),
        ("strict", timedelta(days=15), Decimal("100")),
        ("strict", timedelta(days=10), Decimal("50")),
        ("strict", timedelta(days=3), Decimal("0")),
    ],
)
def test_refund_percentage_tiers(policy, before, expected) -> None:
    assert calculate_refund_percentage(policy, CHECK_IN, CHECK_IN - before) == expected


def test_no_refund_after_check_in() -> None:
    assert calculate_refund_percentage("flexible", CHECK_IN, CHECK_IN + timedelta(hours=1)) == 0


def test_unknown_policy_falls_back_to_moderate() -> None:
    assert calculate_refund_percentage("lenient", CHECK_IN, CHECK_IN - timedelta(days=2)) == 50


def test_grace_period_window() -> None:
    booked = CHECK_IN - timedelta(days=30)

    assert in_grace_period(booked, CHECK_IN, booked + timedelta(hours=47))
    assert not in_grace_period(booked, CHECK_IN, booked + timedelta(hours=49))
    # Booked too close to check-in for a free change of mind
    late_booking = CHECK_IN - timedelta(days=10)
    assert not in_grace_period(late_booking, CHECK_IN, late_booking + timedelta(hours=1))


def test_host_cancellation_refunds_everything() -> None:
    refund = calculate_refund(
        "strict",
        "host",
        subtotal=15000,
        cleaning_fee=500,
        guest_service_fee=1240,
        booked_at=BOOKED_LONG_AGO,
        check_in_at=CHECK_IN,
        cancelled_at=CHECK_IN - timedelta(hours=2),
    )

    assert refund.total == 16740


def test_guest_cancellation_keeps_service_fee() -> None:
    refund = calculate_refund(
        "moderate",
        "guest",
        subtotal=15000,
        cleaning_fee=500,
        guest_service_fee=1240,
        booked_at=BOOKED_LONG_AGO,
        check_in_at=CHECK_IN,
        cancelled_at=CHECK_IN - timedelta(days=2),
    )

    assert refund.subtotal_percent == 50
    assert refund.subtotal == 7500
    assert refund.cleaning_fee == 500
    assert refund.guest_service_fee == 0
    assert refund.total == 8000


def test_guest_cancellation_in_grace_period_is_full_refund() -> None:
    booked = CHECK_IN - timedelta(days=30)
    refund = calculate_refund(
        "strict",
        "guest",
        subtotal=15000,
        cleaning_fee=500,
        guest_service_fee=1240,
        booked_at=booked,
        check_in_at=CHECK_IN,
        cancelled_at=booked + timedelta(hours=1),
    )

    assert refund.grace_period
    assert refund.total == 16740


def test_cleaning_fee_not_refunded_after_check_in() -> None:
    refund = calculate_refund(
        "flexible",
        "guest",
        subtotal=15000,
        cleaning_fee=500,
        guest_service_fee=1240,
        booked_at=BOOKED_LONG_AGO,
        check_in_at=CHECK_IN,
        cancelled_at=CHECK_IN + timedelta(hours=3),
    )

    assert refund.total == 0


def test_policy_description() -> None:
    assert "5 days" in get_policy_description("moderate")
    assert "14 days" in get_policy_description("strict")
