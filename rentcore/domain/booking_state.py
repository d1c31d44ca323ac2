"""Booking state machine."""

from rentcore.core.exceptions import InvalidTransition

BOOKING_TRANSITIONS: dict[str, set[str]] = {
    "pending_payment": {
        "confirmed",
        "paid",
        "expired",
        "cancelled_by_guest",
        "cancelled_by_host",
        "cancelled_by_admin",
    },
    "paid": {"confirmed", "cancelled_by_guest", "cancelled_by_host", "cancelled_by_admin"},
    "confirmed": {
        "active",
        "disputed",
        "cancelled_by_guest",
        "cancelled_by_host",
        "cancelled_by_admin",
    },
    "active": {"completed", "disputed"},
    "disputed": {"confirmed", "active", "completed"},
    "completed": set(),
    "cancelled_by_guest": set(),
    "cancelled_by_host": set(),
    "cancelled_by_admin": set(),
    "expired": set(),
}

# Bookings in these states occupy the listing's calendar
BLOCKING_STATUSES = ("pending_payment", "paid", "confirmed", "active", "disputed")

CANCELLABLE_STATUSES = ("pending_payment", "paid", "confirmed")

CANCELLED_BY = {
    "guest": "cancelled_by_guest",
    "host": "cancelled_by_host",
    "admin": "cancelled_by_admin",
}

DISPUTABLE_STATUSES = ("confirmed", "active", "completed")


def assert_booking_transition(current: str, target: str) -> None:
    allowed = BOOKING_TRANSITIONS.get(current, set())
    if target not in allowed:
        raise InvalidTransition("booking", current, target)
