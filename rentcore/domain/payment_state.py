"""Payment vehicle state machines (card payments and cash vouchers).

Adapters pass the allowed prior states from these tables to compare-and-set.
"""

CARD_PAYMENT_TRANSITIONS: dict[str, set[str]] = {
    "requires_payment": {"succeeded", "failed", "canceled", "refund_required"},
    "failed": {"succeeded", "canceled", "refund_required"},
    "succeeded": {"refund_required"},
    "canceled": {"refund_required"},  # late capture after the booking expired
    "refund_required": set(),
}

VOUCHER_TRANSITIONS: dict[str, set[str]] = {
    "pending": {"validated", "expired", "cancelled"},
    "validated": set(),
    "expired": set(),
    "cancelled": set(),
}


def _sources(transitions: dict[str, set[str]], target: str) -> tuple[str, ...]:
    return tuple(state for state, allowed in transitions.items() if target in allowed)


def card_sources(target: str) -> tuple[str, ...]:
    """Card payment statuses that may move to ``target``."""
    return _sources(CARD_PAYMENT_TRANSITIONS, target)


def voucher_sources(target: str) -> tuple[str, ...]:
    """Voucher statuses that may move to ``target``."""
    return _sources(VOUCHER_TRANSITIONS, target)
