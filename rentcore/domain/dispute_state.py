"""Dispute state machine.

States: open → pending → resolved | closed
"""

from rentcore.core.exceptions import InvalidTransition

DISPUTE_TRANSITIONS: dict[str, set[str]] = {
    "open": {"pending", "resolved", "closed"},
    "pending": {"resolved", "closed", "open"},  # Can reopen if more info needed
    "resolved": set(),
    "closed": set(),
}

# Disputes in these states block automatic escrow release
ACTIVE_DISPUTE_STATUSES = ("open", "pending")

PRIORITIES = ("low", "normal", "high", "urgent")


def assert_dispute_transition(current_status: str, new_status: str) -> None:
    """Validate dispute state transition."""
    allowed = DISPUTE_TRANSITIONS.get(current_status, set())
    if new_status not in allowed:
        raise InvalidTransition("dispute", current_status, new_status)


def is_terminal(status: str) -> bool:
    return status in ("resolved", "closed")
