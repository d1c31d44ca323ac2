"""Escrow state machine.

States: held → released | frozen; frozen → split | held
"""

from rentcore.core.exceptions import InvalidTransition

ESCROW_TRANSITIONS: dict[str, set[str]] = {
    "held": {"released", "frozen"},
    "frozen": {"split", "held"},
    "released": set(),  # Terminal: funds handed to payout
    "split": set(),  # Terminal: funds divided between host and guest
}

DISBURSED_STATUSES = ("released", "split")


def assert_escrow_transition(current: str, target: str) -> None:
    allowed = ESCROW_TRANSITIONS.get(current, set())
    if target not in allowed:
        raise InvalidTransition("escrow", current, target)
