"""Rental request and payment state machines."""

from rentmatch.common.errors import InvalidTransition

PENDING = "pending"
ACCEPTED = "accepted"
PAID = "paid"
COMPLETED = "completed"
DECLINED = "declined"
CANCELLED = "cancelled"

REQUEST_STATES = frozenset({PENDING, ACCEPTED, PAID, COMPLETED, DECLINED, CANCELLED})
TERMINAL_STATES = frozenset({COMPLETED, DECLINED, CANCELLED})

ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    PENDING: {ACCEPTED, DECLINED},
    ACCEPTED: {PAID, CANCELLED},
    PAID: {COMPLETED},
    COMPLETED: set(),
    DECLINED: set(),
    CANCELLED: set(),
}

# Party-driven actions: action -> target state. `paid` and `completed` are only
# reached through payment events and payout settlement.
ACTION_TARGETS: dict[str, str] = {
    "accept": ACCEPTED,
    "decline": DECLINED,
    "cancel": CANCELLED,
}

PAYMENT_PENDING = "pending"
PAYMENT_COMPLETED = "completed"
PAYMENT_PAID = "paid"

PAYMENT_TRANSITIONS: dict[str, set[str]] = {
    PAYMENT_PENDING: {PAYMENT_COMPLETED},
    PAYMENT_COMPLETED: {PAYMENT_PAID},
    PAYMENT_PAID: set(),
}


def validate_transition(current: str, new: str) -> None:
    """Raise when a request transition is not allowed by the state machine."""

    if new not in ALLOWED_TRANSITIONS.get(current, set()):
        raise InvalidTransition(f"invalid transition: {current} -> {new}")


def validate_payment_transition(current: str, new: str) -> None:
    if new not in PAYMENT_TRANSITIONS.get(current, set()):
        raise InvalidTransition(f"invalid payment transition: {current} -> {new}")
