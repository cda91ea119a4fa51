"""Unit tests for rental request and payment state-machine guardrails."""

import pytest

from rentmatch.common.errors import InvalidTransition
from rentmatch.common.state_machine import (
    ALLOWED_TRANSITIONS,
    REQUEST_STATES,
    TERMINAL_STATES,
    validate_payment_transition,
    validate_transition,
)


def test_valid_transition():
    """Sanity check: a legal transition should pass."""

    validate_transition("pending", "accepted")
    validate_transition("accepted", "paid")
    validate_transition("paid", "completed")


def test_invalid_transition():
    """Illegal transition must raise to protect lifecycle correctness."""

    with pytest.raises(InvalidTransition):
        validate_transition("accepted", "declined")
    with pytest.raises(InvalidTransition):
        validate_transition("pending", "paid")


def test_terminal_states_have_no_exits():
    for state in TERMINAL_STATES:
        assert ALLOWED_TRANSITIONS[state] == set()
        for target in REQUEST_STATES:
            with pytest.raises(InvalidTransition):
                validate_transition(state, target)


def test_every_target_is_a_known_state():
    for targets in ALLOWED_TRANSITIONS.values():
        assert targets <= REQUEST_STATES


def test_payment_moves_forward_only():
    validate_payment_transition("pending", "completed")
    validate_payment_transition("completed", "paid")
    with pytest.raises(InvalidTransition):
        validate_payment_transition("pending", "paid")
    with pytest.raises(InvalidTransition):
        validate_payment_transition("paid", "completed")
