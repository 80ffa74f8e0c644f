import pytest

from healthpal.domain.appointments.state_machine import (
    TERMINAL_STATUSES,
    can_transition,
    validate_status_transition,
)
from healthpal.exceptions import InvalidTransitionError
from healthpal.models import AppointmentStatus as S

ALLOWED = [
    (S.PENDING, S.CONFIRMED),
    (S.PENDING, S.CANCELLED),
    (S.CONFIRMED, S.IN_PROGRESS),
    (S.CONFIRMED, S.CANCELLED),
    (S.CONFIRMED, S.NO_SHOW),
    (S.IN_PROGRESS, S.COMPLETED),
    (S.IN_PROGRESS, S.CANCELLED),
]


@pytest.mark.parametrize("current,new", ALLOWED)
def test_allowed_transitions(current, new):
    assert can_transition(current, new)
    validate_status_transition(current.value, new.value)


@pytest.mark.parametrize(
    "current,new",
    [
        (current, new)
        for current in S
        for new in S
        if (current, new) not in ALLOWED
    ],
)
def test_every_other_pair_is_rejected(current, new):
    assert not can_transition(current, new)
    with pytest.raises(InvalidTransitionError) as exc_info:
        validate_status_transition(current, new)
    assert exc_info.value.message == f"Invalid status transition from {current.value} to {new.value}"
    assert exc_info.value.status_code == 400


def test_terminal_statuses():
    assert TERMINAL_STATUSES == {S.COMPLETED, S.CANCELLED, S.NO_SHOW}
