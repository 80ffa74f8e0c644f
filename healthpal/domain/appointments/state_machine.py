"""Appointment status transitions"""

from ...exceptions import InvalidTransitionError
from ...models import AppointmentStatus

ALLOWED_TRANSITIONS: dict[AppointmentStatus, frozenset] = {
    AppointmentStatus.PENDING: frozenset({AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED}),
    AppointmentStatus.CONFIRMED: frozenset(
        {AppointmentStatus.IN_PROGRESS, AppointmentStatus.CANCELLED, AppointmentStatus.NO_SHOW}
    ),
    AppointmentStatus.IN_PROGRESS: frozenset({AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED}),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
    AppointmentStatus.NO_SHOW: frozenset(),
}

TERMINAL_STATUSES = frozenset(status for status, targets in ALLOWED_TRANSITIONS.items() if not targets)


def can_transition(current, new) -> bool:
    return AppointmentStatus(new) in ALLOWED_TRANSITIONS[AppointmentStatus(current)]


def validate_status_transition(current, new) -> None:
    """Raise InvalidTransitionError unless current -> new is in the transition table"""
    if not can_transition(current, new):
        raise InvalidTransitionError(
            f"Invalid status transition from {AppointmentStatus(current).value} to {AppointmentStatus(new).value}"
        )
