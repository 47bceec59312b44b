"""
Appointment lifecycle rules.

pending   -> confirmed | cancelled
confirmed -> completed | cancelled | no_show
completed, cancelled, no_show are terminal.
"""

import logging

from booking.errors import InvalidStatusTransition
from database.models import AppointmentStatus

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.PENDING: frozenset(
        {AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED}
    ),
    AppointmentStatus.CONFIRMED: frozenset(
        {AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED, AppointmentStatus.NO_SHOW}
    ),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
    AppointmentStatus.NO_SHOW: frozenset(),
}


def validate_status_transition(current: AppointmentStatus, new: AppointmentStatus) -> None:
    """
    Raises:
        InvalidStatusTransition: If ``new`` is not reachable from ``current``

    Example:
        >>> validate_status_transition(AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED)
        >>> validate_status_transition(AppointmentStatus.CANCELLED, AppointmentStatus.CONFIRMED)
        Traceback (most recent call last):
        InvalidStatusTransition: ...
    """
    if current is new:
        return
    if new not in ALLOWED_TRANSITIONS[current]:
        logger.warning(f"Rejected status transition {current.value} -> {new.value}")
        raise InvalidStatusTransition(
            f"Cannot change appointment status from {current.value} to {new.value}"
        )
