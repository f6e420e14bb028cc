"""Appointment lifecycle.

Every status change made by a student or counselor goes through
``apply_transition``, which checks ownership, the transition table and the
actor's role for that edge. Admins use ``admin_override`` instead.
"""

import logging
from enum import Enum

from counselhub.models.appointment import Appointment, utcnow
from counselhub.models.user import ADMIN_ROLE, COUNSELOR_ROLE, STUDENT_ROLE, User
from counselhub.scheduling.errors import AccessDenied, InvalidTransition

logger = logging.getLogger(__name__)


class AppointmentStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    NO_SHOW = "no_show"
    CANCELLED = "cancelled"


INITIAL_STATUS = AppointmentStatus.PENDING
ACTIVE_STATUSES = frozenset({AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED})
TERMINAL_STATUSES = frozenset({
    AppointmentStatus.COMPLETED,
    AppointmentStatus.NO_SHOW,
    AppointmentStatus.CANCELLED,
})

# (from, to) -> roles allowed to take that edge
TRANSITIONS: dict[tuple[AppointmentStatus, AppointmentStatus], frozenset[str]] = {
    (AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED): frozenset({COUNSELOR_ROLE}),
    (AppointmentStatus.PENDING, AppointmentStatus.CANCELLED): frozenset({STUDENT_ROLE, COUNSELOR_ROLE}),
    (AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED): frozenset({STUDENT_ROLE, COUNSELOR_ROLE}),
    (AppointmentStatus.CONFIRMED, AppointmentStatus.COMPLETED): frozenset({COUNSELOR_ROLE}),
    (AppointmentStatus.CONFIRMED, AppointmentStatus.NO_SHOW): frozenset({COUNSELOR_ROLE}),
}


def is_active(status: str | AppointmentStatus) -> bool:
    return AppointmentStatus(status) in ACTIVE_STATUSES


def is_terminal(status: str | AppointmentStatus) -> bool:
    return AppointmentStatus(status) in TERMINAL_STATUSES


def allowed_targets(current: str | AppointmentStatus, role: str) -> list[AppointmentStatus]:
    current = AppointmentStatus(current)
    return [
        target
        for (source, target), roles in TRANSITIONS.items()
        if source == current and role in roles
    ]


def ensure_owner(appointment: Appointment, actor: User) -> None:
    if actor.role == STUDENT_ROLE and appointment.student_id == actor.id:
        return
    if actor.role == COUNSELOR_ROLE and appointment.counselor_id == actor.id:
        return
    if actor.role == ADMIN_ROLE:
        return
    raise AccessDenied("Access denied")


def ensure_transition(appointment: Appointment, target: AppointmentStatus, actor: User) -> None:
    ensure_owner(appointment, actor)

    current = AppointmentStatus(appointment.status)
    target = AppointmentStatus(target)

    allowed = tuple(item.value for item in allowed_targets(current, actor.role))

    if current in TERMINAL_STATUSES:
        raise InvalidTransition(current.value, target.value, allowed)

    roles = TRANSITIONS.get((current, target))
    if roles is None:
        raise InvalidTransition(current.value, target.value, allowed)

    if actor.role not in roles:
        raise AccessDenied(f"A {actor.role} cannot move an appointment to '{target.value}'.")


def apply_transition(appointment: Appointment, target: AppointmentStatus, actor: User) -> Appointment:
    ensure_transition(appointment, target, actor)

    previous = appointment.status
    appointment.status = AppointmentStatus(target).value
    appointment.updated_at = utcnow()
    logger.info(
        'Appointment %s moved from %s to %s by %s %s',
        appointment.id, previous, appointment.status, actor.role, actor.id,
    )
    return appointment


def admin_override(appointment: Appointment, target: AppointmentStatus, actor: User) -> Appointment:
    """Set any status, including leaving a terminal state. Callers re-validate overlap."""
    if actor.role != ADMIN_ROLE:
        raise AccessDenied("Only admins can override appointment status.")

    previous = appointment.status
    appointment.status = AppointmentStatus(target).value
    appointment.updated_at = utcnow()
    if previous != appointment.status:
        logger.warning(
            'Admin %s overrode appointment %s status from %s to %s',
            actor.id, appointment.id, previous, appointment.status,
        )
    return appointment
