"""Registration lifecycle - statuses and the transitions allowed between them."""

from __future__ import annotations

from enum import StrEnum

from admission.exceptions import InvalidStateTransitionError


class RegistrationStatus(StrEnum):
    """Registration status enum."""

    RESERVED = "reserved"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


# Statuses that hold a seat and the student's uniqueness slot
ACTIVE_STATUSES: frozenset[RegistrationStatus] = frozenset(
    {RegistrationStatus.RESERVED, RegistrationStatus.CONFIRMED}
)

ALLOWED_TRANSITIONS: dict[RegistrationStatus, frozenset[RegistrationStatus]] = {
    RegistrationStatus.RESERVED: frozenset(
        {RegistrationStatus.CONFIRMED, RegistrationStatus.CANCELLED}
    ),
    RegistrationStatus.CONFIRMED: frozenset(
        {RegistrationStatus.CANCELLED, RegistrationStatus.COMPLETED}
    ),
    RegistrationStatus.CANCELLED: frozenset(),
    RegistrationStatus.COMPLETED: frozenset(),
}


def check_transition(current: str, target: str) -> RegistrationStatus:
    """Validate a status change.

    Args:
        current: The registration's present status.
        target: The requested status.

    Returns:
        The target as a RegistrationStatus.

    Raises:
        InvalidStateTransitionError: If the table does not allow the move.
    """
    current_status = RegistrationStatus(current)
    target_status = RegistrationStatus(target)

    if target_status in ALLOWED_TRANSITIONS[current_status]:
        return target_status

    if current_status == target_status == RegistrationStatus.CANCELLED:
        raise InvalidStateTransitionError(
            current_status.value, target_status.value, "Registration is already cancelled"
        )
    raise InvalidStateTransitionError(current_status.value, target_status.value)
