"""Read-only registration history used by discount handlers."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

from sqlalchemy import func, select

from admission.config import HistoryPolicy
from admission.lifecycle import RegistrationStatus
from admission.store.models import DiscountAssignment, Registration

if TYPE_CHECKING:
    from sqlalchemy.orm import Session


class RegistrationHistory(Protocol):
    """Interface discount handlers read from."""

    def count_finished(self, student_id: str) -> int:
        """Number of the student's registrations that count as finished."""
        ...

    def finished_batch_ids(self, student_id: str) -> set[str]:
        """Batches the student has finished."""
        ...

    def assignments_for(self, discount_id: str) -> list[DiscountAssignment]:
        """Assignments targeting a discount."""
        ...


def finished_statuses(policy: HistoryPolicy) -> list[str]:
    """Statuses that count as finished under a history policy."""
    if policy == HistoryPolicy.COMPLETED_OR_CONFIRMED:
        return [RegistrationStatus.COMPLETED.value, RegistrationStatus.CONFIRMED.value]
    return [RegistrationStatus.COMPLETED.value]


class SqlRegistrationHistory:
    """RegistrationHistory backed by the unit of work's session."""

    def __init__(self, session: Session, policy: HistoryPolicy = HistoryPolicy.COMPLETED) -> None:
        self._session = session
        self._statuses = finished_statuses(policy)

    def count_finished(self, student_id: str) -> int:
        stmt = select(func.count(Registration.id)).where(
            Registration.student_id == student_id,
            Registration.status.in_(self._statuses),
        )
        return self._session.execute(stmt).scalar_one()

    def finished_batch_ids(self, student_id: str) -> set[str]:
        stmt = select(Registration.batch_id).where(
            Registration.student_id == student_id,
            Registration.status.in_(self._statuses),
        )
        return set(self._session.execute(stmt).scalars().all())

    def assignments_for(self, discount_id: str) -> list[DiscountAssignment]:
        stmt = select(DiscountAssignment).where(DiscountAssignment.discount_id == discount_id)
        return list(self._session.execute(stmt).scalars().all())
