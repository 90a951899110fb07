"""Capacity admission controller."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import func, select

from admission.engine.models import AdmissionDecision
from admission.exceptions import ConcurrencyConflictError
from admission.lifecycle import ACTIVE_STATUSES
from admission.store.exceptions import BatchNotFoundError
from admission.store.models import Batch, Registration

if TYPE_CHECKING:
    from datetime import datetime

    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

_ACTIVE = [status.value for status in ACTIVE_STATUSES]


class CapacityController:
    """Decides whether a batch has a free seat.

    Seats are never pre-allocated: the controller counts active registrations
    inside the caller's transaction, and re-counts after the registration row
    is inserted. The batch row is locked for update where the backend supports
    it; on SQLite the unit of work's BEGIN IMMEDIATE serializes writers.
    """

    def load_batch(self, session: Session, batch_id: str) -> Batch:
        """Load and lock the batch row.

        Raises:
            BatchNotFoundError: If batch doesn't exist
        """
        stmt = select(Batch).where(Batch.id == batch_id).with_for_update()
        batch = session.execute(stmt).scalar_one_or_none()
        if batch is None:
            raise BatchNotFoundError(f"Batch with id '{batch_id}' not found")
        return batch

    def active_count(self, session: Session, batch_id: str) -> int:
        """Count reserved and confirmed registrations for a batch."""
        stmt = select(func.count(Registration.id)).where(
            Registration.batch_id == batch_id,
            Registration.status.in_(_ACTIVE),
        )
        return session.execute(stmt).scalar_one()

    def try_admit(self, session: Session, batch: Batch, now: datetime) -> AdmissionDecision:
        """Check whether the batch can take one more active registration.

        Inactive batches and attempts outside the enrollment window are
        rejected before counting.
        """
        if not batch.is_active:
            return AdmissionDecision.BATCH_INACTIVE
        if not batch.accepts_enrollment_at(now):
            return AdmissionDecision.WINDOW_CLOSED

        active = self.active_count(session, batch.id)
        if active >= batch.capacity:
            logger.info("Batch %s full (%d/%d)", batch.id, active, batch.capacity)
            return AdmissionDecision.BATCH_FULL
        return AdmissionDecision.ADMITTED

    def verify_after_insert(self, session: Session, batch: Batch) -> None:
        """Re-count after the guarded insert.

        Raises:
            ConcurrencyConflictError: If the batch now holds more active
                registrations than its capacity.
        """
        session.flush()
        active = self.active_count(session, batch.id)
        if active > batch.capacity:
            logger.warning(
                "Batch %s over capacity after insert (%d/%d)", batch.id, active, batch.capacity
            )
            raise ConcurrencyConflictError(
                f"Batch '{batch.id}' filled up by a concurrent registration; retry the attempt"
            )

    def available_seats(self, session: Session, batch_id: str) -> int:
        """Seats still free in a batch."""
        batch = self.load_batch(session, batch_id)
        return max(0, batch.capacity - self.active_count(session, batch_id))
