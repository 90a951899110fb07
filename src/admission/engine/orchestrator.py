"""Registration orchestrator - the admission engine's entry point."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import select

from admission.config import EngineSettings
from admission.engine.capacity import CapacityController
from admission.engine.discounts import evaluate
from admission.engine.history import SqlRegistrationHistory
from admission.engine.ledger import CouponUsageLedger
from admission.engine.models import (
    AdmissionDecision,
    ConsumeResult,
    DiscountContext,
    RegistrationSnapshot,
    StudentIdentity,
)
from admission.exceptions import (
    AdmissionError,
    BatchInactiveError,
    CapacityExceededError,
    CouponInvalidError,
    CouponLimitReachedError,
    DuplicateActiveRegistrationError,
    EnrollmentWindowClosedError,
    ValidationError,
)
from admission.lifecycle import ACTIVE_STATUSES, RegistrationStatus
from admission.logging import mask_email, sanitize_for_log
from admission.store.exceptions import RegistrationNotFoundError
from admission.store.models import (
    Batch,
    Coupon,
    Registration,
    Student,
    as_utc_naive,
    generate_uuid,
    normalize_email,
    utcnow,
)

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from sqlalchemy.orm import Session

    from admission.engine.models import DiscountEvaluation
    from admission.store import AdmissionStore

logger = logging.getLogger(__name__)

_ACTIVE = [status.value for status in ACTIVE_STATUSES]

_DECISION_ERRORS: dict[AdmissionDecision, type[AdmissionError]] = {
    AdmissionDecision.BATCH_FULL: CapacityExceededError,
    AdmissionDecision.BATCH_INACTIVE: BatchInactiveError,
    AdmissionDecision.WINDOW_CLOSED: EnrollmentWindowClosedError,
}

_DECISION_MESSAGES: dict[AdmissionDecision, str] = {
    AdmissionDecision.BATCH_FULL: "Batch '{batch}' has no free seat",
    AdmissionDecision.BATCH_INACTIVE: "Batch '{batch}' is not accepting registrations",
    AdmissionDecision.WINDOW_CLOSED: "Enrollment window for batch '{batch}' is closed",
}


class RegistrationOrchestrator:
    """Admits students into batches and drives registrations through their lifecycle.

    Every public operation is one unit of work: it either commits completely
    or leaves the database exactly as it found it. The orchestrator:
    - Upserts the student by email
    - Enforces one active registration per student
    - Admits against batch capacity
    - Evaluates and consumes at most one coupon
    - Persists the registration with fee snapshots
    """

    def __init__(
        self,
        store: AdmissionStore,
        settings: EngineSettings | None = None,
        clock: Callable[[], datetime] | None = None,
        capacity: CapacityController | None = None,
        ledger: CouponUsageLedger | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            store: AdmissionStore whose database hosts the units of work.
            settings: Engine settings; defaults apply when omitted.
            clock: Returns the current time. Defaults to UTC now.
            capacity: Capacity controller (injectable for tests).
            ledger: Coupon usage ledger (injectable for tests).
        """
        self.store = store
        self.settings = settings or EngineSettings()
        self.capacity = capacity or CapacityController()
        self.ledger = ledger or CouponUsageLedger()
        self._clock = clock or utcnow

    def _now(self) -> datetime:
        return as_utc_naive(self._clock())

    # --- Public operations ---

    def create_registration(
        self,
        student: StudentIdentity,
        batch_id: str,
        coupon_code: str | None = None,
        group_size: int = 1,
    ) -> RegistrationSnapshot:
        """Admit a student into a batch.

        Args:
            student: Identity of the registering student.
            batch_id: Target batch.
            coupon_code: Optional coupon to apply.
            group_size: Number of people registering together.

        Returns:
            Snapshot of the new registration in RESERVED status.

        Raises:
            ValidationError: If the input is malformed.
            BatchNotFoundError: If the batch does not exist.
            DuplicateActiveRegistrationError: If the student already holds an
                active registration.
            CapacityExceededError: If the batch is full.
            BatchInactiveError: If the batch is inactive.
            EnrollmentWindowClosedError: If enrollment is not open.
            CouponInvalidError: If the coupon cannot be applied.
            CouponLimitReachedError: If the coupon is used up.
            ConcurrencyConflictError: If a concurrent registration won the race.
        """
        self._validate_request(student, batch_id, group_size)
        code = coupon_code.strip() if coupon_code and coupon_code.strip() else None
        now = self._now()

        try:
            with self.store.database.unit_of_work() as session:
                record = self._resolve_student(session, student)
                self._reject_duplicate(session, record)

                batch = self.capacity.load_batch(session, batch_id)
                decision = self.capacity.try_admit(session, batch, now)
                if decision != AdmissionDecision.ADMITTED:
                    raise _DECISION_ERRORS[decision](
                        _DECISION_MESSAGES[decision].format(batch=batch.id)
                    )

                base_fee = batch.fee_amount
                coupon: Coupon | None = None
                discount_amount = Decimal("0.00")
                if code is not None:
                    coupon, evaluation = self._evaluate_coupon(
                        session, code, record, batch, now, group_size
                    )
                    discount_amount = evaluation.amount

                registration = Registration(
                    id=generate_uuid(),
                    student_id=record.id,
                    batch_id=batch.id,
                    course_id=batch.course_id,
                    base_fee=base_fee,
                    discount_amount=discount_amount,
                    coupon_code=coupon.code if coupon is not None else None,
                    discount_id=coupon.discount_id if coupon is not None else None,
                    group_size=group_size,
                    created_at=now,
                )
                session.add(registration)
                self.capacity.verify_after_insert(session, batch)

                if coupon is not None:
                    result = self.ledger.try_consume(
                        session, coupon, record.id, registration.id, now
                    )
                    if result != ConsumeResult.CONSUMED:
                        raise CouponLimitReachedError(_limit_message(coupon.code, result))

                session.flush()
                snapshot = RegistrationSnapshot.from_model(registration)
        except AdmissionError as e:
            logger.warning(
                "Registration rejected for %s in batch %s: %s: %s",
                mask_email(student.email),
                batch_id,
                type(e).__name__,
                sanitize_for_log(str(e)),
            )
            raise

        logger.info(
            "Registration %s reserved for student %s in batch %s (payable %s)",
            snapshot.id,
            snapshot.student_id,
            snapshot.batch_id,
            snapshot.final_payable,
        )
        return snapshot

    def confirm_payment(self, registration_id: str, receipt_reference: str) -> RegistrationSnapshot:
        """Record a payment receipt and move RESERVED to CONFIRMED.

        Raises:
            RegistrationNotFoundError: If the registration does not exist.
            InvalidStateTransitionError: If the registration is not RESERVED.
            ValidationError: If the receipt reference is empty.
        """
        return self._transition(
            registration_id, RegistrationStatus.CONFIRMED, receipt_reference=receipt_reference
        )

    def cancel_registration(self, registration_id: str) -> RegistrationSnapshot:
        """Cancel a RESERVED or CONFIRMED registration, releasing its seat.

        Raises:
            RegistrationNotFoundError: If the registration does not exist.
            InvalidStateTransitionError: If already cancelled or completed.
        """
        return self._transition(registration_id, RegistrationStatus.CANCELLED)

    def complete_registration(self, registration_id: str) -> RegistrationSnapshot:
        """Mark a CONFIRMED registration COMPLETED.

        Called by the batch-completion process once a batch has run.
        """
        return self._transition(registration_id, RegistrationStatus.COMPLETED)

    def complete_batch(self, batch_id: str) -> int:
        """Complete every confirmed registration of a batch.

        Returns:
            Number of registrations completed.
        """
        now = self._now()
        with self.store.database.unit_of_work() as session:
            self.capacity.load_batch(session, batch_id)
            stmt = select(Registration).where(
                Registration.batch_id == batch_id,
                Registration.status == RegistrationStatus.CONFIRMED.value,
            )
            registrations = list(session.execute(stmt).scalars().all())
            for registration in registrations:
                registration.transition_to(RegistrationStatus.COMPLETED, now)

        logger.info("Batch %s completed %d registrations", batch_id, len(registrations))
        return len(registrations)

    def get_registration(self, registration_id: str) -> RegistrationSnapshot:
        """Get a snapshot of a registration.

        Raises:
            RegistrationNotFoundError: If the registration does not exist.
        """
        return RegistrationSnapshot.from_model(self.store.get_registration(registration_id))

    def available_seats(self, batch_id: str) -> int:
        """Seats still free in a batch."""
        with self.store.database.unit_of_work() as session:
            return self.capacity.available_seats(session, batch_id)

    # --- Steps ---

    @staticmethod
    def _validate_request(student: StudentIdentity, batch_id: str, group_size: int) -> None:
        email = (student.email or "").strip()
        local, _, domain = email.partition("@")
        if not local or not domain:
            raise ValidationError("A well-formed student email is required")
        if not (student.name or "").strip():
            raise ValidationError("Student name must not be empty")
        if not batch_id:
            raise ValidationError("Batch id is required")
        if group_size < 1:
            raise ValidationError("Group size must be at least 1")

    def _resolve_student(self, session: Session, identity: StudentIdentity) -> Student:
        """Upsert the student by email, refreshing contact fields."""
        stmt = select(Student).where(Student.email == normalize_email(identity.email))
        student = session.execute(stmt).scalar_one_or_none()
        if student is None:
            student = Student(email=identity.email, name=identity.name, phone=identity.phone)
            session.add(student)
            session.flush()
            logger.debug("Created student %s", student.id)
        else:
            student.refresh_contact(identity.name, identity.phone)
        return student

    def _reject_duplicate(self, session: Session, student: Student) -> None:
        stmt = select(Registration.id).where(
            Registration.student_id == student.id,
            Registration.status.in_(_ACTIVE),
        )
        existing = session.execute(stmt).scalars().first()
        if existing is not None:
            raise DuplicateActiveRegistrationError(
                f"Student already holds active registration '{existing}'"
            )

    def _evaluate_coupon(
        self,
        session: Session,
        code: str,
        student: Student,
        batch: Batch,
        now: datetime,
        group_size: int,
    ) -> tuple[Coupon, DiscountEvaluation]:
        """Validate a coupon and run its discount through the pipeline.

        Usage limits are enforced later by the ledger, when the coupon is consumed.

        Raises:
            CouponInvalidError: If the coupon or its discount cannot apply.
        """
        coupon = self.ledger.load_coupon(session, code)
        if coupon is None:
            raise CouponInvalidError(f"Coupon '{code}' does not exist")
        if not coupon.is_active:
            raise CouponInvalidError(f"Coupon '{coupon.code}' is inactive")
        if coupon.is_expired_at(now):
            raise CouponInvalidError(f"Coupon '{coupon.code}' has expired")

        discount = coupon.discount
        if not discount.is_active:
            raise CouponInvalidError(f"Coupon '{coupon.code}' points at an inactive discount")
        if not discount.is_valid_at(now):
            raise CouponInvalidError(f"Coupon '{coupon.code}' is outside its validity window")

        context = DiscountContext(
            student_id=student.id,
            batch_id=batch.id,
            course_id=batch.course_id,
            now=now,
            base_fee=batch.fee_amount,
            group_size=group_size,
        )
        history = SqlRegistrationHistory(session, self.settings.history_policy)
        evaluation = evaluate(discount, context, history)
        if not evaluation.applicable:
            raise CouponInvalidError(
                f"Coupon '{coupon.code}' does not apply: {evaluation.reason}"
            )

        logger.debug("Coupon %s grants %s (%s)", coupon.code, evaluation.amount, evaluation.reason)
        return coupon, evaluation

    def _transition(
        self,
        registration_id: str,
        target: RegistrationStatus,
        receipt_reference: str | None = None,
    ) -> RegistrationSnapshot:
        now = self._now()
        try:
            with self.store.database.unit_of_work() as session:
                stmt = (
                    select(Registration)
                    .where(Registration.id == registration_id)
                    .with_for_update()
                )
                registration = session.execute(stmt).scalar_one_or_none()
                if registration is None:
                    raise RegistrationNotFoundError(
                        f"Registration with id '{registration_id}' not found"
                    )
                previous_state = registration.status
                registration.transition_to(target, now, receipt_reference=receipt_reference)
                session.flush()
                snapshot = RegistrationSnapshot.from_model(registration)
        except AdmissionError as e:
            logger.warning(
                "Registration %s not moved to %s: %s", registration_id, target.value, e
            )
            raise

        logger.info(
            "Registration %s transitioned from %s to %s",
            registration_id,
            previous_state,
            target.value,
        )
        return snapshot


def _limit_message(code: str, result: ConsumeResult) -> str:
    if result == ConsumeResult.TOTAL_LIMIT_REACHED:
        return f"Coupon '{code}' has reached its total usage limit"
    return f"Coupon '{code}' has reached its per-student usage limit"
