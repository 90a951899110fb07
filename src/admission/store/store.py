"""AdmissionStore - catalog and lookup operations over the admission database."""

from __future__ import annotations

from datetime import datetime  # noqa: TC003
from decimal import Decimal
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from admission.lifecycle import ACTIVE_STATUSES, RegistrationStatus
from admission.store.database import Database
from admission.store.exceptions import (
    BatchNotFoundError,
    CouponExistsError,
    CouponNotFoundError,
    CourseNotFoundError,
    DiscountNotFoundError,
    RegistrationNotFoundError,
    StudentNotFoundError,
)
from admission.store.models import (
    AssignmentTarget,
    Batch,
    Coupon,
    CouponUsage,
    Course,
    Discount,
    DiscountAssignment,
    DiscountKind,
    DiscountValueType,
    Registration,
    Student,
    normalize_coupon_code,
    normalize_email,
)


class AdmissionStore:
    """Catalog and lookup API for the admission database.

    Courses, batches, discounts, coupons and assignments are created here by
    administrative collaborators; the engine only reads them. Registrations
    and coupon usages are written exclusively by the engine.
    """

    def __init__(self, db_path: str = "admission.db", busy_timeout: float = 30.0) -> None:
        """Initialize the store with a SQLite database.

        Creates database and tables if they don't exist.

        Args:
            db_path: Path to SQLite database file
            busy_timeout: Seconds a writer waits for the database lock
        """
        self._db = Database(db_path, busy_timeout=busy_timeout)
        self._db.create_tables()

    @property
    def database(self) -> Database:
        """The underlying Database, used by the engine for units of work."""
        return self._db

    def close(self) -> None:
        """Close the database connection."""
        self._db.close()

    def _add(self, obj: Any) -> Any:
        session = self._db.get_session()
        try:
            session.add(obj)
            session.commit()
            session.refresh(obj)
            return obj
        finally:
            session.close()

    # --- Course and Batch Operations ---

    def create_course(self, name: str, description: str = "", is_active: bool = True) -> Course:
        """Create a new course.

        Args:
            name: Human-readable course name
            description: Free-text description
            is_active: Whether the course is offered

        Returns:
            Created Course object with generated ID
        """
        return self._add(Course(name=name, description=description, is_active=is_active))

    def get_course(self, course_id: str) -> Course:
        """Get course by ID.

        Raises:
            CourseNotFoundError: If course doesn't exist
        """
        session = self._db.get_session()
        try:
            course = session.get(Course, course_id)
            if course is None:
                raise CourseNotFoundError(f"Course with id '{course_id}' not found")
            return course
        finally:
            session.close()

    def create_batch(
        self,
        course_id: str,
        location: str,
        capacity: int,
        fee_amount: Decimal | int | str,
        enrollment_opens_at: datetime,
        enrollment_closes_at: datetime,
        is_active: bool = True,
    ) -> Batch:
        """Create a new batch for a course.

        Args:
            course_id: The owning course's ID
            location: Where the batch is held
            capacity: Maximum number of active registrations (positive)
            fee_amount: Fee charged per registration (positive)
            enrollment_opens_at: Start of the enrollment window (inclusive)
            enrollment_closes_at: End of the enrollment window (exclusive)
            is_active: Whether the batch accepts registrations

        Returns:
            Created Batch object with generated ID

        Raises:
            CourseNotFoundError: If course doesn't exist
            ValidationError: If capacity, fee or window are invalid
        """
        batch = Batch(
            course_id=course_id,
            location=location,
            capacity=capacity,
            fee_amount=Decimal(str(fee_amount)),
            enrollment_opens_at=enrollment_opens_at,
            enrollment_closes_at=enrollment_closes_at,
            is_active=is_active,
        )
        session = self._db.get_session()
        try:
            if session.get(Course, course_id) is None:
                raise CourseNotFoundError(f"Course with id '{course_id}' not found")
            session.add(batch)
            session.commit()
            session.refresh(batch)
            return batch
        finally:
            session.close()

    def get_batch(self, batch_id: str) -> Batch:
        """Get batch by ID.

        Raises:
            BatchNotFoundError: If batch doesn't exist
        """
        session = self._db.get_session()
        try:
            batch = session.get(Batch, batch_id)
            if batch is None:
                raise BatchNotFoundError(f"Batch with id '{batch_id}' not found")
            return batch
        finally:
            session.close()

    # --- Student Operations ---

    def get_student_by_email(self, email: str) -> Student:
        """Get student by email, case-insensitively.

        Raises:
            StudentNotFoundError: If no student has this email
        """
        session = self._db.get_session()
        try:
            stmt = select(Student).where(Student.email == normalize_email(email))
            student = session.execute(stmt).scalar_one_or_none()
            if student is None:
                raise StudentNotFoundError(f"Student with email '{email}' not found")
            return student
        finally:
            session.close()

    # --- Discount Operations ---

    def create_discount(
        self,
        name: str,
        kind: DiscountKind | str,
        value_type: DiscountValueType | str,
        value: Decimal | int | str,
        max_discount_amount: Decimal | int | str | None = None,
        min_base_fee: Decimal | int | str | None = None,
        valid_from: datetime | None = None,
        valid_until: datetime | None = None,
        config: dict[str, Any] | None = None,
        is_active: bool = True,
    ) -> Discount:
        """Create a new discount programme.

        Returns:
            Created Discount object with generated ID

        Raises:
            ValidationError: If kind, value type, value or kind-specific config are invalid
        """
        return self._add(
            Discount(
                name=name,
                kind=kind,
                value_type=value_type,
                value=Decimal(str(value)),
                max_discount_amount=max_discount_amount,
                min_base_fee=min_base_fee,
                valid_from=valid_from,
                valid_until=valid_until,
                config=config,
                is_active=is_active,
            )
        )

    def get_discount(self, discount_id: str) -> Discount:
        """Get discount by ID.

        Raises:
            DiscountNotFoundError: If discount doesn't exist
        """
        session = self._db.get_session()
        try:
            discount = session.get(Discount, discount_id)
            if discount is None:
                raise DiscountNotFoundError(f"Discount with id '{discount_id}' not found")
            return discount
        finally:
            session.close()

    def assign_discount(
        self,
        discount_id: str,
        target_type: AssignmentTarget | str,
        target_id: str,
        valid_from: datetime | None = None,
        valid_until: datetime | None = None,
    ) -> DiscountAssignment:
        """Target a discount at a student, batch or course.

        Raises:
            DiscountNotFoundError: If discount doesn't exist
        """
        assignment = DiscountAssignment(
            discount_id=discount_id,
            target_type=target_type,
            target_id=target_id,
            valid_from=valid_from,
            valid_until=valid_until,
        )
        session = self._db.get_session()
        try:
            if session.get(Discount, discount_id) is None:
                raise DiscountNotFoundError(f"Discount with id '{discount_id}' not found")
            session.add(assignment)
            session.commit()
            session.refresh(assignment)
            return assignment
        finally:
            session.close()

    # --- Coupon Operations ---

    def create_coupon(
        self,
        code: str,
        discount_id: str,
        usage_limit_total: int | None = None,
        usage_limit_per_student: int | None = None,
        expires_at: datetime | None = None,
        is_active: bool = True,
    ) -> Coupon:
        """Issue a coupon for a discount.

        Returns:
            Created Coupon object

        Raises:
            DiscountNotFoundError: If discount doesn't exist
            CouponExistsError: If the code is already issued
        """
        coupon = Coupon(
            code=code,
            discount_id=discount_id,
            usage_limit_total=usage_limit_total,
            usage_limit_per_student=usage_limit_per_student,
            expires_at=expires_at,
            is_active=is_active,
        )
        session = self._db.get_session()
        try:
            if session.get(Discount, discount_id) is None:
                raise DiscountNotFoundError(f"Discount with id '{discount_id}' not found")
            session.add(coupon)
            session.commit()
            session.refresh(coupon)
            return coupon
        except IntegrityError as e:
            session.rollback()
            raise CouponExistsError(f"Coupon with code '{coupon.code}' already exists") from e
        finally:
            session.close()

    def get_coupon(self, code: str) -> Coupon:
        """Get coupon by code, case-insensitively.

        Raises:
            CouponNotFoundError: If no coupon has this code
        """
        session = self._db.get_session()
        try:
            stmt = select(Coupon).where(Coupon.code == normalize_coupon_code(code))
            coupon = session.execute(stmt).scalar_one_or_none()
            if coupon is None:
                raise CouponNotFoundError(f"Coupon '{code}' not found")
            return coupon
        finally:
            session.close()

    def set_coupon_active(self, code: str, is_active: bool) -> Coupon:
        """Toggle a coupon's activation, the only mutation a coupon allows.

        Raises:
            CouponNotFoundError: If no coupon has this code
        """
        session = self._db.get_session()
        try:
            stmt = select(Coupon).where(Coupon.code == normalize_coupon_code(code))
            coupon = session.execute(stmt).scalar_one_or_none()
            if coupon is None:
                raise CouponNotFoundError(f"Coupon '{code}' not found")
            coupon.is_active = is_active
            session.commit()
            session.refresh(coupon)
            return coupon
        finally:
            session.close()

    def list_coupon_usages(self, code: str) -> list[CouponUsage]:
        """List usage records for a coupon, oldest first."""
        session = self._db.get_session()
        try:
            stmt = (
                select(CouponUsage)
                .where(CouponUsage.coupon_code == normalize_coupon_code(code))
                .order_by(CouponUsage.used_at)
            )
            return list(session.execute(stmt).scalars().all())
        finally:
            session.close()

    # --- Registration Reads ---

    def get_registration(self, registration_id: str) -> Registration:
        """Get registration by ID.

        Raises:
            RegistrationNotFoundError: If registration doesn't exist
        """
        session = self._db.get_session()
        try:
            registration = session.get(Registration, registration_id)
            if registration is None:
                raise RegistrationNotFoundError(
                    f"Registration with id '{registration_id}' not found"
                )
            return registration
        finally:
            session.close()

    def list_registrations(
        self,
        student_id: str | None = None,
        batch_id: str | None = None,
        status: RegistrationStatus | None = None,
    ) -> list[Registration]:
        """List registrations with optional filters.

        Returns:
            Registrations ordered by created_at descending (most recent first)
        """
        session = self._db.get_session()
        try:
            stmt = select(Registration)

            if student_id is not None:
                stmt = stmt.where(Registration.student_id == student_id)
            if batch_id is not None:
                stmt = stmt.where(Registration.batch_id == batch_id)
            if status is not None:
                stmt = stmt.where(Registration.status == status.value)

            stmt = stmt.order_by(Registration.created_at.desc())
            return list(session.execute(stmt).scalars().all())
        finally:
            session.close()

    def count_active_registrations(self, batch_id: str) -> int:
        """Count reserved and confirmed registrations in a batch."""
        session = self._db.get_session()
        try:
            stmt = select(func.count(Registration.id)).where(
                Registration.batch_id == batch_id,
                Registration.status.in_([s.value for s in ACTIVE_STATUSES]),
            )
            return session.execute(stmt).scalar_one()
        finally:
            session.close()
