"""SQLAlchemy models for the admission store."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from decimal import Decimal
from enum import StrEnum
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.ext.hybrid import hybrid_property
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    mapped_column,
    relationship,
)

from admission.exceptions import ValidationError
from admission.lifecycle import RegistrationStatus, check_transition

MONEY = Numeric(12, 2, asdecimal=True)

_ACTIVE_STATUS_SQL = "status IN ('reserved', 'confirmed')"


class DiscountKind(StrEnum):
    """Strategy category governing discount eligibility."""

    EARLY_BIRD = "early_bird"
    LOYALTY = "loyalty"
    INDIVIDUAL = "individual"
    COMBO = "combo"
    GROUP = "group"
    GENERIC = "generic"


class DiscountValueType(StrEnum):
    """How a discount's value is interpreted."""

    PERCENT = "percent"
    FLAT = "flat"


class AssignmentTarget(StrEnum):
    """What a discount assignment points at."""

    STUDENT = "student"
    BATCH = "batch"
    COURSE = "course"


def generate_uuid() -> str:
    """Generate a new UUID string."""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, the form stored in the database."""
    return datetime.now(UTC).replace(tzinfo=None)


def as_utc_naive(value: datetime | None) -> datetime | None:
    """Normalize a datetime to naive UTC. Naive input is assumed to be UTC already."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def normalize_email(email: str) -> str:
    """Canonical form used for case-insensitive email identity."""
    return email.strip().lower()


def normalize_coupon_code(code: str) -> str:
    """Canonical form used for case-insensitive coupon lookup."""
    return code.strip().upper()


def _within(now: datetime, start: datetime | None, end: datetime | None) -> bool:
    if start is not None and now < start:
        return False
    return not (end is not None and now >= end)


def _check_discount_config(config: dict[str, Any]) -> None:
    """Reject kind-specific settings the handlers cannot read."""
    cutoff = config.get("cutoff")
    if cutoff is not None:
        try:
            datetime.fromisoformat(str(cutoff))
        except ValueError as e:
            raise ValidationError(f"cutoff '{cutoff}' is not an ISO-8601 datetime") from e

    batch_ids = config.get("required_batch_ids")
    if batch_ids is not None and (
        not isinstance(batch_ids, list | tuple)
        or not all(isinstance(batch_id, str) for batch_id in batch_ids)
    ):
        raise ValidationError("required_batch_ids must be a list of batch ids")


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class Course(Base):
    """Course model - a programme offered through one or more batches."""

    __tablename__ = "courses"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now()
    )

    batches: Mapped[list[Batch]] = relationship("Batch", back_populates="course")

    def __init__(
        self,
        name: str,
        id: str | None = None,
        description: str = "",
        is_active: bool = True,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        if not name or not name.strip():
            raise ValidationError("Course name must not be empty")
        self.id = id if id is not None else generate_uuid()
        self.name = name.strip()
        self.description = description
        self.is_active = is_active

    def __repr__(self) -> str:
        return f"<Course(id={self.id!r}, name={self.name!r})>"


class Batch(Base):
    """Batch model - a capacity-bounded intake of a course."""

    __tablename__ = "batches"
    __table_args__ = (
        CheckConstraint("capacity > 0", name="ck_batches_capacity_positive"),
        CheckConstraint("fee_amount > 0", name="ck_batches_fee_positive"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    course_id: Mapped[str] = mapped_column(String(36), ForeignKey("courses.id"), nullable=False)
    location: Mapped[str] = mapped_column(String(255), nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    fee_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False)
    enrollment_opens_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    enrollment_closes_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now()
    )

    course: Mapped[Course] = relationship("Course", back_populates="batches")

    def __init__(
        self,
        course_id: str,
        location: str,
        capacity: int,
        fee_amount: Decimal,
        enrollment_opens_at: datetime,
        enrollment_closes_at: datetime,
        id: str | None = None,
        is_active: bool = True,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        fee = Decimal(str(fee_amount))
        opens_at = as_utc_naive(enrollment_opens_at)
        closes_at = as_utc_naive(enrollment_closes_at)

        if capacity <= 0:
            raise ValidationError("Capacity must be greater than zero")
        if fee <= 0:
            raise ValidationError("Fee must be greater than zero")
        if closes_at <= opens_at:
            raise ValidationError("Enrollment window must close after it opens")
        if not location or not location.strip():
            raise ValidationError("Batch location must not be empty")

        self.id = id if id is not None else generate_uuid()
        self.course_id = course_id
        self.location = location.strip()
        self.capacity = capacity
        self.fee_amount = fee
        self.is_active = is_active
        self.enrollment_opens_at = opens_at
        self.enrollment_closes_at = closes_at

    def accepts_enrollment_at(self, now: datetime) -> bool:
        """Check whether `now` falls inside [opens_at, closes_at)."""
        return self.enrollment_opens_at <= now < self.enrollment_closes_at

    def __repr__(self) -> str:
        return f"<Batch(id={self.id!r}, course_id={self.course_id!r}, capacity={self.capacity})>"


class Student(Base):
    """Student model - identified by case-insensitive email."""

    __tablename__ = "students"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(150), nullable=False)
    phone: Mapped[str] = mapped_column(String(32), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now(), onupdate=func.now()
    )

    def __init__(
        self,
        email: str,
        name: str,
        phone: str = "",
        id: str | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.id = id if id is not None else generate_uuid()
        self.email = normalize_email(email)
        self.name = name.strip()
        self.phone = phone.strip()

    def refresh_contact(self, name: str, phone: str) -> None:
        """Update mutable contact fields from a later registration attempt."""
        self.name = name.strip()
        self.phone = phone.strip()

    def __repr__(self) -> str:
        return f"<Student(id={self.id!r}, name={self.name!r})>"


class Discount(Base):
    """Discount model - a named discount programme."""

    __tablename__ = "discounts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    value_type: Mapped[str] = mapped_column(String(10), nullable=False)
    value: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    max_discount_amount: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    min_base_fee: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    valid_from: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    valid_until: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False)
    config: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)

    coupons: Mapped[list[Coupon]] = relationship("Coupon", back_populates="discount")
    assignments: Mapped[list[DiscountAssignment]] = relationship(
        "DiscountAssignment", back_populates="discount"
    )

    def __init__(
        self,
        name: str,
        kind: DiscountKind | str,
        value_type: DiscountValueType | str,
        value: Decimal,
        id: str | None = None,
        max_discount_amount: Decimal | None = None,
        min_base_fee: Decimal | None = None,
        valid_from: datetime | None = None,
        valid_until: datetime | None = None,
        is_active: bool = True,
        config: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        try:
            kind = DiscountKind(kind)
            value_type = DiscountValueType(value_type)
        except ValueError as e:
            raise ValidationError(str(e)) from e

        amount = Decimal(str(value))
        if amount <= 0:
            raise ValidationError("Discount value must be greater than zero")
        if value_type == DiscountValueType.PERCENT and amount > 100:
            raise ValidationError("Percent discount cannot exceed 100")
        if max_discount_amount is not None and Decimal(str(max_discount_amount)) < 0:
            raise ValidationError("max_discount_amount must not be negative")
        config = dict(config or {})
        _check_discount_config(config)

        self.id = id if id is not None else generate_uuid()
        self.name = name
        self.kind = kind.value
        self.value_type = value_type.value
        self.value = amount
        self.max_discount_amount = (
            Decimal(str(max_discount_amount)) if max_discount_amount is not None else None
        )
        self.min_base_fee = Decimal(str(min_base_fee)) if min_base_fee is not None else None
        self.valid_from = as_utc_naive(valid_from)
        self.valid_until = as_utc_naive(valid_until)
        self.is_active = is_active
        self.config = config

    @property
    def discount_kind(self) -> DiscountKind:
        """Get kind as DiscountKind enum."""
        return DiscountKind(self.kind)

    def is_valid_at(self, now: datetime) -> bool:
        """Check the discount's own validity window."""
        return _within(now, self.valid_from, self.valid_until)

    def __repr__(self) -> str:
        return f"<Discount(id={self.id!r}, name={self.name!r}, kind={self.kind!r})>"


class Coupon(Base):
    """Coupon model - maps a human-entered code to one discount."""

    __tablename__ = "coupons"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    code: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    discount_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("discounts.id"), nullable=False
    )
    usage_limit_total: Mapped[int | None] = mapped_column(Integer, nullable=True)
    usage_limit_per_student: Mapped[int | None] = mapped_column(Integer, nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now()
    )

    discount: Mapped[Discount] = relationship("Discount", back_populates="coupons")

    def __init__(
        self,
        code: str,
        discount_id: str,
        id: str | None = None,
        usage_limit_total: int | None = None,
        usage_limit_per_student: int | None = None,
        expires_at: datetime | None = None,
        is_active: bool = True,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        if not code or not code.strip():
            raise ValidationError("Coupon code must not be empty")
        for label, limit in (
            ("usage_limit_total", usage_limit_total),
            ("usage_limit_per_student", usage_limit_per_student),
        ):
            if limit is not None and limit <= 0:
                raise ValidationError(f"{label} must be positive when set")

        self.id = id if id is not None else generate_uuid()
        self.code = normalize_coupon_code(code)
        self.discount_id = discount_id
        self.usage_limit_total = usage_limit_total
        self.usage_limit_per_student = usage_limit_per_student
        self.expires_at = as_utc_naive(expires_at)
        self.is_active = is_active

    def is_expired_at(self, now: datetime) -> bool:
        """Check whether the coupon has passed its expiry."""
        return self.expires_at is not None and now >= self.expires_at

    def __repr__(self) -> str:
        return f"<Coupon(code={self.code!r}, discount_id={self.discount_id!r})>"


class DiscountAssignment(Base):
    """Targets a discount at a specific student, batch or course."""

    __tablename__ = "discount_assignments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    discount_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("discounts.id"), nullable=False, index=True
    )
    target_type: Mapped[str] = mapped_column(String(10), nullable=False)
    target_id: Mapped[str] = mapped_column(String(36), nullable=False)
    valid_from: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    valid_until: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    discount: Mapped[Discount] = relationship("Discount", back_populates="assignments")

    def __init__(
        self,
        discount_id: str,
        target_type: AssignmentTarget | str,
        target_id: str,
        id: str | None = None,
        valid_from: datetime | None = None,
        valid_until: datetime | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        try:
            target = AssignmentTarget(target_type)
        except ValueError as e:
            raise ValidationError(str(e)) from e
        self.id = id if id is not None else generate_uuid()
        self.discount_id = discount_id
        self.target_type = target.value
        self.target_id = target_id
        self.valid_from = as_utc_naive(valid_from)
        self.valid_until = as_utc_naive(valid_until)

    def covers(self, now: datetime) -> bool:
        """Check the assignment's optional validity window."""
        return _within(now, self.valid_from, self.valid_until)

    def __repr__(self) -> str:
        return (
            f"<DiscountAssignment(discount_id={self.discount_id!r}, "
            f"target={self.target_type}:{self.target_id})>"
        )


class Registration(Base):
    """Registration model - the record of one admission.

    Status, money and receipt fields are read-only from outside; they change
    only through `transition_to`, which consults the lifecycle table.
    """

    __tablename__ = "registrations"
    __table_args__ = (
        # At most one active registration per student
        Index(
            "uq_registrations_active_student",
            "student_id",
            unique=True,
            sqlite_where=text(_ACTIVE_STATUS_SQL),
            postgresql_where=text(_ACTIVE_STATUS_SQL),
        ),
        Index("ix_registrations_batch_status", "batch_id", "status"),
        CheckConstraint("discount_amount >= 0", name="ck_registrations_discount_non_negative"),
        CheckConstraint("final_payable >= 0", name="ck_registrations_final_non_negative"),
        CheckConstraint("final_payable <= base_fee", name="ck_registrations_final_le_base"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    student_id: Mapped[str] = mapped_column(String(36), ForeignKey("students.id"), nullable=False)
    batch_id: Mapped[str] = mapped_column(String(36), ForeignKey("batches.id"), nullable=False)
    course_id: Mapped[str] = mapped_column(String(36), ForeignKey("courses.id"), nullable=False)
    _status: Mapped[str] = mapped_column("status", String(20), nullable=False)
    _base_fee: Mapped[Decimal] = mapped_column("base_fee", MONEY, nullable=False)
    _discount_amount: Mapped[Decimal] = mapped_column("discount_amount", MONEY, nullable=False)
    _final_payable: Mapped[Decimal] = mapped_column("final_payable", MONEY, nullable=False)
    _receipt_reference: Mapped[str | None] = mapped_column(
        "receipt_reference", String(255), nullable=True
    )
    coupon_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    discount_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("discounts.id"), nullable=True
    )
    group_size: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    def __init__(
        self,
        student_id: str,
        batch_id: str,
        course_id: str,
        base_fee: Decimal,
        discount_amount: Decimal = Decimal("0.00"),
        id: str | None = None,
        coupon_code: str | None = None,
        discount_id: str | None = None,
        group_size: int = 1,
        created_at: datetime | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        base = Decimal(str(base_fee))
        discount = Decimal(str(discount_amount))
        if base <= 0:
            raise ValidationError("Base fee must be greater than zero")
        if discount < 0 or discount > base:
            raise ValidationError("Discount amount must lie between zero and the base fee")
        if group_size < 1:
            raise ValidationError("Group size must be at least 1")

        now = as_utc_naive(created_at) or utcnow()
        self.id = id if id is not None else generate_uuid()
        self.student_id = student_id
        self.batch_id = batch_id
        self.course_id = course_id
        self._status = RegistrationStatus.RESERVED.value
        self._base_fee = base
        self._discount_amount = discount
        self._final_payable = max(Decimal("0.00"), base - discount)
        self._receipt_reference = None
        self.coupon_code = coupon_code
        self.discount_id = discount_id
        self.group_size = group_size
        self.created_at = now
        self.updated_at = now

    @hybrid_property
    def status(self) -> str:
        return self._status

    @hybrid_property
    def base_fee(self) -> Decimal:
        return self._base_fee

    @hybrid_property
    def discount_amount(self) -> Decimal:
        return self._discount_amount

    @hybrid_property
    def final_payable(self) -> Decimal:
        return self._final_payable

    @hybrid_property
    def receipt_reference(self) -> str | None:
        return self._receipt_reference

    @property
    def registration_status(self) -> RegistrationStatus:
        """Get status as RegistrationStatus enum."""
        return RegistrationStatus(self._status)

    def transition_to(
        self,
        target: RegistrationStatus,
        now: datetime,
        receipt_reference: str | None = None,
    ) -> None:
        """Move to `target` if the lifecycle allows it.

        Raises:
            InvalidStateTransitionError: If the move is not allowed.
            ValidationError: If confirming without a receipt reference.
        """
        status = check_transition(self._status, target)
        now = as_utc_naive(now)

        match status:
            case RegistrationStatus.CONFIRMED:
                if receipt_reference is None or not receipt_reference.strip():
                    raise ValidationError("Receipt reference is required to confirm payment")
                self._receipt_reference = receipt_reference.strip()
                self.confirmed_at = now
            case RegistrationStatus.CANCELLED:
                self.cancelled_at = now
            case RegistrationStatus.COMPLETED:
                self.completed_at = now

        self._status = status.value
        self.updated_at = now

    def __repr__(self) -> str:
        return (
            f"<Registration(id={self.id!r}, student_id={self.student_id!r}, "
            f"status={self._status!r})>"
        )


class CouponUsage(Base):
    """Append-only record of one coupon consumption."""

    __tablename__ = "coupon_usages"
    __table_args__ = (Index("ix_coupon_usages_coupon_student", "coupon_id", "student_id"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    coupon_id: Mapped[str] = mapped_column(String(36), ForeignKey("coupons.id"), nullable=False)
    coupon_code: Mapped[str] = mapped_column(String(64), nullable=False)
    student_id: Mapped[str] = mapped_column(String(36), ForeignKey("students.id"), nullable=False)
    registration_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("registrations.id"), nullable=False, unique=True
    )
    used_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    def __init__(
        self,
        coupon_id: str,
        coupon_code: str,
        student_id: str,
        registration_id: str,
        used_at: datetime,
        id: str | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.id = id if id is not None else generate_uuid()
        self.coupon_id = coupon_id
        self.coupon_code = coupon_code
        self.student_id = student_id
        self.registration_id = registration_id
        self.used_at = as_utc_naive(used_at)

    def __repr__(self) -> str:
        return (
            f"<CouponUsage(coupon_code={self.coupon_code!r}, "
            f"registration_id={self.registration_id!r})>"
        )
