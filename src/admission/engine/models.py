"""Data models for the admission engine."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime  # noqa: TC003
from decimal import Decimal
from enum import StrEnum
from typing import TYPE_CHECKING

from admission.lifecycle import RegistrationStatus

if TYPE_CHECKING:
    from admission.store import Registration


class AdmissionDecision(StrEnum):
    """Outcome of a capacity admission check."""

    ADMITTED = "admitted"
    BATCH_FULL = "batch_full"
    BATCH_INACTIVE = "batch_inactive"
    WINDOW_CLOSED = "window_closed"


class ConsumeResult(StrEnum):
    """Outcome of a coupon consumption attempt."""

    CONSUMED = "consumed"
    TOTAL_LIMIT_REACHED = "total_limit_reached"
    PER_STUDENT_LIMIT_REACHED = "per_student_limit_reached"


@dataclass(frozen=True)
class StudentIdentity:
    """Who is registering.

    Attributes:
        email: Identity key, compared case-insensitively.
        name: Display name, refreshed on every attempt.
        phone: Contact phone, refreshed on every attempt.
    """

    email: str
    name: str
    phone: str = ""


@dataclass(frozen=True)
class DiscountContext:
    """Inputs a discount handler may look at.

    Attributes:
        student_id: The registering student's ID.
        batch_id: Target batch.
        course_id: Course of the target batch.
        now: Evaluation time (naive UTC).
        base_fee: Batch fee snapshot.
        group_size: Number of people registering together.
    """

    student_id: str
    batch_id: str
    course_id: str
    now: datetime
    base_fee: Decimal
    group_size: int = 1


@dataclass(frozen=True)
class DiscountEvaluation:
    """Result of running one discount through the pipeline."""

    applicable: bool
    amount: Decimal
    reason: str

    @classmethod
    def rejected(cls, reason: str) -> DiscountEvaluation:
        return cls(applicable=False, amount=Decimal("0.00"), reason=reason)


@dataclass(frozen=True)
class UsageCounts:
    """Current consumption of a coupon."""

    total: int
    by_student: int


@dataclass(frozen=True)
class RegistrationSnapshot:
    """Immutable view of a registration handed back to callers."""

    id: str
    student_id: str
    batch_id: str
    course_id: str
    status: RegistrationStatus
    base_fee: Decimal
    discount_amount: Decimal
    final_payable: Decimal
    coupon_code: str | None
    discount_id: str | None
    group_size: int
    receipt_reference: str | None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, registration: Registration) -> RegistrationSnapshot:
        """Copy a Registration row into a snapshot."""
        return cls(
            id=registration.id,
            student_id=registration.student_id,
            batch_id=registration.batch_id,
            course_id=registration.course_id,
            status=registration.registration_status,
            base_fee=registration.base_fee,
            discount_amount=registration.discount_amount,
            final_payable=registration.final_payable,
            coupon_code=registration.coupon_code,
            discount_id=registration.discount_id,
            group_size=registration.group_size,
            receipt_reference=registration.receipt_reference,
            created_at=registration.created_at,
            updated_at=registration.updated_at,
        )
