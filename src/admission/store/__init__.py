"""Admission Store - persistent storage for the catalog and registrations."""

from admission.store.database import Database
from admission.store.exceptions import (
    BatchNotFoundError,
    CouponExistsError,
    CouponNotFoundError,
    CourseNotFoundError,
    DiscountNotFoundError,
    RegistrationNotFoundError,
    StoreError,
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
)
from admission.store.store import AdmissionStore

__all__ = [
    "AdmissionStore",
    "AssignmentTarget",
    "Batch",
    "BatchNotFoundError",
    "Coupon",
    "CouponExistsError",
    "CouponNotFoundError",
    "CouponUsage",
    "Course",
    "CourseNotFoundError",
    "Database",
    "Discount",
    "DiscountAssignment",
    "DiscountKind",
    "DiscountNotFoundError",
    "DiscountValueType",
    "Registration",
    "RegistrationNotFoundError",
    "StoreError",
    "Student",
    "StudentNotFoundError",
]
