"""Custom exceptions for the admission store."""

from admission.exceptions import AdmissionError, NotFoundError


class StoreError(AdmissionError):
    """Base exception for store errors that are not lookups."""


class CourseNotFoundError(NotFoundError):
    """Course with given ID does not exist."""


class BatchNotFoundError(NotFoundError):
    """Batch with given ID does not exist."""


class StudentNotFoundError(NotFoundError):
    """Student with given email or ID does not exist."""


class DiscountNotFoundError(NotFoundError):
    """Discount with given ID does not exist."""


class CouponNotFoundError(NotFoundError):
    """Coupon with given code does not exist."""


class RegistrationNotFoundError(NotFoundError):
    """Registration with given ID does not exist."""


class CouponExistsError(StoreError):
    """Coupon with given code already exists."""
