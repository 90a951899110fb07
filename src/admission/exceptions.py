"""Error taxonomy for the admission engine.

Every rejected attempt raises one of these and leaves persistent state
exactly as it was before the call.
"""

from __future__ import annotations


class AdmissionError(Exception):
    """Base exception for admission engine errors."""


class ValidationError(AdmissionError):
    """Malformed input, rejected before any write."""


class NotFoundError(AdmissionError):
    """Referenced record does not exist."""


class DuplicateActiveRegistrationError(AdmissionError):
    """Student already holds a reserved or confirmed registration."""


class AdmissionRejectedError(AdmissionError):
    """Batch cannot accept this registration."""


class CapacityExceededError(AdmissionRejectedError):
    """Batch has no free seat."""


class BatchInactiveError(AdmissionRejectedError):
    """Batch is not accepting registrations."""


class EnrollmentWindowClosedError(AdmissionRejectedError):
    """Attempt falls outside the batch's enrollment window."""


class CouponError(AdmissionError):
    """Coupon could not be applied. The whole attempt is rejected."""


class CouponInvalidError(CouponError):
    """Coupon is unknown, inactive, expired or not applicable."""


class CouponLimitReachedError(CouponError):
    """Coupon usage limit (total or per-student) is exhausted."""


class ConcurrencyConflictError(AdmissionError):
    """A storage constraint fired at commit time after in-process checks passed.

    Signals that the caller lost a race rather than being ineligible.
    """

    retryable = True


class InvalidStateTransitionError(AdmissionError):
    """Requested status change is not allowed from the current status."""

    def __init__(self, current: str, target: str, message: str | None = None) -> None:
        self.current = current
        self.target = target
        super().__init__(message or f"Cannot move registration from '{current}' to '{target}'")
