"""Pydantic models for REST API."""

from datetime import datetime
from decimal import Decimal
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from admission.engine import RegistrationSnapshot
from admission.lifecycle import RegistrationStatus

T = TypeVar("T")


class APIResponse(BaseModel, Generic[T]):
    """Standard API response wrapper."""

    data: T | None = None
    error: str | None = None


# Registration models


class RegistrationCreate(BaseModel):
    """Request model for a registration attempt."""

    email: str = Field(..., min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    name: str = Field(..., min_length=1, max_length=150)
    phone: str = Field(default="", max_length=32)
    batch_id: str = Field(..., min_length=1, max_length=36)
    coupon_code: str | None = Field(default=None, max_length=64)
    group_size: int = Field(default=1, ge=1, le=100)


class PaymentConfirm(BaseModel):
    """Request model for confirming payment."""

    receipt_reference: str = Field(..., min_length=1, max_length=255)


class RegistrationResponse(BaseModel):
    """Response model for a registration."""

    model_config = ConfigDict(from_attributes=True)

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


def registration_to_response(snapshot: RegistrationSnapshot) -> RegistrationResponse:
    """Convert a RegistrationSnapshot to RegistrationResponse."""
    return RegistrationResponse.model_validate(snapshot)


# Batch models


class BatchResponse(BaseModel):
    """Response model for a batch with its remaining seats."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    course_id: str
    location: str
    capacity: int
    fee_amount: Decimal
    is_active: bool
    enrollment_opens_at: datetime
    enrollment_closes_at: datetime
    available_seats: int = 0
