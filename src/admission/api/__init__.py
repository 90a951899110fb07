"""REST API for the admission engine."""

from admission.api.app import app, create_app
from admission.api.models import (
    APIResponse,
    BatchResponse,
    PaymentConfirm,
    RegistrationCreate,
    RegistrationResponse,
)

__all__ = [
    "APIResponse",
    "BatchResponse",
    "PaymentConfirm",
    "RegistrationCreate",
    "RegistrationResponse",
    "app",
    "create_app",
]
