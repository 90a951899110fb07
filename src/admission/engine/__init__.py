"""Admission engine - capacity admission, discounts and the registration lifecycle."""

from admission.engine.capacity import CapacityController
from admission.engine.discounts import HANDLERS, compute_amount, evaluate, register_handler
from admission.engine.history import RegistrationHistory, SqlRegistrationHistory
from admission.engine.ledger import CouponUsageLedger
from admission.engine.models import (
    AdmissionDecision,
    ConsumeResult,
    DiscountContext,
    DiscountEvaluation,
    RegistrationSnapshot,
    StudentIdentity,
    UsageCounts,
)
from admission.engine.orchestrator import RegistrationOrchestrator

__all__ = [
    "HANDLERS",
    "AdmissionDecision",
    "CapacityController",
    "ConsumeResult",
    "CouponUsageLedger",
    "DiscountContext",
    "DiscountEvaluation",
    "RegistrationHistory",
    "RegistrationOrchestrator",
    "RegistrationSnapshot",
    "SqlRegistrationHistory",
    "StudentIdentity",
    "UsageCounts",
    "compute_amount",
    "evaluate",
    "register_handler",
]
