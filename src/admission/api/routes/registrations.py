"""Registration endpoints."""

from fastapi import APIRouter, status

from admission.api.dependencies import OrchestratorDep
from admission.api.models import (
    APIResponse,
    PaymentConfirm,
    RegistrationCreate,
    RegistrationResponse,
    registration_to_response,
)
from admission.engine import StudentIdentity

router = APIRouter(prefix="/registrations", tags=["registrations"])


@router.post(
    "",
    response_model=APIResponse[RegistrationResponse],
    status_code=status.HTTP_201_CREATED,
)
def create_registration(
    request: RegistrationCreate, orchestrator: OrchestratorDep
) -> APIResponse[RegistrationResponse]:
    """Attempt to register a student into a batch."""
    snapshot = orchestrator.create_registration(
        StudentIdentity(email=request.email, name=request.name, phone=request.phone),
        batch_id=request.batch_id,
        coupon_code=request.coupon_code,
        group_size=request.group_size,
    )
    return APIResponse(data=registration_to_response(snapshot))


@router.get("/{registration_id}", response_model=APIResponse[RegistrationResponse])
def get_registration(
    registration_id: str, orchestrator: OrchestratorDep
) -> APIResponse[RegistrationResponse]:
    """Get a registration by ID."""
    snapshot = orchestrator.get_registration(registration_id)
    return APIResponse(data=registration_to_response(snapshot))


@router.post("/{registration_id}/confirm", response_model=APIResponse[RegistrationResponse])
def confirm_payment(
    registration_id: str, payment: PaymentConfirm, orchestrator: OrchestratorDep
) -> APIResponse[RegistrationResponse]:
    """Record a payment receipt for a reserved registration."""
    snapshot = orchestrator.confirm_payment(registration_id, payment.receipt_reference)
    return APIResponse(data=registration_to_response(snapshot))


@router.post("/{registration_id}/cancel", response_model=APIResponse[RegistrationResponse])
def cancel_registration(
    registration_id: str, orchestrator: OrchestratorDep
) -> APIResponse[RegistrationResponse]:
    """Cancel a registration, releasing its seat."""
    snapshot = orchestrator.cancel_registration(registration_id)
    return APIResponse(data=registration_to_response(snapshot))
