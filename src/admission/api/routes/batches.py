"""Batch endpoints."""

from fastapi import APIRouter

from admission.api.dependencies import OrchestratorDep, StoreDep
from admission.api.models import APIResponse, BatchResponse

router = APIRouter(prefix="/batches", tags=["batches"])


@router.get("/{batch_id}", response_model=APIResponse[BatchResponse])
def get_batch(
    batch_id: str, store: StoreDep, orchestrator: OrchestratorDep
) -> APIResponse[BatchResponse]:
    """Get a batch and the number of seats still free."""
    batch = store.get_batch(batch_id)
    response = BatchResponse.model_validate(batch)
    response.available_seats = orchestrator.available_seats(batch_id)
    return APIResponse(data=response)
