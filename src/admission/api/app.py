"""FastAPI application setup."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from admission.api.dependencies import (
    close_orchestrator,
    close_store,
    init_orchestrator,
    init_store,
)
from admission.api.models import APIResponse
from admission.api.routes import batches, registrations
from admission.config import EngineSettings
from admission.engine import RegistrationOrchestrator
from admission.exceptions import (
    AdmissionError,
    AdmissionRejectedError,
    ConcurrencyConflictError,
    CouponError,
    DuplicateActiveRegistrationError,
    InvalidStateTransitionError,
    NotFoundError,
    ValidationError,
)
from admission.logging import setup_logging

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

# Handlers resolve along the exception MRO, so base classes cover subclasses
ERROR_STATUS: list[tuple[type[AdmissionError], int]] = [
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ValidationError, 422),
    (DuplicateActiveRegistrationError, status.HTTP_409_CONFLICT),
    (AdmissionRejectedError, status.HTTP_409_CONFLICT),
    (CouponError, 422),
    (ConcurrencyConflictError, status.HTTP_409_CONFLICT),
    (InvalidStateTransitionError, status.HTTP_409_CONFLICT),
    (AdmissionError, status.HTTP_400_BAD_REQUEST),
]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    settings: EngineSettings = app.state.settings or EngineSettings.from_env()

    # Startup
    setup_logging()
    store = init_store(settings)
    init_orchestrator(RegistrationOrchestrator(store=store, settings=settings))

    yield
    # Shutdown
    close_orchestrator()
    close_store()


def _error_handler(status_code: int):  # noqa: ANN202
    async def handler(_request: Request, exc: AdmissionError) -> JSONResponse:
        return JSONResponse(
            status_code=status_code,
            content=APIResponse[None](data=None, error=str(exc)).model_dump(),
        )

    return handler


def create_app(settings: EngineSettings | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Engine settings. Read from the environment at startup when omitted.
    """
    app = FastAPI(
        title="Admission API",
        description="REST API for the registration admission engine",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Store config for lifespan manager
    app.state.settings = settings

    for exc_class, status_code in ERROR_STATUS:
        app.add_exception_handler(exc_class, _error_handler(status_code))

    app.include_router(registrations.router, prefix="/api/v1")
    app.include_router(batches.router, prefix="/api/v1")

    return app


# Default app instance
app = create_app()
